"""
coordinator/constants.py

Device, glucose and timing constants used by the coordinator.
All numeric thresholds must be referenced from this module.
Magic numbers in business logic are prohibited.
"""

# ── Identifiers ──────────────────────────────────────────────
DEVICE_IDENTIFIER_LENGTH: int = 6

# ── Glucose (mg/dL) ──────────────────────────────────────────
GLUCOSE_MIN_RECORDABLE: int = 20
SENSOR_STATE_MIN_VALID: int = 5  # transmitter state must exceed this

# ── Companion complication thresholds ────────────────────────
COMPLICATION_MIN_INTERVAL_S: int = 30 * 60
COMPLICATION_MIN_GLUCOSE_DELTA: int = 20

# ── Timeline ─────────────────────────────────────────────────
CHANGE_POINT_OFFSET_S: int = 1  # one second after a boundary expires

# ── Momentum effect ──────────────────────────────────────────
MOMENTUM_WINDOW_MAX_LEN: int = 20
MOMENTUM_MIN_READINGS: int = 3
MOMENTUM_DATA_INTERVAL_MIN: int = 15
MOMENTUM_DURATION_MIN: int = 30
EFFECT_STEP_MIN: int = 5

# ── Queues ───────────────────────────────────────────────────
DIAGNOSTIC_COLLECTION_MAX_LEN: int = 100
UPDATE_CHANNEL_MAX_LEN: int = 100

# ── Diagnostic collections ───────────────────────────────────
COLLECTION_SENTRY_OTHER: str = "sentryOther"
COLLECTION_TRANSMITTER: str = "g5"
COLLECTION_LOOP_STATUS: str = "loopStatus"
COLLECTION_ERRORS: str = "errors"
