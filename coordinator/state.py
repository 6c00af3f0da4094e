"""
coordinator/state.py

Last-known device values shared across the coordinator.
Only the device event router mutates these fields.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from coordinator.schemas import GlucoseReading, PumpStatus, TransmitterGlucose


@dataclass
class LatestReading:
    """Most recent accepted values from the transmitter and the pump."""

    # ── Transmitter ──────────────────────────────────────────
    glucose: Optional[GlucoseReading] = None
    glucose_message: Optional[TransmitterGlucose] = None
    transmitter_start_time: Optional[datetime] = None

    # ── Pump ─────────────────────────────────────────────────
    pump_status: Optional[PumpStatus] = None
