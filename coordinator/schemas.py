"""
coordinator/schemas.py

Pydantic data models for the coordinator layer.
- Inbound peripheral payloads: PumpPacket, sentry message bodies, TransmitterEvent
- Values held as last-known state: GlucoseReading, PumpStatus
- Forecast values: GlucoseEffect, PredictedGlucose, ForecastResult
- Companion values: CompanionSnapshot, TransferChannel
- Routed updates emitted by the device event router
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from coordinator.errors import PartialComputationError


# ── Glucose ──────────────────────────────────────────────────


class GlucoseReading(BaseModel):
    """A persisted glucose sample."""

    model_config = ConfigDict(frozen=True)

    value: float  # mg/dL
    timestamp: datetime
    trend: Optional[int] = None
    display_only: bool = False


class TransmitterGlucose(BaseModel):
    """Glucose message read from the CGM transmitter."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["glucose"] = "glucose"
    glucose: int  # mg/dL
    timestamp: int  # seconds since transmitter start
    trend: int = 0
    state: int = 6
    display_only: bool = False
    start_time: Optional[float] = None  # transmitter start, epoch seconds

    def resolved_date(self, start_time: datetime | None) -> datetime | None:
        """Absolute timestamp of this message given the transmitter start time."""
        if start_time is None:
            return None
        return start_time + timedelta(seconds=self.timestamp)


class TransmitterError(BaseModel):
    """Error reported by the transmitter connection."""

    kind: Literal["error"] = "error"
    error: str


TransmitterEvent = Annotated[
    Union[TransmitterGlucose, TransmitterError], Field(discriminator="kind")
]


# ── Pump radio link ──────────────────────────────────────────


class PumpPacket(BaseModel):
    """Packet received from the pump radio link."""

    valid: bool = True
    packet_type: str  # "mysentry" for unsolicited pump broadcasts
    device_id: Optional[str] = None
    body: dict[str, Any] = Field(default_factory=dict)


class PumpStatus(BaseModel):
    """Sentry pump status broadcast."""

    model_config = ConfigDict(frozen=True)

    message_type: Literal["pump_status"] = "pump_status"
    pump_date: AwareDatetime
    reservoir_remaining_units: float
    iob: float
    battery_remaining_percent: Optional[int] = None


class PumpAlert(BaseModel):
    """Sentry alert broadcast."""

    message_type: Literal["alert"] = "alert"
    alert_type: str
    alert_date: Optional[AwareDatetime] = None


class PumpAlertCleared(BaseModel):
    """Sentry alert-cleared broadcast."""

    message_type: Literal["alert_cleared"] = "alert_cleared"
    alert_type: str


SentryMessage = Annotated[
    Union[PumpStatus, PumpAlert, PumpAlertCleared],
    Field(discriminator="message_type"),
]


# ── Routed updates ───────────────────────────────────────────


class GlucoseUpdated(BaseModel):
    """Emitted after a new transmitter glucose message is accepted."""

    kind: Literal["glucose_updated"] = "glucose_updated"
    message: TransmitterGlucose
    glucose: Optional[GlucoseReading] = None


class PumpStatusUpdated(BaseModel):
    """Emitted after a new pump status is accepted."""

    kind: Literal["pump_status_updated"] = "pump_status_updated"
    status: PumpStatus


RoutedUpdate = Union[GlucoseUpdated, PumpStatusUpdated]


# ── Forecast ─────────────────────────────────────────────────


class GlucoseEffect(BaseModel):
    """Cumulative glucose effect (mg/dL) at a point in time."""

    model_config = ConfigDict(frozen=True)

    start_date: datetime
    value: float


class PredictedGlucose(BaseModel):
    """A single predicted glucose value."""

    model_config = ConfigDict(frozen=True)

    start_date: datetime
    value: float


class ForecastResult(BaseModel):
    """Predicted glucose over the effect horizon, with an optional advisory."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    values: list[PredictedGlucose]
    effects: dict[str, list[GlucoseEffect]]
    error: Optional[PartialComputationError] = Field(default=None, exclude=True)

    @property
    def degraded(self) -> bool:
        return self.error is not None


# ── Companion ────────────────────────────────────────────────


class TransferChannel(str, Enum):
    """Companion transfer channel."""

    IMMEDIATE = "immediate"
    DEFERRED = "deferred"


class CompanionSnapshot(BaseModel):
    """Minimal state bundle transferred to the companion display."""

    model_config = ConfigDict(frozen=True)

    glucose_value: Optional[int] = None
    glucose_trend: Optional[int] = None
    glucose_date: Optional[datetime] = None
    iob: Optional[float] = None
    reservoir: Optional[float] = None
    pump_date: Optional[datetime] = None
    transmitter_start_time: Optional[datetime] = None
    loop_last_run_date: Optional[datetime] = None


# ── HTTP request bodies ──────────────────────────────────────


class IdentifierUpdate(BaseModel):
    """Request body for configuring a peripheral identifier."""

    identifier: Optional[str] = None


def epoch_to_datetime(value: float | None) -> datetime | None:
    """Convert epoch seconds to an aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)
