"""
tests/fixtures.py

Shared test data and helper functions for constructing coordinator inputs.
All tests must use these fixtures instead of hardcoding test values.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from unittest.mock import AsyncMock

from coordinator.schemas import (
    GlucoseEffect,
    GlucoseReading,
    PumpStatus,
    TransferChannel,
    TransmitterGlucose,
)
from coordinator.services.diagnostics import DiagnosticLogger
from coordinator.services.effects import MomentumEffectSource
from coordinator.services.freshness import FreshnessThresholds
from coordinator.services.manager import DeviceDataManager
from coordinator.services.peripherals import EventStream, PeripheralHandle
from coordinator.services.persistence import ReadingStore

# ── Reference times ─────────────────────────────────────────

NOW: datetime = datetime(2024, 6, 15, 13, 30, 0, tzinfo=timezone.utc)
TRANSMITTER_START: datetime = NOW - timedelta(days=2)
RECENCY_WINDOW: timedelta = timedelta(minutes=15)

TEST_PUMP_ID: str = "123456"
TEST_TRANSMITTER_ID: str = "4XABCD"


def build_thresholds(
    fresh_min: int = 6,
    aging_min: int = 16,
    stale_min: int = 60,
) -> FreshnessThresholds:
    return FreshnessThresholds(
        fresh=timedelta(minutes=fresh_min),
        aging=timedelta(minutes=aging_min),
        stale=timedelta(minutes=stale_min),
    )


def build_glucose(
    value: float = 120.0,
    timestamp: datetime | None = None,
    trend: int | None = 0,
    display_only: bool = False,
) -> GlucoseReading:
    """Build a GlucoseReading taken at NOW by default."""
    return GlucoseReading(
        value=value,
        timestamp=timestamp or NOW,
        trend=trend,
        display_only=display_only,
    )


def build_pump_status(
    pump_date: datetime | None = None,
    reservoir: float = 150.5,
    iob: float = 1.25,
) -> PumpStatus:
    return PumpStatus(
        pump_date=pump_date or NOW,
        reservoir_remaining_units=reservoir,
        iob=iob,
        battery_remaining_percent=75,
    )


def build_pump_packet(
    body: dict[str, Any] | None = None,
    packet_type: str = "mysentry",
    valid: bool = True,
) -> dict[str, Any]:
    """Build a raw pump packet; the body defaults to a pump status broadcast."""
    if body is None:
        body = build_pump_status().model_dump(mode="json")
    return {
        "valid": valid,
        "packet_type": packet_type,
        "device_id": "radio-01",
        "body": body,
    }


def build_transmitter_glucose(
    glucose: int = 120,
    offset: timedelta = timedelta(days=2),
    trend: int = 0,
    state: int = 6,
    display_only: bool = False,
    start_time: datetime | None = TRANSMITTER_START,
) -> TransmitterGlucose:
    """Build a transmitter message whose resolved date is TRANSMITTER_START + offset."""
    return TransmitterGlucose(
        glucose=glucose,
        timestamp=int(offset.total_seconds()),
        trend=trend,
        state=state,
        display_only=display_only,
        start_time=start_time.timestamp() if start_time is not None else None,
    )


def build_effects(
    values: list[float],
    start: datetime | None = None,
    step_min: int = 5,
) -> list[GlucoseEffect]:
    """Build an effect curve with one point every `step_min` minutes."""
    start = start or NOW
    return [
        GlucoseEffect(start_date=start + timedelta(minutes=step_min * i), value=value)
        for i, value in enumerate(values)
    ]


class FakeEffectSource:
    """Effect source returning a fixed curve or raising a fixed error."""

    def __init__(
        self,
        name: str,
        effects: Optional[list[GlucoseEffect]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self.effects = effects or []
        self.error = error
        self.delay = delay
        self.calls: list[datetime] = []
        self.readings: list[GlucoseReading] = []

    def add_reading(self, reading: GlucoseReading) -> None:
        self.readings.append(reading)

    async def get_effects(self, start_date: datetime) -> list[GlucoseEffect]:
        self.calls.append(start_date)
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.effects


class RecordingTransport:
    """Companion transport that records every send."""

    def __init__(self, error: Optional[Exception] = None) -> None:
        self.sent: list[tuple[dict[str, Any], TransferChannel]] = []
        self.error = error

    async def send(self, payload: dict[str, Any], channel: TransferChannel) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append((payload, channel))

    @property
    def channels(self) -> list[TransferChannel]:
        return [channel for _, channel in self.sent]


class RecordingEventStream(EventStream):
    """EventStream that appends (action, identifier) to a shared log."""

    def __init__(self, identifier: str, log: list[tuple[str, str]]) -> None:
        super().__init__()
        self._identifier = identifier
        self._log = log

    def subscribe(self, handler) -> int:
        self._log.append(("subscribe", self._identifier))
        return super().subscribe(handler)

    def unsubscribe(self, token: int) -> None:
        self._log.append(("unsubscribe", self._identifier))
        super().unsubscribe(token)


def build_recording_factory(log: list[tuple[str, str]], kind: str = "pump"):
    """Handle factory whose handles record subscription changes into `log`."""

    def factory(identifier: str) -> PeripheralHandle:
        handle = PeripheralHandle(identifier, kind=kind)
        handle.events = RecordingEventStream(identifier, log)
        return handle

    return factory


def build_store() -> AsyncMock:
    """ReadingStore mock whose add_glucose echoes the stored reading."""

    async def add_glucose(value, timestamp, *, trend=None, display_only=False, device="transmitter"):
        return GlucoseReading(
            value=value, timestamp=timestamp, trend=trend, display_only=display_only
        )

    store = AsyncMock(spec=ReadingStore)
    store.add_glucose = AsyncMock(side_effect=add_glucose)
    store.add_reservoir_value = AsyncMock(return_value=None)
    return store


def build_manager(
    store: AsyncMock | None = None,
    transport: RecordingTransport | None = None,
    momentum: FakeEffectSource | MomentumEffectSource | None = None,
    carbs: FakeEffectSource | None = None,
    insulin: FakeEffectSource | None = None,
    clock_time: datetime = NOW,
    **kwargs: Any,
) -> DeviceDataManager:
    """Build a DeviceDataManager with in-memory collaborators and a fixed clock."""
    return DeviceDataManager(
        store=store or build_store(),
        diagnostics=DiagnosticLogger(),
        transport=transport or RecordingTransport(),
        momentum=momentum or FakeEffectSource("momentum"),
        carbs=carbs,
        insulin=insulin or FakeEffectSource("insulin"),
        recency_window=RECENCY_WINDOW,
        thresholds=build_thresholds(),
        clock=lambda: clock_time,
        **kwargs,
    )
