"""
coordinator/services/events.py

Device event router.
Decodes inbound pump packets and transmitter events into typed updates,
suppresses exact repeats, and persists derived readings.

Persistence failures are recorded but never undo the in-memory update.
"""

from datetime import datetime, timezone
from typing import Any, Optional, Union

import structlog
from pydantic import TypeAdapter, ValidationError

from coordinator.constants import (
    COLLECTION_SENTRY_OTHER,
    COLLECTION_TRANSMITTER,
    GLUCOSE_MIN_RECORDABLE,
)
from coordinator.schemas import (
    GlucoseUpdated,
    PumpAlert,
    PumpAlertCleared,
    PumpPacket,
    PumpStatus,
    PumpStatusUpdated,
    SentryMessage,
    TransmitterError,
    TransmitterEvent,
    TransmitterGlucose,
    epoch_to_datetime,
)
from coordinator.services.diagnostics import DiagnosticLogger
from coordinator.services.effects import MomentumEffectSource
from coordinator.services.persistence import ReadingStore
from coordinator.state import LatestReading

logger = structlog.get_logger(__name__)

SENTRY_PACKET_TYPE: str = "mysentry"

_sentry_adapter: TypeAdapter = TypeAdapter(SentryMessage)
_transmitter_adapter: TypeAdapter = TypeAdapter(TransmitterEvent)


class DeviceEventRouter:
    """Routes peripheral events into the shared last-known state."""

    def __init__(
        self,
        latest: LatestReading,
        store: ReadingStore,
        diagnostics: DiagnosticLogger,
        momentum: Optional[MomentumEffectSource] = None,
    ) -> None:
        self._latest = latest
        self._store = store
        self._diagnostics = diagnostics
        self._momentum = momentum

    # ── Pump radio link ──────────────────────────────────────

    async def handle_pump_packet(
        self,
        raw: Union[PumpPacket, dict[str, Any]],
    ) -> Optional[PumpStatusUpdated]:
        """Decode a pump packet and apply it. Returns an update if state changed."""
        try:
            packet = raw if isinstance(raw, PumpPacket) else PumpPacket.model_validate(raw)
        except ValidationError as exc:
            logger.warning("pump_packet_malformed", error=str(exc))
            self._diagnostics.add_message({"raw": raw}, COLLECTION_SENTRY_OTHER)
            return None

        if not packet.valid or packet.packet_type != SENTRY_PACKET_TYPE:
            logger.debug(
                "pump_packet_ignored",
                valid=packet.valid,
                packet_type=packet.packet_type,
            )
            return None

        try:
            message = _sentry_adapter.validate_python(packet.body)
        except ValidationError:
            self._diagnostics.add_message(
                {"device_id": packet.device_id, "body": packet.body},
                COLLECTION_SENTRY_OTHER,
            )
            return None

        if isinstance(message, (PumpAlert, PumpAlertCleared)):
            # TODO: de-duplicate repeated alert broadcasts before surfacing them
            logger.debug("pump_alert_ignored", message_type=message.message_type)
            return None

        return await self._update_pump_status(message)

    async def _update_pump_status(self, status: PumpStatus) -> Optional[PumpStatusUpdated]:
        if status == self._latest.pump_status:
            logger.debug("pump_status_duplicate", pump_date=str(status.pump_date))
            return None

        self._latest.pump_status = status

        try:
            await self._store.add_reservoir_value(
                status.reservoir_remaining_units, status.pump_date
            )
        except Exception as exc:
            self._diagnostics.add_error(exc, source="ReadingStore")

        logger.info(
            "pump_status_updated",
            reservoir=status.reservoir_remaining_units,
            iob=status.iob,
            pump_date=str(status.pump_date),
        )
        return PumpStatusUpdated(status=status)

    # ── Transmitter ──────────────────────────────────────────

    async def handle_transmitter_event(
        self,
        raw: Union[TransmitterGlucose, TransmitterError, dict[str, Any]],
    ) -> Optional[GlucoseUpdated]:
        """Decode a transmitter event and apply it. Returns an update if state changed."""
        try:
            event = (
                raw
                if isinstance(raw, (TransmitterGlucose, TransmitterError))
                else _transmitter_adapter.validate_python(raw)
            )
        except ValidationError as exc:
            logger.warning("transmitter_event_malformed", error=str(exc))
            self._record_transmitter_error(f"malformed event: {raw}")
            return None

        if isinstance(event, TransmitterError):
            self._record_transmitter_error(event.error)
            return None

        return await self._update_glucose(event)

    async def _update_glucose(self, message: TransmitterGlucose) -> Optional[GlucoseUpdated]:
        if message.start_time is not None:
            self._latest.transmitter_start_time = epoch_to_datetime(message.start_time)

        if message == self._latest.glucose_message:
            logger.debug("transmitter_glucose_duplicate", timestamp=message.timestamp)
            return None

        self._latest.glucose_message = message

        glucose = None
        start_time = self._latest.transmitter_start_time
        if message.glucose >= GLUCOSE_MIN_RECORDABLE and start_time is not None:
            try:
                glucose = await self._store.add_glucose(
                    float(message.glucose),
                    message.resolved_date(start_time),
                    trend=message.trend,
                    display_only=message.display_only,
                )
            except Exception as exc:
                self._diagnostics.add_error(exc, source="ReadingStore")
            else:
                self._latest.glucose = glucose
                if self._momentum is not None:
                    self._momentum.add_reading(glucose)

        logger.info(
            "transmitter_glucose_updated",
            glucose=message.glucose,
            recorded=glucose is not None,
        )
        return GlucoseUpdated(message=message, glucose=glucose)

    def _record_transmitter_error(self, error: str) -> None:
        self._diagnostics.add_message(
            {
                "error": error,
                "collected_at": datetime.now(timezone.utc).isoformat(),
            },
            COLLECTION_TRANSMITTER,
        )
