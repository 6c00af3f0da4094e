"""
coordinator/services/companion.py

Companion display publishing.
- build_snapshot: immutable CompanionSnapshot from the last-known values
- CompanionPublisher: chooses the immediate (complication) or deferred channel
- HttpCompanionTransport: immediate channel over HTTP, deferred channel via Celery

Transfer failures are logged and recorded; they are not retried here.
"""

import asyncio
import json
from datetime import datetime
from typing import Any, Optional, Protocol

import httpx
import structlog

from coordinator.constants import (
    COMPLICATION_MIN_GLUCOSE_DELTA,
    COMPLICATION_MIN_INTERVAL_S,
    SENSOR_STATE_MIN_VALID,
)
from coordinator.schemas import CompanionSnapshot, TransferChannel, TransmitterGlucose
from coordinator.services.diagnostics import DiagnosticLogger
from coordinator.state import LatestReading

logger = structlog.get_logger(__name__)

DEFERRED_TASK_NAME: str = "worker.tasks.update_companion_context"


def build_snapshot(
    latest: LatestReading,
    loop_last_run_date: Optional[datetime] = None,
) -> CompanionSnapshot:
    """Snapshot the last-known values for the companion display."""
    fields: dict[str, Any] = {
        "transmitter_start_time": latest.transmitter_start_time,
        "loop_last_run_date": loop_last_run_date,
    }

    message = latest.glucose_message
    start_time = latest.transmitter_start_time
    if (
        message is not None
        and start_time is not None
        and message.state > SENSOR_STATE_MIN_VALID
    ):
        fields["glucose_value"] = message.glucose
        fields["glucose_trend"] = message.trend
        fields["glucose_date"] = message.resolved_date(start_time)

    status = latest.pump_status
    if status is not None:
        fields["iob"] = status.iob
        fields["reservoir"] = status.reservoir_remaining_units
        fields["pump_date"] = status.pump_date

    return CompanionSnapshot(**fields)


class CompanionTransport(Protocol):
    async def send(self, payload: dict[str, Any], channel: TransferChannel) -> None: ...


class HttpCompanionTransport:
    """Immediate transfers POST to the companion; deferred ones go through Celery."""

    def __init__(self, base_url: str, timeout: float = 5.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def send(self, payload: dict[str, Any], channel: TransferChannel) -> None:
        if channel is TransferChannel.IMMEDIATE:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    f"{self._base_url}/complication",
                    json=payload,
                    headers={"X-Transfer-Priority": "high"},
                )
                response.raise_for_status()
            return

        from worker.main import celery_app

        await asyncio.to_thread(
            celery_app.send_task,
            DEFERRED_TASK_NAME,
            args=[json.dumps(payload)],
        )


class CompanionPublisher:
    """Publishes snapshots, rate-limiting the high-priority complication channel."""

    def __init__(
        self,
        transport: CompanionTransport,
        diagnostics: DiagnosticLogger,
        complication_enabled: bool = True,
    ) -> None:
        self._transport = transport
        self._diagnostics = diagnostics
        self._complication_enabled = complication_enabled
        self._complication_glucose: Optional[TransmitterGlucose] = None
        self.last_snapshot: Optional[CompanionSnapshot] = None

    def choose_channel(self, glucose: Optional[TransmitterGlucose]) -> TransferChannel:
        """Immediate when the glucose moved enough since the last complication update."""
        if not self._complication_enabled or glucose is None:
            return TransferChannel.DEFERRED

        reference = self._complication_glucose
        if reference is None:
            return TransferChannel.IMMEDIATE

        elapsed = glucose.timestamp - reference.timestamp
        delta = abs(glucose.glucose - reference.glucose)
        if (
            elapsed >= COMPLICATION_MIN_INTERVAL_S
            or delta >= COMPLICATION_MIN_GLUCOSE_DELTA
        ):
            return TransferChannel.IMMEDIATE
        return TransferChannel.DEFERRED

    async def publish(
        self,
        latest: LatestReading,
        loop_last_run_date: Optional[datetime] = None,
    ) -> TransferChannel:
        snapshot = build_snapshot(latest, loop_last_run_date)
        self.last_snapshot = snapshot

        channel = self.choose_channel(latest.glucose_message)
        if channel is TransferChannel.IMMEDIATE:
            self._complication_glucose = latest.glucose_message

        try:
            await self._transport.send(snapshot.model_dump(mode="json"), channel)
        except Exception as exc:
            logger.error(
                "companion_transfer_failed",
                channel=channel.value,
                error=str(exc),
            )
            self._diagnostics.add_error(exc, source="CompanionTransport")
            return channel

        logger.info(
            "companion_snapshot_sent",
            channel=channel.value,
            glucose=snapshot.glucose_value,
        )
        return channel
