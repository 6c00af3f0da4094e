"""
coordinator/services/manager.py

DeviceDataManager: the coordinator context.

Owns the last-known device values and the two peripheral slots, and wires the
event router, effect aggregator, companion publisher and timeline scheduler
together. Construct exactly one per process (the FastAPI lifespan does this)
and pass it to callers; it is not a module-level global.

Peripheral events are queued per peripheral and consumed by one task each,
so events from one peripheral are applied in delivery order while slow
persistence or transfers never block ingestion.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional

import structlog

from config import settings
from coordinator.constants import UPDATE_CHANNEL_MAX_LEN
from coordinator.errors import PeripheralNotConfiguredError
from coordinator.schemas import CompanionSnapshot, ForecastResult, RoutedUpdate
from coordinator.services.companion import (
    CompanionPublisher,
    CompanionTransport,
    HttpCompanionTransport,
    build_snapshot,
)
from coordinator.services.diagnostics import DiagnosticLogger
from coordinator.services.effects import (
    EffectSource,
    MomentumEffectSource,
    build_remote_source,
)
from coordinator.services.events import DeviceEventRouter
from coordinator.services.freshness import (
    FreshnessCategory,
    FreshnessThresholds,
    completion_freshness,
    default_thresholds,
)
from coordinator.services.peripherals import (
    PeripheralHandle,
    PeripheralSlot,
    normalize_identifier,
)
from coordinator.services.persistence import ReadingStore
from coordinator.services.prediction import EffectAggregator, utcnow
from coordinator.services.timeline import (
    TimelineEntry,
    future_change_points,
    timeline_entries,
)
from coordinator.state import LatestReading

logger = structlog.get_logger(__name__)

HandleFactory = Callable[[str], PeripheralHandle]


def _pump_handle(identifier: str) -> PeripheralHandle:
    return PeripheralHandle(identifier, kind="pump")


def _transmitter_handle(identifier: str) -> PeripheralHandle:
    return PeripheralHandle(identifier, kind="transmitter")


class DeviceDataManager:
    """Coordinator context shared by the HTTP surface and background consumers."""

    def __init__(
        self,
        *,
        store: ReadingStore,
        diagnostics: DiagnosticLogger,
        transport: CompanionTransport,
        momentum: MomentumEffectSource,
        carbs: Optional[EffectSource],
        insulin: EffectSource,
        recency_window: timedelta,
        thresholds: FreshnessThresholds,
        complication_enabled: bool = True,
        pump_factory: HandleFactory = _pump_handle,
        transmitter_factory: HandleFactory = _transmitter_handle,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.latest = LatestReading()
        self.diagnostics = diagnostics
        self.recency_window = recency_window
        self.thresholds = thresholds
        self.loop_last_run_date: Optional[datetime] = None
        self._store = store
        self._clock = clock

        self.router = DeviceEventRouter(self.latest, store, diagnostics, momentum)
        self.aggregator = EffectAggregator(
            momentum=momentum,
            carbs=carbs,
            insulin=insulin,
            diagnostics=diagnostics,
            recency_window=recency_window,
            clock=clock,
        )
        self.publisher = CompanionPublisher(
            transport, diagnostics, complication_enabled=complication_enabled
        )

        # Typed update channel for external consumers (status UI, charts)
        self.updates: asyncio.Queue[RoutedUpdate] = asyncio.Queue(
            maxsize=UPDATE_CHANNEL_MAX_LEN
        )

        self._pump_events: asyncio.Queue[Any] = asyncio.Queue()
        self._transmitter_events: asyncio.Queue[Any] = asyncio.Queue()
        self.pump_slot: PeripheralSlot[PeripheralHandle] = PeripheralSlot(
            "pump", pump_factory, self._pump_events.put_nowait
        )
        self.transmitter_slot: PeripheralSlot[PeripheralHandle] = PeripheralSlot(
            "transmitter", transmitter_factory, self._transmitter_events.put_nowait
        )
        self._consumers: list[asyncio.Task] = []

    @classmethod
    def from_settings(cls) -> "DeviceDataManager":
        """Build the production coordinator from application settings."""
        timeout = settings.effect_request_timeout_s
        insulin = build_remote_source("insulin", settings.insulin_effect_url, timeout)
        if insulin is None:
            raise ValueError("insulin_effect_url must be configured")

        manager = cls(
            store=ReadingStore(),
            diagnostics=DiagnosticLogger(),
            transport=HttpCompanionTransport(settings.companion_url),
            momentum=MomentumEffectSource(),
            carbs=build_remote_source("carbs", settings.carb_effect_url, timeout),
            insulin=insulin,
            recency_window=timedelta(minutes=settings.input_data_recency_minutes),
            thresholds=default_thresholds(),
            complication_enabled=settings.complication_enabled,
        )
        manager.configure_pump(settings.pump_id)
        manager.configure_transmitter(settings.transmitter_id)
        return manager

    # ── Configuration ────────────────────────────────────────

    def configure_pump(self, identifier: Optional[str]) -> Optional[str]:
        """Set the pump identifier; malformed identifiers deconfigure the slot."""
        pump_id = normalize_identifier(identifier)
        if pump_id is None:
            self.pump_slot.deconfigure()
        else:
            self.pump_slot.configure(pump_id)
        self._store.pump_id = pump_id
        return pump_id

    def configure_transmitter(self, identifier: Optional[str]) -> Optional[str]:
        """Set the transmitter identifier; malformed identifiers deconfigure the slot."""
        transmitter_id = normalize_identifier(identifier)
        if transmitter_id is None:
            self.transmitter_slot.deconfigure()
        else:
            self.transmitter_slot.configure(transmitter_id)
        return transmitter_id

    # ── Lifecycle ────────────────────────────────────────────

    async def start(self) -> None:
        """Start one consumer task per peripheral event queue."""
        self._consumers = [
            asyncio.create_task(
                self._consume("pump", self._pump_events, self.router.handle_pump_packet)
            ),
            asyncio.create_task(
                self._consume(
                    "transmitter",
                    self._transmitter_events,
                    self.router.handle_transmitter_event,
                )
            ),
        ]
        logger.info("coordinator_started")

    async def stop(self) -> None:
        """Cancel consumers and release both peripheral subscriptions."""
        for task in self._consumers:
            task.cancel()
        await asyncio.gather(*self._consumers, return_exceptions=True)
        self._consumers = []
        self.pump_slot.deconfigure()
        self.transmitter_slot.deconfigure()
        logger.info("coordinator_stopped")

    # ── Peripheral events ────────────────────────────────────

    def deliver_pump_event(self, raw: Any) -> int:
        """Push a raw pump packet into the configured radio link."""
        return self._deliver(self.pump_slot, raw)

    def deliver_transmitter_event(self, raw: Any) -> int:
        """Push a raw transmitter event into the configured transmitter."""
        return self._deliver(self.transmitter_slot, raw)

    def _deliver(self, slot: PeripheralSlot, raw: Any) -> int:
        handle = slot.handle
        if handle is None:
            raise PeripheralNotConfiguredError(f"{slot.name} is not configured")
        return handle.events.emit(raw)

    async def handle_pump_packet(self, raw: Any) -> Optional[RoutedUpdate]:
        update = await self.router.handle_pump_packet(raw)
        if update is not None:
            await self._dispatch(update)
        return update

    async def handle_transmitter_event(self, raw: Any) -> Optional[RoutedUpdate]:
        update = await self.router.handle_transmitter_event(raw)
        if update is not None:
            await self._dispatch(update)
        return update

    async def _consume(
        self,
        name: str,
        queue: asyncio.Queue,
        handler: Callable[[Any], Awaitable[Optional[RoutedUpdate]]],
    ) -> None:
        while True:
            raw = await queue.get()
            try:
                update = await handler(raw)
                if update is not None:
                    await self._dispatch(update)
            except Exception as exc:
                logger.error("peripheral_event_failed", peripheral=name, error=str(exc))
                self.diagnostics.add_error(exc, source=name)
            finally:
                queue.task_done()

    async def _dispatch(self, update: RoutedUpdate) -> None:
        if self.updates.full():
            self.updates.get_nowait()
            logger.debug("update_channel_overflow", dropped="oldest")
        self.updates.put_nowait(update)
        await self.publisher.publish(self.latest, self.loop_last_run_date)

    # ── Queries ──────────────────────────────────────────────

    async def predict_glucose(self) -> ForecastResult:
        """Forecast glucose; an error-free forecast marks a successful completion."""
        result = await self.aggregator.predict_glucose(
            self.latest.glucose, self.latest.pump_status
        )
        if result.error is None:
            self.loop_last_run_date = self._clock()
        return result

    def current_snapshot(self) -> CompanionSnapshot:
        return build_snapshot(self.latest, self.loop_last_run_date)

    def completion_freshness(self, now: Optional[datetime] = None) -> FreshnessCategory:
        return completion_freshness(
            self.loop_last_run_date, now or self._clock(), self.thresholds
        )

    def future_change_points(self, after: datetime) -> list[datetime]:
        return future_change_points(
            self.current_snapshot(), after, self.recency_window, self.thresholds
        )

    def timeline_entries(self, after: datetime) -> list[TimelineEntry]:
        return timeline_entries(
            self.current_snapshot(), after, self.recency_window, self.thresholds
        )
