"""
coordinator/services/prediction.py

Effect aggregation for glucose prediction.
- Gates on presence and recency of the latest glucose and pump status
- Requests momentum, carbohydrate and insulin effects concurrently
- Combines successful curves into a single forecast; failed sources degrade
  the forecast instead of aborting it

Every attempt is recorded to the diagnostic log, whatever its outcome.
"""

import asyncio
import collections
import itertools
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import numpy as np
import structlog

from coordinator.errors import (
    MissingDataError,
    PartialComputationError,
    PredictionError,
    StaleDataError,
)
from coordinator.schemas import (
    ForecastResult,
    GlucoseEffect,
    GlucoseReading,
    PredictedGlucose,
    PumpStatus,
)
from coordinator.services.diagnostics import DiagnosticLogger
from coordinator.services.effects import EffectSource

logger = structlog.get_logger(__name__)

EFFECT_NAMES: tuple[str, ...] = ("momentum", "carbs", "insulin")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class _EffectOutcome:
    name: str
    effects: list[GlucoseEffect]
    error: Optional[BaseException]
    completed: int  # completion order across the fan-out


def combine_effects(
    glucose: GlucoseReading,
    curves: list[list[GlucoseEffect]],
) -> list[PredictedGlucose]:
    """
    Advance the reference glucose by the summed per-step deltas of each curve.

    Curves are cumulative and aligned by offset from the reference timestamp.
    Each curve's first point is its baseline; points at or before the
    reference only move that baseline, so the forecast starts at the
    reference value.
    """
    deltas: dict[float, float] = collections.defaultdict(float)
    for curve in curves:
        if not curve:
            continue
        previous = curve[0].value
        for effect in curve[1:]:
            offset = (effect.start_date - glucose.timestamp).total_seconds()
            delta = effect.value - previous
            previous = effect.value
            if offset <= 0:
                continue
            deltas[offset] += delta

    offsets = sorted(deltas)
    values = glucose.value + np.cumsum([deltas[offset] for offset in offsets])

    prediction = [PredictedGlucose(start_date=glucose.timestamp, value=glucose.value)]
    prediction.extend(
        PredictedGlucose(
            start_date=glucose.timestamp + timedelta(seconds=offset),
            value=float(value),
        )
        for offset, value in zip(offsets, values)
    )
    return prediction


class EffectAggregator:
    """Fan-out/fan-in of effect subsystems into a glucose forecast."""

    def __init__(
        self,
        momentum: EffectSource,
        carbs: Optional[EffectSource],
        insulin: EffectSource,
        diagnostics: DiagnosticLogger,
        recency_window: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._sources: dict[str, Optional[EffectSource]] = {
            "momentum": momentum,
            "carbs": carbs,
            "insulin": insulin,
        }
        self._diagnostics = diagnostics
        self.recency_window = recency_window
        self._clock = clock

    async def predict_glucose(
        self,
        glucose: Optional[GlucoseReading],
        pump_status: Optional[PumpStatus],
    ) -> ForecastResult:
        """
        Build a forecast from the latest glucose and pump status.

        Raises MissingDataError or StaleDataError before any source is called.
        A failed source yields a forecast with a PartialComputationError attached.
        """
        start_date = self._clock()

        try:
            self._check_inputs(glucose, pump_status, start_date)
        except PredictionError as exc:
            logger.warning("prediction_rejected", reason=type(exc).__name__)
            self._diagnostics.add_loop_status(
                start_date=start_date,
                end_date=self._clock(),
                glucose=glucose,
                effects={},
                error=exc,
                prediction=[],
            )
            raise

        outcomes = await self._gather_effects(glucose.timestamp)

        effects = {outcome.name: outcome.effects for outcome in outcomes}
        for name in EFFECT_NAMES:
            effects.setdefault(name, [])

        failures = sorted(
            (outcome for outcome in outcomes if outcome.error is not None),
            key=lambda outcome: outcome.completed,
        )
        advisory: Optional[PartialComputationError] = None
        if failures:
            last = failures[-1]
            advisory = PartialComputationError(last.name, last.error)

        prediction = combine_effects(glucose, [effects[name] for name in EFFECT_NAMES])

        self._diagnostics.add_loop_status(
            start_date=start_date,
            end_date=self._clock(),
            glucose=glucose,
            effects=effects,
            error=advisory,
            prediction=prediction,
        )

        logger.info(
            "prediction_complete",
            glucose=glucose.value,
            eventual_glucose=prediction[-1].value,
            points=len(prediction),
            failed_sources=[outcome.name for outcome in failures],
        )

        return ForecastResult(values=prediction, effects=effects, error=advisory)

    def _check_inputs(
        self,
        glucose: Optional[GlucoseReading],
        pump_status: Optional[PumpStatus],
        now: datetime,
    ) -> None:
        if glucose is None or pump_status is None:
            raise MissingDataError(
                f"glucose={'present' if glucose else 'missing'}, "
                f"pump_status={'present' if pump_status else 'missing'}"
            )

        if (
            now - glucose.timestamp > self.recency_window
            or now - pump_status.pump_date > self.recency_window
        ):
            raise StaleDataError(
                f"inputs older than {self.recency_window}: "
                f"glucose={glucose.timestamp.isoformat()}, "
                f"pump_status={pump_status.pump_date.isoformat()}"
            )

    async def _gather_effects(self, start_date: datetime) -> list[_EffectOutcome]:
        completion = itertools.count()

        async def collect(name: str, source: EffectSource) -> _EffectOutcome:
            try:
                effects = await source.get_effects(start_date)
            except Exception as exc:
                logger.warning("effect_source_failed", source=name, error=str(exc))
                self._diagnostics.add_error(exc, source=name)
                return _EffectOutcome(name, [], exc, next(completion))
            return _EffectOutcome(name, list(effects), None, next(completion))

        return await asyncio.gather(
            *(
                collect(name, source)
                for name, source in self._sources.items()
                if source is not None
            )
        )
