"""
coordinator/services/effects.py

Glucose effect subsystems.
- MomentumEffectSource: linear trend over a sliding window of recent readings
- RemoteEffectSource: carbohydrate / insulin effect curves from a remote effect service

Every source exposes `async get_effects(start_date) -> list[GlucoseEffect]`
and raises on failure; the aggregator captures errors per source.
"""

import collections
from datetime import datetime, timedelta
from typing import Optional, Protocol

import httpx
import numpy as np
import structlog

from coordinator.constants import (
    EFFECT_STEP_MIN,
    MOMENTUM_DATA_INTERVAL_MIN,
    MOMENTUM_DURATION_MIN,
    MOMENTUM_MIN_READINGS,
    MOMENTUM_WINDOW_MAX_LEN,
)
from coordinator.schemas import GlucoseEffect, GlucoseReading

logger = structlog.get_logger(__name__)


class EffectSource(Protocol):
    name: str

    async def get_effects(self, start_date: datetime) -> list[GlucoseEffect]: ...


class MomentumEffectSource:
    """Short-term trend extrapolation from recent glucose readings alone."""

    name = "momentum"

    def __init__(self, max_len: int = MOMENTUM_WINDOW_MAX_LEN) -> None:
        self._window: collections.deque[GlucoseReading] = collections.deque(
            maxlen=max_len
        )

    def add_reading(self, reading: GlucoseReading) -> None:
        self._window.append(reading)

    async def get_effects(self, start_date: datetime) -> list[GlucoseEffect]:
        cutoff = start_date - timedelta(minutes=MOMENTUM_DATA_INTERVAL_MIN)
        recent = sorted(
            (r for r in self._window if cutoff <= r.timestamp <= start_date),
            key=lambda r: r.timestamp,
        )

        # Calibration-affected readings make the trend unreliable
        if len(recent) < MOMENTUM_MIN_READINGS or any(r.display_only for r in recent):
            return []

        minutes = [
            (r.timestamp - recent[0].timestamp).total_seconds() / 60.0 for r in recent
        ]
        if minutes[-1] <= 0:
            return []

        slope = float(np.polyfit(minutes, [r.value for r in recent], 1)[0])

        logger.debug(
            "momentum_computed",
            readings=len(recent),
            slope=slope,
        )

        return [
            GlucoseEffect(
                start_date=start_date + timedelta(minutes=offset),
                value=slope * offset,
            )
            for offset in range(0, MOMENTUM_DURATION_MIN + 1, EFFECT_STEP_MIN)
        ]


class RemoteEffectSource:
    """Fetches a cumulative effect curve from a remote effect service."""

    def __init__(self, name: str, base_url: str, timeout: float) -> None:
        self.name = name
        self._url = f"{base_url.rstrip('/')}/effects"
        self._timeout = timeout

    async def get_effects(self, start_date: datetime) -> list[GlucoseEffect]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    self._url,
                    json={"start_date": start_date.isoformat()},
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.TimeoutException:
            logger.warning("effect_service_timeout", service=self.name, url=self._url)
            raise
        except httpx.HTTPStatusError as exc:
            logger.error(
                "effect_service_http_error",
                service=self.name,
                status=exc.response.status_code,
            )
            raise

        effects = [GlucoseEffect.model_validate(item) for item in payload["effects"]]
        return sorted(effects, key=lambda effect: effect.start_date)


def build_remote_source(
    name: str,
    base_url: str,
    timeout: float,
) -> Optional[RemoteEffectSource]:
    """Return a remote source, or None if no service URL is configured."""
    if not base_url:
        logger.info("effect_source_not_configured", service=name)
        return None
    return RemoteEffectSource(name, base_url, timeout)
