"""
coordinator/services/persistence.py

Storage collaborator for glucose readings and pump reservoir values.
Uses SQLAlchemy 2.0 async sessions. Failures are logged and re-raised;
callers decide whether to absorb them.
"""

from datetime import datetime
from typing import Optional

import structlog

from coordinator.schemas import GlucoseReading
from db.models import AsyncSessionLocal, GlucoseSample, ReservoirValue

logger = structlog.get_logger(__name__)

TRANSMITTER_DEVICE_NAME: str = "transmitter"


class ReadingStore:
    """Persists readings derived from peripheral events."""

    def __init__(self, pump_id: Optional[str] = None) -> None:
        self.pump_id = pump_id

    async def add_glucose(
        self,
        value: float,
        timestamp: datetime,
        *,
        trend: Optional[int] = None,
        display_only: bool = False,
        device: str = TRANSMITTER_DEVICE_NAME,
    ) -> GlucoseReading:
        """Insert a glucose reading and return it as the stored value."""
        try:
            async with AsyncSessionLocal() as session:
                session.add(
                    GlucoseSample(
                        recorded_at=timestamp,
                        glucose=value,
                        trend=trend,
                        display_only=display_only,
                        device=device,
                    )
                )
                await session.commit()
                logger.info(
                    "glucose_persisted",
                    glucose=value,
                    recorded_at=str(timestamp),
                )
        except Exception as exc:
            logger.error(
                "glucose_persist_failed",
                recorded_at=str(timestamp),
                error=str(exc),
            )
            raise

        return GlucoseReading(
            value=value,
            timestamp=timestamp,
            trend=trend,
            display_only=display_only,
        )

    async def add_reservoir_value(self, units: float, timestamp: datetime) -> None:
        """Insert a reservoir level at the status's own timestamp."""
        try:
            async with AsyncSessionLocal() as session:
                session.add(
                    ReservoirValue(
                        pump_id=self.pump_id,
                        recorded_at=timestamp,
                        units=units,
                    )
                )
                await session.commit()
                logger.info(
                    "reservoir_persisted",
                    pump_id=self.pump_id,
                    units=units,
                    recorded_at=str(timestamp),
                )
        except Exception as exc:
            logger.error(
                "reservoir_persist_failed",
                pump_id=self.pump_id,
                error=str(exc),
            )
            raise
