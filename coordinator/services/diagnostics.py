"""
coordinator/services/diagnostics.py

Diagnostic log collaborator.
Keeps bounded in-memory collections of diagnostic records and mirrors every
record to the structured log. Recording never raises into the caller.
"""

import collections
from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from coordinator.constants import (
    COLLECTION_ERRORS,
    COLLECTION_LOOP_STATUS,
    DIAGNOSTIC_COLLECTION_MAX_LEN,
)
from coordinator.schemas import GlucoseEffect, GlucoseReading, PredictedGlucose

logger = structlog.get_logger(__name__)


def summarize_effects(effects: list[GlucoseEffect]) -> dict[str, Any]:
    """Compact summary of an effect curve for diagnostic records."""
    if not effects:
        return {"count": 0}
    return {
        "count": len(effects),
        "start": effects[0].start_date.isoformat(),
        "end": effects[-1].start_date.isoformat(),
        "first": effects[0].value,
        "last": effects[-1].value,
    }


class DiagnosticLogger:
    """In-memory diagnostic collections keyed by collection name."""

    def __init__(self, max_len: int = DIAGNOSTIC_COLLECTION_MAX_LEN) -> None:
        self._max_len = max_len
        self._collections: dict[str, collections.deque] = {}

    def add_message(self, message: dict[str, Any], collection: str) -> None:
        try:
            if collection not in self._collections:
                self._collections[collection] = collections.deque(
                    maxlen=self._max_len
                )
            self._collections[collection].append(dict(message))
            logger.info("diagnostic_recorded", collection=collection, record=message)
        except Exception as exc:
            logger.warning(
                "diagnostic_record_failed",
                collection=collection,
                error=str(exc),
            )

    def add_error(self, error: BaseException | str, source: str) -> None:
        self.add_message(
            {
                "source": source,
                "error": str(error),
                "error_type": type(error).__name__
                if isinstance(error, BaseException)
                else "str",
                "collected_at": datetime.now(timezone.utc).isoformat(),
            },
            COLLECTION_ERRORS,
        )

    def add_loop_status(
        self,
        *,
        start_date: datetime,
        end_date: datetime,
        glucose: Optional[GlucoseReading],
        effects: dict[str, list[GlucoseEffect]],
        error: Optional[BaseException],
        prediction: list[PredictedGlucose],
    ) -> None:
        self.add_message(
            {
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "glucose": glucose.value if glucose is not None else None,
                "glucose_date": glucose.timestamp.isoformat()
                if glucose is not None
                else None,
                "effects": {
                    name: summarize_effects(curve) for name, curve in effects.items()
                },
                "error": str(error) if error is not None else None,
                "prediction_count": len(prediction),
                "eventual_glucose": prediction[-1].value if prediction else None,
            },
            COLLECTION_LOOP_STATUS,
        )

    def messages(self, collection: str) -> list[dict[str, Any]]:
        return list(self._collections.get(collection, ()))
