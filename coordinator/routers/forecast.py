"""
coordinator/routers/forecast.py

Read endpoints for the forecast, the companion snapshot and its timeline.
"""

from datetime import datetime
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from coordinator.errors import MissingDataError, StaleDataError
from coordinator.routers.dependencies import get_manager
from coordinator.services.manager import DeviceDataManager

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/prediction")
async def get_prediction(
    manager: DeviceDataManager = Depends(get_manager),
) -> dict[str, Any]:
    """
    Forecast glucose from the latest readings.

    404 when a primary input is missing, 409 when it is stale.
    A degraded forecast is still returned with an advisory message.
    """
    try:
        result = await manager.predict_glucose()
    except MissingDataError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StaleDataError as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    return {
        "values": [value.model_dump(mode="json") for value in result.values],
        "advisory": str(result.error) if result.error is not None else None,
    }


@router.get("/snapshot")
async def get_snapshot(
    manager: DeviceDataManager = Depends(get_manager),
) -> dict[str, Any]:
    """Current companion snapshot with the completion freshness."""
    return {
        "snapshot": manager.current_snapshot().model_dump(mode="json"),
        "freshness": manager.completion_freshness().value,
    }


@router.get("/timeline")
async def get_timeline(
    after: Optional[datetime] = None,
    manager: DeviceDataManager = Depends(get_manager),
) -> dict[str, Any]:
    """Future instants at which the companion display changes."""
    if after is None:
        after = datetime.now().astimezone()
    elif after.tzinfo is None:
        raise HTTPException(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="after must include a UTC offset",
        )

    points = manager.future_change_points(after)
    entries = manager.timeline_entries(after)
    logger.debug("timeline_requested", after=after.isoformat(), points=len(points))
    return {
        "change_points": [point.isoformat() for point in points],
        "entries": [
            {
                "date": entry.date.isoformat(),
                "glucose_current": entry.state.glucose_current,
                "freshness": entry.state.freshness.value,
            }
            for entry in entries
        ],
    }
