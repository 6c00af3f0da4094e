"""
coordinator/services/timeline.py

Companion timeline scheduling.
Computes the future instants at which the companion's rendered state would
change, so the display can schedule ahead instead of polling.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from coordinator.constants import CHANGE_POINT_OFFSET_S
from coordinator.schemas import CompanionSnapshot
from coordinator.services.freshness import (
    FreshnessCategory,
    FreshnessThresholds,
    completion_freshness,
)

_CHANGE_POINT_OFFSET = timedelta(seconds=CHANGE_POINT_OFFSET_S)


@dataclass(frozen=True)
class RenderedState:
    """What the companion shows at a given instant."""

    glucose_current: bool
    freshness: FreshnessCategory


@dataclass(frozen=True)
class TimelineEntry:
    date: datetime
    state: RenderedState


def future_change_points(
    snapshot: CompanionSnapshot,
    after: datetime,
    recency_window: timedelta,
    thresholds: FreshnessThresholds,
) -> list[datetime]:
    """
    Instants strictly after `after` at which the rendered state may change.

    One point just after the glucose expires, plus one just after each
    freshness boundary of the last completion. Sorted, without duplicates.
    """
    if snapshot.glucose_date is None:
        return []

    points = [snapshot.glucose_date + recency_window + _CHANGE_POINT_OFFSET]

    if snapshot.loop_last_run_date is not None:
        points.extend(
            snapshot.loop_last_run_date + boundary + _CHANGE_POINT_OFFSET
            for boundary in thresholds.boundaries
        )

    return sorted({point for point in points if point > after})


def rendered_state(
    snapshot: CompanionSnapshot,
    at: datetime,
    recency_window: timedelta,
    thresholds: FreshnessThresholds,
) -> RenderedState:
    glucose_current = (
        snapshot.glucose_date is not None
        and at - snapshot.glucose_date <= recency_window
    )
    return RenderedState(
        glucose_current=glucose_current,
        freshness=completion_freshness(snapshot.loop_last_run_date, at, thresholds),
    )


def timeline_entries(
    snapshot: CompanionSnapshot,
    after: datetime,
    recency_window: timedelta,
    thresholds: FreshnessThresholds,
) -> list[TimelineEntry]:
    """Change points paired with their rendered state, skipping non-changes."""
    previous = rendered_state(snapshot, after, recency_window, thresholds)
    entries: list[TimelineEntry] = []
    for point in future_change_points(snapshot, after, recency_window, thresholds):
        state = rendered_state(snapshot, point, recency_window, thresholds)
        if state == previous:
            continue
        entries.append(TimelineEntry(date=point, state=state))
        previous = state
    return entries
