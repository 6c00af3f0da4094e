"""
tests/test_timeline.py

Unit tests for coordinator/services/timeline.py.
"""

from datetime import timedelta

from coordinator.schemas import CompanionSnapshot
from coordinator.services.freshness import FreshnessCategory
from coordinator.services.timeline import future_change_points, timeline_entries
from tests.fixtures import NOW, RECENCY_WINDOW, build_thresholds

ONE_SECOND = timedelta(seconds=1)


def test_change_points_cover_glucose_and_every_boundary() -> None:
    glucose_date = NOW
    completed = NOW + timedelta(minutes=2)
    snapshot = CompanionSnapshot(glucose_date=glucose_date, loop_last_run_date=completed)
    thresholds = build_thresholds()

    points = future_change_points(snapshot, glucose_date, RECENCY_WINDOW, thresholds)

    assert points == sorted(
        [
            glucose_date + RECENCY_WINDOW + ONE_SECOND,
            completed + timedelta(minutes=6) + ONE_SECOND,
            completed + timedelta(minutes=16) + ONE_SECOND,
            completed + timedelta(minutes=60) + ONE_SECOND,
        ]
    )
    assert all(earlier < later for earlier, later in zip(points, points[1:]))


def test_change_points_are_deduplicated() -> None:
    """A freshness boundary landing on the glucose expiry appears once."""
    snapshot = CompanionSnapshot(
        glucose_date=NOW, loop_last_run_date=NOW + timedelta(minutes=9)
    )

    points = future_change_points(snapshot, NOW, RECENCY_WINDOW, build_thresholds())

    assert len(points) == 3
    assert points[0] == NOW + RECENCY_WINDOW + ONE_SECOND


def test_change_points_are_strictly_after() -> None:
    snapshot = CompanionSnapshot(glucose_date=NOW, loop_last_run_date=NOW)
    after = NOW + timedelta(minutes=15, seconds=1)

    points = future_change_points(snapshot, after, RECENCY_WINDOW, build_thresholds())

    assert points == [
        NOW + timedelta(minutes=16) + ONE_SECOND,
        NOW + timedelta(minutes=60) + ONE_SECOND,
    ]


def test_change_points_without_completion_or_glucose() -> None:
    thresholds = build_thresholds()

    assert future_change_points(
        CompanionSnapshot(glucose_date=NOW), NOW, RECENCY_WINDOW, thresholds
    ) == [NOW + RECENCY_WINDOW + ONE_SECOND]
    assert future_change_points(
        CompanionSnapshot(loop_last_run_date=NOW), NOW, RECENCY_WINDOW, thresholds
    ) == []


def test_timeline_entries_skip_unchanged_states() -> None:
    """Entering the stale boundary changes nothing already stale, so it is dropped."""
    snapshot = CompanionSnapshot(glucose_date=NOW, loop_last_run_date=NOW)

    entries = timeline_entries(snapshot, NOW, RECENCY_WINDOW, build_thresholds())

    assert [entry.date for entry in entries] == [
        NOW + timedelta(minutes=6) + ONE_SECOND,
        NOW + timedelta(minutes=15) + ONE_SECOND,
        NOW + timedelta(minutes=16) + ONE_SECOND,
    ]
    assert [entry.state.freshness for entry in entries] == [
        FreshnessCategory.AGING,
        FreshnessCategory.AGING,
        FreshnessCategory.STALE,
    ]
    assert [entry.state.glucose_current for entry in entries] == [True, False, False]
    assert all(
        earlier.state != later.state for earlier, later in zip(entries, entries[1:])
    )
