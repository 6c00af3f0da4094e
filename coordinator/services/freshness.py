"""
coordinator/services/freshness.py

Completion freshness classification.
Maps the age of the last successful completion onto FRESH / AGING / STALE.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from config import settings


class FreshnessCategory(str, Enum):
    """Tri-state freshness, ordered by severity."""

    FRESH = "fresh"
    AGING = "aging"
    STALE = "stale"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY: dict[FreshnessCategory, int] = {
    FreshnessCategory.FRESH: 0,
    FreshnessCategory.AGING: 1,
    FreshnessCategory.STALE: 2,
}


@dataclass(frozen=True)
class FreshnessThresholds:
    """Maximum age of each category. Must satisfy fresh < aging < stale."""

    fresh: timedelta
    aging: timedelta
    stale: timedelta

    def __post_init__(self) -> None:
        if not self.fresh < self.aging < self.stale:
            raise ValueError(
                f"freshness boundaries must increase: {self.fresh}, {self.aging}, {self.stale}"
            )

    def max_age(self, category: FreshnessCategory) -> timedelta:
        return {
            FreshnessCategory.FRESH: self.fresh,
            FreshnessCategory.AGING: self.aging,
            FreshnessCategory.STALE: self.stale,
        }[category]

    @property
    def boundaries(self) -> list[timedelta]:
        return [self.max_age(category) for category in FreshnessCategory]


def default_thresholds() -> FreshnessThresholds:
    """Build thresholds from settings."""
    return FreshnessThresholds(
        fresh=timedelta(minutes=settings.freshness_fresh_minutes),
        aging=timedelta(minutes=settings.freshness_aging_minutes),
        stale=timedelta(minutes=settings.freshness_stale_minutes),
    )


def classify(
    elapsed: timedelta | None,
    thresholds: FreshnessThresholds,
) -> FreshnessCategory:
    """
    Classify an elapsed age.

    Negative ages are FRESH; an unknown age (None) is STALE.
    """
    if elapsed is None:
        return FreshnessCategory.STALE
    if elapsed < thresholds.fresh:
        return FreshnessCategory.FRESH
    if elapsed < thresholds.aging:
        return FreshnessCategory.AGING
    return FreshnessCategory.STALE


def completion_freshness(
    last_completed: datetime | None,
    now: datetime,
    thresholds: FreshnessThresholds,
) -> FreshnessCategory:
    """Freshness of the last successful completion as seen at `now`."""
    if last_completed is None:
        return FreshnessCategory.STALE
    # Completion dates ahead of the clock count as zero age
    age = max(now - last_completed, timedelta(0))
    return classify(age, thresholds)
