"""Baseline time model.

Establishes the expected good-ground times per (venue, distance, category)
from one pass over the corpus. Each entry carries the average early-section
time (total minus closing segment), the average closing time, their sum,
and a pace-sensitivity slope fitted per (venue, distance) across all
categories: how much the closing segment moves per second of early-section
deviation at that course.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Iterator, NamedTuple

from .classifier import RaceCategory, classify_race
from .params import RatingParams
from .records import RaceRecord, format_race_time
from .stats import mean, ols_slope

logger = logging.getLogger(__name__)


class BaselineKey(NamedTuple):
    venue: str
    distance: int
    category: RaceCategory


@dataclass(frozen=True)
class BaselineEntry:
    """Good-ground reference times for one (venue, distance, category)."""

    venue: str
    distance: int
    category: RaceCategory
    anchor_index: int
    early_seconds: float
    closing_seconds: float
    total_seconds: float
    slope: float
    sample_count: int

    @property
    def key(self) -> BaselineKey:
        return BaselineKey(self.venue, self.distance, self.category)

    def to_dict(self) -> dict:
        return {
            "venue": self.venue,
            "distance": self.distance,
            "category": self.category.value,
            "anchor_index": self.anchor_index,
            "early_seconds": self.early_seconds,
            "early_time": format_race_time(self.early_seconds),
            "closing_seconds": self.closing_seconds,
            "total_seconds": self.total_seconds,
            "total_time": format_race_time(self.total_seconds),
            "slope": self.slope,
            "sample_count": self.sample_count,
        }


class BaselineTable:
    """Read-only lookup of BaselineEntry by (venue, distance, category)."""

    def __init__(self, entries: Iterable[BaselineEntry] = ()):
        data = {}
        for entry in entries:
            if entry.key in data:
                raise ValueError(f"Duplicate baseline entry for {entry.key}")
            data[entry.key] = entry
        self._entries = MappingProxyType(data)

    def lookup(self, venue: str, distance: int, category: RaceCategory) -> BaselineEntry | None:
        return self._entries.get(BaselineKey(venue, distance, category))

    def entries(self) -> list[BaselineEntry]:
        """Entries sorted by venue, distance, then category order."""
        return sorted(
            self._entries.values(),
            key=lambda e: (e.venue, e.distance, e.category.rank),
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[BaselineEntry]:
        return iter(self.entries())

    def __contains__(self, key) -> bool:
        return key in self._entries

    def to_rows(self) -> list[dict]:
        return [e.to_dict() for e in self.entries()]


@dataclass
class BaselineBuildStats:
    races_used: int = 0
    finishers_used: int = 0
    unclassified: int = 0


def is_reference_race(race: RaceRecord, params: RatingParams) -> bool:
    """Turf race run on the reference (good) going."""
    return (
        race.surface is not None
        and race.surface.value == params.target_surface
        and race.condition is not None
        and race.condition.value == params.reference_condition
        and bool(race.distance)
    )


def build_baseline_table(
    races: Iterable[RaceRecord],
    params: RatingParams | None = None,
) -> tuple[BaselineTable, BaselineBuildStats]:
    """Build the baseline table from the good-ground turf subset of the corpus."""
    params = params or RatingParams()
    stats = BaselineBuildStats()

    # (venue, distance, category) -> [(early, closing), ...]
    groups: dict[BaselineKey, list[tuple[float, float]]] = defaultdict(list)

    for race in races:
        if not is_reference_race(race, params):
            continue
        category = classify_race(race.class_label)
        if category is None:
            stats.unclassified += 1
            continue

        key = BaselineKey(race.venue, race.distance, category)
        race_has_data = False
        for finisher in race.valid_finishers():
            groups[key].append((finisher.early_seconds, finisher.closing_seconds))
            stats.finishers_used += 1
            race_has_data = True
        if race_has_data:
            stats.races_used += 1

    # Pace slope pooled across categories per (venue, distance)
    pooled: dict[tuple[str, int], list[tuple[float, float]]] = defaultdict(list)
    for key, pairs in groups.items():
        pooled[(key.venue, key.distance)].extend(pairs)

    slopes = {}
    for course, pairs in pooled.items():
        xs = [p[0] for p in pairs]
        ys = [p[1] for p in pairs]
        slopes[course] = ols_slope(xs, ys, min_samples=params.min_slope_samples)
        logger.debug(f"Regression slope {course[0]}_{course[1]}: {slopes[course]:.4f} (n={len(pairs)})")

    entries = []
    for key, pairs in groups.items():
        if not pairs:
            continue
        avg_early = mean([p[0] for p in pairs])
        avg_closing = mean([p[1] for p in pairs])
        entries.append(BaselineEntry(
            venue=key.venue,
            distance=key.distance,
            category=key.category,
            anchor_index=params.anchor_index[key.category],
            early_seconds=round(avg_early, 2),
            closing_seconds=round(avg_closing, 2),
            # Rounded once from the raw averages, not from the rounded parts
            total_seconds=round(avg_early + avg_closing, 2),
            slope=round(slopes[(key.venue, key.distance)], 4),
            sample_count=len(pairs),
        ))

    logger.info(
        f"Baseline: {len(entries)} entries from {stats.races_used} races, "
        f"{stats.finishers_used} finishers ({stats.unclassified} unclassified)"
    )
    return BaselineTable(entries), stats
