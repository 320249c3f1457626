"""Track bias (baba-diff) estimator.

For every race-day, averages how far all finishers ran from their
good-ground baseline, scaled to a 2000m equivalent so a 1200m sprint and a
2400m route contribute comparable seconds. Positive values mean the track
ran slower than baseline, negative faster. Days are then placed on a
7-tier speed scale.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Iterable, Iterator, NamedTuple, Sequence

from .baseline import BaselineTable
from .classifier import classify_race
from .params import RatingParams
from .records import RaceRecord
from .stats import bin_index, mean, percentile_cut_points

logger = logging.getLogger(__name__)

# Fastest -> slowest
BIAS_LABELS = (
    "very_fast",
    "fast",
    "slightly_fast",
    "standard",
    "slightly_slow",
    "slow",
    "very_slow",
)

# Non-adaptive alternative: upper bounds in 2000m-equivalent seconds (value < bound)
FIXED_BIAS_THRESHOLDS = (0.5, 1.0, 1.5, 2.0, 3.0, 5.0)


class BiasKey(NamedTuple):
    year: int
    venue: str
    meeting: int
    day: int


@dataclass(frozen=True)
class BiasEntry:
    """Average normalised deviation for one race-day."""

    year: int
    venue: str
    meeting: int
    day: int
    value: float
    sample_count: int
    label: str = ""

    @property
    def key(self) -> BiasKey:
        return BiasKey(self.year, self.venue, self.meeting, self.day)

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "venue": self.venue,
            "meeting": self.meeting,
            "day": self.day,
            "value": self.value,
            "sample_count": self.sample_count,
            "label": self.label,
        }


class BiasTable:
    """Read-only lookup of BiasEntry by (year, venue, meeting, day)."""

    def __init__(self, entries: Iterable[BiasEntry] = (), cut_points: Sequence[float] = ()):
        data = {}
        for entry in entries:
            if entry.key in data:
                raise ValueError(f"Duplicate bias entry for {entry.key}")
            data[entry.key] = entry
        self._entries = MappingProxyType(data)
        self.cut_points = tuple(cut_points)

    def lookup(self, year: int, venue: str, meeting: int, day: int) -> BiasEntry | None:
        return self._entries.get(BiasKey(year, venue, meeting, day))

    def entries(self) -> list[BiasEntry]:
        """Entries sorted by year, venue, meeting, day."""
        return sorted(self._entries.values(), key=lambda e: tuple(e.key))

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[BiasEntry]:
        return iter(self.entries())

    def __contains__(self, key) -> bool:
        return key in self._entries

    def to_rows(self) -> list[dict]:
        return [e.to_dict() for e in self.entries()]


def label_for(value: float, cut_points: Sequence[float]) -> str:
    """Percentile tier label for a value given the 6 cut points."""
    return BIAS_LABELS[bin_index(value, cut_points)]


def fixed_label_for(value: float, thresholds: Sequence[float] = FIXED_BIAS_THRESHOLDS) -> str:
    """Tier label using absolute second thresholds."""
    for label, bound in zip(BIAS_LABELS, thresholds):
        if value < bound:
            return label
    return BIAS_LABELS[-1]


def classify_bias_values(
    values: Sequence[float],
    percentiles: Sequence[int],
) -> tuple[list[str], list[float]]:
    """Label each value against percentile cut points of the whole set.

    Returns (labels in input order, cut points).
    """
    cuts = percentile_cut_points(sorted(values), percentiles)
    return [label_for(v, cuts) for v in values], cuts


@dataclass
class BiasBuildStats:
    races_used: int = 0
    not_turf: int = 0
    unclassified: int = 0
    no_baseline: int = 0
    no_day_key: int = 0
    days_dropped: int = 0

    @property
    def races_skipped(self) -> int:
        return self.not_turf + self.unclassified + self.no_baseline + self.no_day_key


def collect_day_deviations(
    races: Iterable[RaceRecord],
    baseline: BaselineTable,
    params: RatingParams,
    stats: BiasBuildStats | None = None,
) -> dict[BiasKey, list[float]]:
    """Normalised deviations of every timed finisher, grouped per race-day.

    Skipped races are counted on ``stats`` when given.
    """
    stats = stats if stats is not None else BiasBuildStats()
    groups: dict[BiasKey, list[float]] = defaultdict(list)
    for race in races:
        if race.surface is None or race.surface.value != params.target_surface:
            stats.not_turf += 1
            continue
        if race.day_key is None:
            stats.no_day_key += 1
            continue
        category = classify_race(race.class_label)
        if category is None:
            stats.unclassified += 1
            continue
        entry = baseline.lookup(race.venue, race.distance, category) if race.distance else None
        if entry is None:
            stats.no_baseline += 1
            continue

        key = BiasKey(*race.day_key)
        stats.races_used += 1
        for finisher in race.timed_finishers():
            groups[key].append(params.normalize_to_reference(
                finisher.total_seconds - entry.total_seconds,
                race.distance,
            ))
    return groups


def build_bias_table(
    races: Iterable[RaceRecord],
    baseline: BaselineTable,
    params: RatingParams | None = None,
) -> tuple[BiasTable, BiasBuildStats]:
    """Estimate per-day bias from all going conditions and classify it."""
    params = params or RatingParams()
    stats = BiasBuildStats()
    groups = collect_day_deviations(races, baseline, params, stats)

    entries = []
    for key, deviations in groups.items():
        if len(deviations) < params.min_bias_samples:
            stats.days_dropped += 1
            continue
        entries.append(BiasEntry(
            year=key.year,
            venue=key.venue,
            meeting=key.meeting,
            day=key.day,
            value=round(mean(deviations), 2),
            sample_count=len(deviations),
        ))

    entries.sort(key=lambda e: tuple(e.key))
    cuts: list[float] = []
    if params.bias_scheme == "fixed":
        entries = [replace(e, label=fixed_label_for(e.value)) for e in entries]
    else:
        labels, cuts = classify_bias_values([e.value for e in entries], params.bias_percentiles)
        entries = [replace(e, label=label) for e, label in zip(entries, labels)]

    logger.info(
        f"Bias: {stats.races_used} races used, {stats.races_skipped} skipped "
        f"(not turf {stats.not_turf}, unclassified {stats.unclassified}, "
        f"no baseline {stats.no_baseline}, no day {stats.no_day_key})"
    )
    if stats.days_dropped:
        logger.info(f"Bias: dropped {stats.days_dropped} days under {params.min_bias_samples} samples")
    logger.info(f"Bias: {len(entries)} race-days classified ({params.bias_scheme})")
    return BiasTable(entries, cut_points=cuts), stats
