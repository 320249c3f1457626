"""Performance index calculator.

Turns each finisher's time into three ratings, given the race's baseline
entry and the day's bias entry:

- overall: time against the bias-adjusted baseline, on the class anchor scale
- closing: closing segment against a pace-adjusted expectation, with a draft
  correction that discounts runners who sat behind the early leader
- ability: overall plus a weighted share of the closing index

Each race is computed independently from read-only tables, so a single race
recomputed against the same tables matches a full corpus run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from .baseline import BaselineEntry, BaselineTable
from .bias import BiasEntry, BiasTable
from .classifier import Generation, classify_race, detect_generation
from .params import RatingParams
from .records import FinisherRecord, RaceRecord
from .stats import round_half_up

logger = logging.getLogger(__name__)

OVERALL_COLUMN = "総合指数"
CLOSING_COLUMN = "上がり指数"
ABILITY_COLUMN = "能力指数"
INDEX_COLUMNS = (OVERALL_COLUMN, CLOSING_COLUMN, ABILITY_COLUMN)


class RaceStatus(str, Enum):
    INDEXED = "indexed"
    NOT_TURF = "not_turf"
    UNCLASSIFIED = "unclassified"
    NO_BASELINE = "no_baseline"


@dataclass(frozen=True)
class PerformanceIndex:
    overall: int | None = None
    closing: int | None = None
    ability: int | None = None

    @property
    def is_null(self) -> bool:
        return self.overall is None

    def as_strings(self) -> dict[str, str]:
        """Index columns for output rows ("" when null)."""
        return {
            OVERALL_COLUMN: "" if self.overall is None else str(self.overall),
            CLOSING_COLUMN: "" if self.closing is None else str(self.closing),
            ABILITY_COLUMN: "" if self.ability is None else str(self.ability),
        }


NULL_INDEX = PerformanceIndex()


@dataclass(frozen=True)
class IndexedFinisher:
    finisher: FinisherRecord
    index: PerformanceIndex

    def to_row(self) -> dict[str, str]:
        row = dict(self.finisher.fields)
        row.update(self.index.as_strings())
        return row


@dataclass
class RaceIndexResult:
    race: RaceRecord
    status: RaceStatus
    anchor_index: int | None = None
    generation: Generation | None = None
    bias_value: float = 0.0
    has_bias: bool = False
    finishers: list[IndexedFinisher] = field(default_factory=list)

    @property
    def indexed(self) -> bool:
        return self.status is RaceStatus.INDEXED

    def rows(self) -> list[dict[str, str]]:
        return [f.to_row() for f in self.finishers]


@dataclass
class IndexRunSummary:
    processed: int = 0
    not_turf: int = 0
    unclassified: int = 0
    no_baseline: int = 0
    no_bias: int = 0
    null_finishers: int = 0

    @property
    def skipped(self) -> int:
        return self.not_turf + self.unclassified + self.no_baseline

    def record(self, result: RaceIndexResult) -> None:
        if result.status is RaceStatus.NOT_TURF:
            self.not_turf += 1
        elif result.status is RaceStatus.UNCLASSIFIED:
            self.unclassified += 1
        elif result.status is RaceStatus.NO_BASELINE:
            self.no_baseline += 1
        else:
            self.processed += 1
            if not result.has_bias:
                self.no_bias += 1
            self.null_finishers += sum(1 for f in result.finishers if f.index.is_null)

    def as_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "not_turf": self.not_turf,
            "unclassified": self.unclassified,
            "no_baseline": self.no_baseline,
            "no_bias": self.no_bias,
            "null_finishers": self.null_finishers,
        }


def leader_early_time(race: RaceRecord) -> float | None:
    """Fastest early-section time among the race's valid finishers."""
    earlies = [f.early_seconds for f in race.valid_finishers()]
    return min(earlies) if earlies else None


def compute_finisher_indices(
    race: RaceRecord,
    baseline: BaselineEntry,
    bias: BiasEntry | None,
    params: RatingParams | None = None,
) -> tuple[list[IndexedFinisher], int]:
    """Index every runner in a race against its baseline and day bias.

    A missing bias entry counts as zero bias. Runners without a numeric
    rank or parseable times get a null index. Returns the indexed runners
    (official order) and the generation-corrected anchor used.
    """
    params = params or RatingParams()
    distance = race.distance
    generation = detect_generation(race.class_label)
    anchor = params.anchor_for(baseline.anchor_index, baseline.category, generation)

    day_bias = bias.value if bias is not None else 0.0
    race_bias = params.scale_from_reference(day_bias, distance)
    factor = params.distance_factor(distance)

    adjusted_total = baseline.total_seconds + race_bias
    adjusted_early = baseline.early_seconds + race_bias * params.early_bias_share
    adjusted_closing_base = baseline.closing_seconds + race_bias * params.closing_bias_share
    leader_early = leader_early_time(race)

    results = []
    for finisher in race.finishers:
        if not finisher.has_sectional:
            results.append(IndexedFinisher(finisher, NULL_INDEX))
            continue

        total = finisher.total_seconds
        closing = finisher.closing_seconds
        early = finisher.early_seconds

        overall = round_half_up(anchor + (adjusted_total - total) * factor)

        expected_closing = adjusted_closing_base + baseline.slope * (early - adjusted_early)
        position_gap = early - leader_early
        adjusted_closing = closing + position_gap * params.draft_factor
        closing_idx = round_half_up((expected_closing - adjusted_closing) * factor)

        ability = round_half_up(overall + closing_idx * params.ability_weight)

        results.append(IndexedFinisher(
            finisher,
            PerformanceIndex(overall=overall, closing=closing_idx, ability=ability),
        ))

    return results, anchor


def _null_result(race: RaceRecord, status: RaceStatus) -> RaceIndexResult:
    return RaceIndexResult(
        race=race,
        status=status,
        finishers=[IndexedFinisher(f, NULL_INDEX) for f in race.finishers],
    )


def index_race(
    race: RaceRecord,
    baseline_table: BaselineTable,
    bias_table: BiasTable,
    params: RatingParams | None = None,
) -> RaceIndexResult:
    """Look up the race's reference data and index it."""
    params = params or RatingParams()

    if race.surface is None or race.surface.value != params.target_surface:
        return _null_result(race, RaceStatus.NOT_TURF)

    category = classify_race(race.class_label)
    if category is None:
        return _null_result(race, RaceStatus.UNCLASSIFIED)

    # No distance means no baseline key
    baseline = baseline_table.lookup(race.venue, race.distance, category) if race.distance else None
    if baseline is None:
        return _null_result(race, RaceStatus.NO_BASELINE)

    bias = bias_table.lookup(*race.day_key) if race.day_key else None
    finishers, anchor = compute_finisher_indices(race, baseline, bias, params)

    return RaceIndexResult(
        race=race,
        status=RaceStatus.INDEXED,
        anchor_index=anchor,
        generation=detect_generation(race.class_label),
        bias_value=bias.value if bias is not None else 0.0,
        has_bias=bias is not None,
        finishers=finishers,
    )


def index_corpus(
    races: Iterable[RaceRecord],
    baseline_table: BaselineTable,
    bias_table: BiasTable,
    params: RatingParams | None = None,
) -> tuple[list[RaceIndexResult], IndexRunSummary]:
    """Index every race; skipped races are counted, never raised."""
    params = params or RatingParams()
    summary = IndexRunSummary()
    results = []
    for race in races:
        result = index_race(race, baseline_table, bias_table, params)
        summary.record(result)
        results.append(result)

    logger.info(
        f"Index: processed {summary.processed}, skipped {summary.skipped}, "
        f"no bias data {summary.no_bias}"
    )
    return results, summary
