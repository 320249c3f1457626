"""Bias vs physical track measurement correlator.

Offline validation of the bias scale: joins each classified race-day with
the published track measurements for that day (cushion value as a
firmness scalar, turf moisture at the goal line and at the 4th corner),
reports correlations, fits ``bias ≈ a·cushion + b·moisture + c`` and
re-tiers the predicted bias to cross-check the measured tiers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from .bias import BIAS_LABELS, BiasEntry, BiasKey, BiasTable, classify_bias_values
from .params import BIAS_PERCENTILES
from .stats import SingularSystemError, fit_plane, mean, pearson, r_squared

logger = logging.getLogger(__name__)

CUSHION_BINS = (
    ("~7.5", 0.0, 7.5),
    ("7.5~8.5", 7.5, 8.5),
    ("8.5~9.0", 8.5, 9.0),
    ("9.0~9.5", 9.0, 9.5),
    ("9.5~10.0", 9.5, 10.0),
    ("10.0~", 10.0, float("inf")),
)

MOISTURE_BINS = (
    ("~10%", 0.0, 10.0),
    ("10~13%", 10.0, 13.0),
    ("13~16%", 13.0, 16.0),
    ("16~20%", 16.0, 20.0),
    ("20~25%", 20.0, 25.0),
    ("25%~", 25.0, float("inf")),
)


@dataclass(frozen=True)
class TrackMeasurement:
    """Official going measurements for one race-day."""

    year: int
    venue: str
    meeting: int
    day: int
    date: str = ""
    cushion: float | None = None
    moisture_goal: float | None = None
    moisture_corner: float | None = None

    @property
    def key(self) -> BiasKey:
        return BiasKey(self.year, self.venue, self.meeting, self.day)


@dataclass(frozen=True)
class JoinedDay:
    bias: BiasEntry
    measurement: TrackMeasurement


@dataclass(frozen=True)
class PlaneFit:
    """bias ≈ a·cushion + b·moisture_goal + c"""

    a: float
    b: float
    c: float
    r_squared: float | None
    sample_count: int

    def predict(self, cushion: float, moisture: float) -> float:
        return self.a * cushion + self.b * moisture + self.c


@dataclass(frozen=True)
class BinSummary:
    label: str
    count: int
    mean_bias: float | None


@dataclass(frozen=True)
class TierComparison:
    key: BiasKey
    measured_label: str
    predicted_label: str
    measured_value: float
    predicted_value: float


@dataclass
class CorrelationReport:
    joined_count: int = 0
    corr_cushion: float | None = None
    corr_moisture_goal: float | None = None
    corr_moisture_corner: float | None = None
    fit: PlaneFit | None = None
    predicted_cut_points: list[float] = field(default_factory=list)
    comparisons: list[TierComparison] = field(default_factory=list)
    cushion_bins: list[BinSummary] = field(default_factory=list)
    moisture_bins: list[BinSummary] = field(default_factory=list)

    @property
    def tier_agreement(self) -> float | None:
        """Share of days whose predicted tier equals the measured tier."""
        if not self.comparisons:
            return None
        same = sum(1 for c in self.comparisons if c.measured_label == c.predicted_label)
        return same / len(self.comparisons)

    def tier_distance(self) -> float | None:
        """Mean absolute tier gap between measured and predicted labels."""
        if not self.comparisons:
            return None
        gaps = [
            abs(BIAS_LABELS.index(c.measured_label) - BIAS_LABELS.index(c.predicted_label))
            for c in self.comparisons
        ]
        return mean(gaps)


def join_measurements(
    bias_table: BiasTable,
    measurements: Iterable[TrackMeasurement],
) -> list[JoinedDay]:
    """Pair bias entries with measurements on (year, venue, meeting, day)."""
    joined = []
    for m in measurements:
        entry = bias_table.lookup(*m.key)
        if entry is not None:
            joined.append(JoinedDay(bias=entry, measurement=m))
    joined.sort(key=lambda j: tuple(j.bias.key))
    return joined


def _correlate(joined: Sequence[JoinedDay], attr: str) -> float | None:
    pairs = [
        (getattr(j.measurement, attr), j.bias.value)
        for j in joined
        if getattr(j.measurement, attr) is not None
    ]
    if not pairs:
        return None
    return pearson([p[0] for p in pairs], [p[1] for p in pairs])


def summarize_bins(
    joined: Sequence[JoinedDay],
    attr: str,
    bins: Sequence[tuple[str, float, float]],
) -> list[BinSummary]:
    """Mean bias per measurement band (lower bound inclusive)."""
    summaries = []
    for label, lo, hi in bins:
        values = [
            j.bias.value for j in joined
            if getattr(j.measurement, attr) is not None
            and lo <= getattr(j.measurement, attr) < hi
        ]
        summaries.append(BinSummary(
            label=label,
            count=len(values),
            mean_bias=round(mean(values), 2) if values else None,
        ))
    return summaries


def fit_bias_plane(joined: Sequence[JoinedDay]) -> PlaneFit | None:
    """Regress bias on cushion and goal moisture, None when it cannot be fit."""
    usable = [
        j for j in joined
        if j.measurement.cushion is not None and j.measurement.moisture_goal is not None
    ]
    xs = [j.measurement.cushion for j in usable]
    ys = [j.measurement.moisture_goal for j in usable]
    zs = [j.bias.value for j in usable]
    try:
        a, b, c = fit_plane(xs, ys, zs)
    except SingularSystemError as e:
        logger.warning(f"Bias regression skipped: {e}")
        return None

    predicted = [a * x + b * y + c for x, y in zip(xs, ys)]
    return PlaneFit(a=a, b=b, c=c, r_squared=r_squared(zs, predicted), sample_count=len(usable))


def correlate(
    bias_table: BiasTable,
    measurements: Iterable[TrackMeasurement],
    percentiles: Sequence[int] = BIAS_PERCENTILES,
) -> CorrelationReport:
    """Build the full correlation report."""
    joined = join_measurements(bias_table, measurements)
    report = CorrelationReport(joined_count=len(joined))
    if not joined:
        logger.warning("No bias days matched any track measurement")
        return report

    report.corr_cushion = _correlate(joined, "cushion")
    report.corr_moisture_goal = _correlate(joined, "moisture_goal")
    report.corr_moisture_corner = _correlate(joined, "moisture_corner")
    report.cushion_bins = summarize_bins(joined, "cushion", CUSHION_BINS)
    report.moisture_bins = summarize_bins(joined, "moisture_goal", MOISTURE_BINS)

    report.fit = fit_bias_plane(joined)
    if report.fit is None:
        return report

    usable = [
        j for j in joined
        if j.measurement.cushion is not None and j.measurement.moisture_goal is not None
    ]
    predicted = [
        report.fit.predict(j.measurement.cushion, j.measurement.moisture_goal)
        for j in usable
    ]
    labels, cuts = classify_bias_values(predicted, percentiles)
    report.predicted_cut_points = cuts
    report.comparisons = [
        TierComparison(
            key=j.bias.key,
            measured_label=j.bias.label,
            predicted_label=label,
            measured_value=j.bias.value,
            predicted_value=round(p, 2),
        )
        for j, label, p in zip(usable, labels, predicted)
    ]
    return report


def _fmt(value: float | None, fmt: str = ".4f") -> str:
    return "n/a" if value is None else format(value, fmt)


def format_report(report: CorrelationReport) -> list[str]:
    """Human-readable report lines."""
    lines = [f"Joined race-days: {report.joined_count}"]
    if not report.joined_count:
        return lines

    lines.append("")
    lines.append("=== Correlation with day bias ===")
    lines.append(f"Cushion value:        r = {_fmt(report.corr_cushion)}")
    lines.append(f"Moisture (goal):      r = {_fmt(report.corr_moisture_goal)}")
    lines.append(f"Moisture (4th turn):  r = {_fmt(report.corr_moisture_corner)}")

    for title, bins in (
        ("Cushion value", report.cushion_bins),
        ("Moisture (goal)", report.moisture_bins),
    ):
        lines.append("")
        lines.append(f"=== {title} bands ===")
        for b in bins:
            mean_bias = "-" if b.mean_bias is None else f"{b.mean_bias:+.2f}"
            lines.append(f"  {b.label:<10} n={b.count:<5} mean bias {mean_bias}")

    lines.append("")
    lines.append("=== Regression ===")
    if report.fit is None:
        lines.append("No fit (singular system or too few complete days)")
        return lines
    fit = report.fit
    lines.append(
        f"bias = {fit.a:.3f} x cushion + {fit.b:.3f} x moisture + {fit.c:.3f} "
        f"(n={fit.sample_count})"
    )
    lines.append(f"R^2 = {_fmt(fit.r_squared)}")
    lines.append(f"Predicted cut points: {[round(c, 2) for c in report.predicted_cut_points]}")
    lines.append(f"Tier agreement: {_fmt(report.tier_agreement, '.1%')}")
    lines.append(f"Mean tier distance: {_fmt(report.tier_distance(), '.2f')}")
    return lines
