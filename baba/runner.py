"""Rating pipeline runner: import, baselines, bias, indices, export.

Usage:
    python -m baba.runner                       # full run over the corpus
    python -m baba.runner --skip-import         # rebuild from the stored corpus
    python -m baba.runner --race-id 202305040911  # recompute one race

Stages:
    1. Import result CSVs (and measurements) -> baba.db (idempotent)
    2. Build the good-ground baseline table
    3. Estimate and classify per-day track bias
    4. Index every race against both tables
    5. Store the tables, write base_times.json, track_bias.json and
       index_<race_id>.csv files
    6. Print summary report
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path

from .config import get_settings
from .engine.baseline import BaselineBuildStats, BaselineTable, build_baseline_table
from .engine.bias import BIAS_LABELS, BiasBuildStats, BiasTable, build_bias_table
from .engine.index import IndexRunSummary, RaceIndexResult, index_corpus, index_race
from .engine.params import RatingParams
from .export import (
    load_baseline_table,
    load_bias_table,
    save_baseline_table,
    save_bias_table,
    write_base_times,
    write_index_csv,
    write_track_bias,
)
from .importer import import_measurements, import_results, load_corpus, load_race, read_result_file
from .models import get_session, init_db

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    baseline: BaselineTable
    baseline_stats: BaselineBuildStats
    bias: BiasTable
    bias_stats: BiasBuildStats = field(default_factory=BiasBuildStats)
    results: list[RaceIndexResult] = field(default_factory=list)
    summary: IndexRunSummary = field(default_factory=IndexRunSummary)
    files_written: int = 0


def run(
    result_dir: str | Path,
    db_path: str | Path | None = None,
    output_dir: str | Path | None = None,
    measurements_path: str | Path | None = None,
    skip_import: bool = False,
    params: RatingParams | None = None,
) -> PipelineResult:
    """Full pipeline: import → baseline → bias → index → export."""
    params = params or RatingParams()

    # Stage 1: Import
    if skip_import:
        print("Skipping import, using stored corpus")
        init_db(db_path)
    else:
        import_results(result_dir, db_path)
        if measurements_path and Path(measurements_path).exists():
            import_measurements(measurements_path, db_path)

    session = get_session(db_path)
    try:
        races = load_corpus(session)
        print(f"\nCorpus: {len(races):,} races")

        # Stage 2: Baselines
        print("\n=== Building Baseline Times ===")
        baseline, baseline_stats = build_baseline_table(races, params)

        # Stage 3: Bias
        print("\n=== Estimating Track Bias ===")
        bias, bias_stats = build_bias_table(races, baseline, params)

        # Stage 4: Index
        print("\n=== Calculating Indices ===")
        results, summary = index_corpus(races, baseline, bias, params)

        # Stage 5: Store + export
        save_baseline_table(session, baseline)
        save_bias_table(session, bias)
    finally:
        session.close()

    files_written = 0
    if output_dir is not None:
        write_base_times(baseline, output_dir)
        write_track_bias(bias, output_dir)
        for result in results:
            if result.indexed:
                write_index_csv(result, output_dir)
                files_written += 1

    outcome = PipelineResult(
        baseline=baseline,
        baseline_stats=baseline_stats,
        bias=bias,
        bias_stats=bias_stats,
        results=results,
        summary=summary,
        files_written=files_written,
    )
    print_summary(outcome)
    return outcome


def rate_race(
    race_id: str,
    db_path: str | Path | None = None,
    output_dir: str | Path | None = None,
    result_dir: str | Path | None = None,
    params: RatingParams | None = None,
) -> RaceIndexResult:
    """Recompute one race against the stored baseline and bias tables.

    The race is read from the DB, or from ``result_<race_id>.csv`` in
    ``result_dir`` when it has not been imported. Raises LookupError when
    neither has it.
    """
    params = params or RatingParams()
    init_db(db_path)
    session = get_session(db_path)
    try:
        race = load_race(session, race_id)
        baseline = load_baseline_table(session)
        bias = load_bias_table(session)
    finally:
        session.close()

    if race is None and result_dir is not None:
        path = Path(result_dir) / f"result_{race_id}.csv"
        if path.exists():
            race = read_result_file(path)
    if race is None:
        raise LookupError(f"Race {race_id} not found in the DB or result directory")
    if not len(baseline):
        logger.warning("Baseline table is empty; run the full pipeline first")

    result = index_race(race, baseline, bias, params)
    if output_dir is not None and result.indexed:
        path = write_index_csv(result, output_dir)
        print(f"Wrote {path}")
    return result


def print_summary(outcome: PipelineResult) -> None:
    s = outcome.summary
    print("\n=== Summary ===")
    print(f"Baseline entries:   {len(outcome.baseline)}")
    print(f"  races used:       {outcome.baseline_stats.races_used:,}")
    print(f"  finishers used:   {outcome.baseline_stats.finishers_used:,}")
    print(f"Bias days:          {len(outcome.bias)}")
    print(f"  races used:       {outcome.bias_stats.races_used:,}")
    print(f"  races skipped:    {outcome.bias_stats.races_skipped:,}")
    print(f"  days dropped:     {outcome.bias_stats.days_dropped:,}")
    label_counts = {label: 0 for label in BIAS_LABELS}
    for entry in outcome.bias:
        if entry.label in label_counts:
            label_counts[entry.label] += 1
    for label, count in label_counts.items():
        print(f"  {label:<14}    {count}")
    print(f"Races indexed:      {s.processed:,}")
    print(f"Races skipped:      {s.skipped:,}")
    print(f"  not turf:         {s.not_turf:,}")
    print(f"  unclassified:     {s.unclassified:,}")
    print(f"  no baseline:      {s.no_baseline:,}")
    print(f"No bias data:       {s.no_bias:,}")
    print(f"Null finishers:     {s.null_finishers:,}")
    if outcome.files_written:
        print(f"Index files:        {outcome.files_written:,}")


def print_race(result: RaceIndexResult) -> None:
    race = result.race
    print(f"\n{race.race_id} {race.venue} {race.class_label} {race.distance}m [{result.status.value}]")
    if not result.indexed:
        return
    bias_note = f"{result.bias_value:+.2f}" if result.has_bias else "none"
    print(f"Anchor {result.anchor_index}, day bias {bias_note}")
    for f in result.finishers:
        idx = f.index
        print(
            f"  {f.finisher.rank:>3} {f.finisher.horse_name:<18} "
            f"{idx.overall if idx.overall is not None else '-':>4} "
            f"{idx.closing if idx.closing is not None else '-':>4} "
            f"{idx.ability if idx.ability is not None else '-':>4}"
        )


if __name__ == "__main__":
    import argparse

    settings = get_settings()

    parser = argparse.ArgumentParser(description="Build baselines, track bias and performance indices")
    parser.add_argument(
        "--result-dir",
        default=str(settings.result_dir),
        help="Directory of result_<race_id>.csv files",
    )
    parser.add_argument(
        "--db-path",
        default=str(settings.db_path),
        help="Path to the rating DB",
    )
    parser.add_argument(
        "--output-dir",
        default=str(settings.output_dir),
        help="Where to write JSON tables and index CSVs",
    )
    parser.add_argument(
        "--measurements",
        default=str(settings.measurements_path),
        help="Track measurement JSON to import (skipped if missing)",
    )
    parser.add_argument(
        "--skip-import",
        action="store_true",
        help="Use the stored corpus without importing",
    )
    parser.add_argument(
        "--race-id",
        default=None,
        help="Recompute a single race against the stored tables",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    params = RatingParams.from_settings(settings)

    if args.race_id:
        try:
            result = rate_race(args.race_id, args.db_path, args.output_dir, args.result_dir, params)
        except LookupError as e:
            logger.error(str(e))
            sys.exit(1)
        print_race(result)
    else:
        run(
            args.result_dir,
            args.db_path,
            args.output_dir,
            args.measurements,
            args.skip_import,
            params,
        )
