#!/usr/bin/env python3
"""Check the estimated track bias against the official going measurements.

Usage:
    python scripts/analyze_track_bias.py [--db data/baba.db] [--measurements data/track_measurements.json]

Joins every stored bias day with the cushion value and turf moisture
published for that day, prints correlations and banded averages, fits
bias = a x cushion + b x moisture + c, and reports how often the tier
predicted from the measurements matches the tier estimated from times.

Run the pipeline (python -m baba.runner) first so the bias table exists.
"""

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from baba.config import settings  # noqa: E402
from baba.engine.correlator import correlate, format_report  # noqa: E402
from baba.export import load_bias_table  # noqa: E402
from baba.importer import import_measurements, load_measurements  # noqa: E402
from baba.models import get_session  # noqa: E402


def analyze(db_path: str, measurements_path: str | None) -> int:
    if measurements_path:
        import_measurements(measurements_path, db_path)

    session = get_session(db_path)
    try:
        bias = load_bias_table(session)
        measurements = load_measurements(session)
    finally:
        session.close()

    print(f"Bias days: {len(bias)}, measured days: {len(measurements)}")
    if not len(bias):
        print("ERROR: no bias table stored, run python -m baba.runner first")
        return 1

    report = correlate(bias, measurements, settings.bias_percentiles)
    for line in format_report(report):
        print(line)
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--db", default=str(settings.db_path))
    parser.add_argument(
        "--measurements",
        default=None,
        help="Measurement JSON to import before analysing",
    )
    args = parser.parse_args()

    if not Path(args.db).exists():
        print(f"ERROR: DB not found at {args.db}")
        sys.exit(1)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    sys.exit(analyze(args.db, args.measurements))
