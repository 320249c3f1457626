"""Persist and export the baseline and bias tables and per-race index files.

DB writes are full refreshes: every build replaces the stored tables.
JSON and CSV output is written in sorted order with no timestamps, so
identical inputs produce byte-identical files.
"""

from __future__ import annotations

import csv
import json
import logging
from pathlib import Path

from sqlalchemy import delete, select

from .engine.baseline import BaselineEntry, BaselineTable
from .engine.bias import BiasEntry, BiasTable
from .engine.classifier import RaceCategory
from .engine.index import INDEX_COLUMNS, RaceIndexResult
from .importer import RESULT_COLUMNS
from .models import BaselineTime, TrackBiasDay

logger = logging.getLogger(__name__)

BASE_TIMES_FILE = "base_times.json"
TRACK_BIAS_FILE = "track_bias.json"


# --- DB ---

def save_baseline_table(session, table: BaselineTable) -> int:
    """Replace the stored baseline table."""
    session.execute(delete(BaselineTime))
    for e in table.entries():
        session.add(BaselineTime(
            venue=e.venue,
            distance=e.distance,
            category=e.category.value,
            anchor_index=e.anchor_index,
            early_seconds=e.early_seconds,
            closing_seconds=e.closing_seconds,
            total_seconds=e.total_seconds,
            slope=e.slope,
            sample_count=e.sample_count,
        ))
    session.commit()
    logger.info(f"Stored {len(table)} baseline entries")
    return len(table)


def load_baseline_table(session) -> BaselineTable:
    rows = session.execute(select(BaselineTime)).scalars().all()
    return BaselineTable(
        BaselineEntry(
            venue=r.venue,
            distance=r.distance,
            category=RaceCategory(r.category),
            anchor_index=r.anchor_index,
            early_seconds=r.early_seconds,
            closing_seconds=r.closing_seconds,
            total_seconds=r.total_seconds,
            slope=r.slope,
            sample_count=r.sample_count,
        )
        for r in rows
    )


def save_bias_table(session, table: BiasTable) -> int:
    """Replace the stored bias table."""
    session.execute(delete(TrackBiasDay))
    for e in table.entries():
        session.add(TrackBiasDay(
            year=e.year,
            venue=e.venue,
            meeting=e.meeting,
            day=e.day,
            value=e.value,
            sample_count=e.sample_count,
            label=e.label,
        ))
    session.commit()
    logger.info(f"Stored {len(table)} bias days")
    return len(table)


def load_bias_table(session) -> BiasTable:
    rows = session.execute(select(TrackBiasDay)).scalars().all()
    return BiasTable(
        BiasEntry(
            year=r.year,
            venue=r.venue,
            meeting=r.meeting,
            day=r.day,
            value=r.value,
            sample_count=r.sample_count,
            label=r.label or "",
        )
        for r in rows
    )


# --- Files ---

def _write_json(path: Path, payload) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
        f.write("\n")
    return path


def write_base_times(table: BaselineTable, output_dir: str | Path) -> Path:
    """base_times.json, sorted by venue, distance, category."""
    return _write_json(Path(output_dir) / BASE_TIMES_FILE, table.to_rows())


def write_track_bias(table: BiasTable, output_dir: str | Path) -> Path:
    """track_bias.json, sorted by year, venue, meeting, day, with the cut points used."""
    payload = {
        "cut_points": list(table.cut_points),
        "days": table.to_rows(),
    }
    return _write_json(Path(output_dir) / TRACK_BIAS_FILE, payload)


def index_headers(result: RaceIndexResult) -> list[str]:
    """Result columns in the standard order, then any extras, then the indices."""
    seen = list(RESULT_COLUMNS)
    for f in result.finishers:
        for key in f.finisher.fields:
            if key not in seen and key not in INDEX_COLUMNS:
                seen.append(key)
    return seen + list(INDEX_COLUMNS)


def write_index_csv(result: RaceIndexResult, output_dir: str | Path) -> Path:
    """index_<race_id>.csv: every source column plus the three indices."""
    path = Path(output_dir) / f"index_{result.race.race_id}.csv"
    path.parent.mkdir(parents=True, exist_ok=True)
    headers = index_headers(result)
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=headers, restval="", lineterminator="\n")
        writer.writeheader()
        for row in result.rows():
            writer.writerow(row)
    return path
