"""Import race result CSVs and track measurements into the rating DB.

Usage:
    python -m baba.importer --result-dir data/race_result --measurements data/track_measurements.json

Result files are named ``result_<race_id>.csv`` with one runner per row
and the race-level columns (venue, meeting, class, surface, distance,
weather, going) repeated on every row. Already imported races are skipped,
so re-running over a growing directory only adds the new files.
"""

from __future__ import annotations

import csv
import json
import logging
import re
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.orm import selectinload, sessionmaker

from .engine.correlator import TrackMeasurement
from .engine.records import (
    FinisherRecord,
    RaceRecord,
    Surface,
    TrackCondition,
    parse_ordinal,
)
from .models import (
    ResultRace,
    ResultRunner,
    TrackMeasurementRow,
    init_db,
)
from .venues import is_known_venue, normalize_venue, parse_race_id, venue_from_race_id

logger = logging.getLogger(__name__)

RESULT_COLUMNS = (
    "競馬場名", "開催", "開催日", "クラス", "芝/ダート", "距離", "天候", "馬場",
    "着順", "枠番", "馬番", "馬名", "性齢", "斤量", "騎手", "タイム", "着差",
    "通過", "上がり", "人気", "単勝オッズ",
)

_RESULT_FILE_RE = re.compile(r"^result_(\d{12})$")

# Measurement JSON keys (as published) -> TrackMeasurement fields
MEASUREMENT_KEYS = {
    "年": "year",
    "競馬場": "venue",
    "開催": "meeting",
    "日次": "day",
    "日付": "date",
    "クッション値": "cushion",
    "芝含水率ゴール前": "moisture_goal",
    "芝含水率4コーナー": "moisture_corner",
}


def race_id_from_filename(filename: str) -> str | None:
    """result_202305040911.csv -> "202305040911"."""
    match = _RESULT_FILE_RE.match(Path(filename).stem)
    return match.group(1) if match else None


def read_result_rows(filepath: Path) -> list[dict[str, str]]:
    """Read a result CSV into row dicts, dropping blank lines."""
    with open(filepath, encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f)
        rows = []
        for row in reader:
            cleaned = {k.strip(): (v or "").strip() for k, v in row.items() if k}
            if any(cleaned.values()):
                rows.append(cleaned)
    return rows


def _to_float(value) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def _to_int(value) -> int | None:
    if isinstance(value, int):
        return value
    return parse_ordinal(value) if value not in (None, "") else None


def build_race_record(race_id: str, rows: list[dict[str, str]]) -> RaceRecord | None:
    """Turn a result table into a RaceRecord.

    Race-level fields come from the first row. Venue, meeting and day fall
    back to the race id when their columns are missing or unparseable.
    """
    if not rows:
        return None
    parts = parse_race_id(race_id)
    if parts is None:
        logger.warning(f"Malformed race id {race_id}")
        return None

    first = rows[0]
    venue = normalize_venue(first.get("競馬場名")) or venue_from_race_id(race_id)
    if venue and not is_known_venue(venue):
        logger.warning(f"Unknown venue {venue} in race {race_id}")
    meeting = parse_ordinal(first.get("開催"))
    day = parse_ordinal(first.get("開催日"))

    finishers = tuple(
        FinisherRecord(
            rank=row.get("着順", ""),
            time=row.get("タイム", ""),
            closing=row.get("上がり", ""),
            horse_name=row.get("馬名", ""),
            fields=dict(row),
        )
        for row in rows
    )

    return RaceRecord(
        race_id=race_id,
        year=parts.year,
        venue=venue,
        surface=Surface.parse(first.get("芝/ダート")),
        distance=parse_ordinal(first.get("距離")),
        class_label=first.get("クラス", ""),
        condition=TrackCondition.parse(first.get("馬場")),
        meeting=meeting if meeting is not None else parts.meeting,
        day=day if day is not None else parts.day,
        weather=first.get("天候", ""),
        finishers=finishers,
    )


def read_result_file(filepath: Path) -> RaceRecord | None:
    """Parse one result_<race_id>.csv, None if the name or content is unusable."""
    race_id = race_id_from_filename(filepath.name)
    if race_id is None:
        logger.warning(f"Skipping {filepath.name}: not a result_<race_id>.csv file")
        return None
    return build_race_record(race_id, read_result_rows(filepath))


def import_result_file(session, filepath: Path) -> dict:
    """Import a single result file. Returns stats dict."""
    race = read_result_file(filepath)
    if race is None:
        return {"races": 0, "runners": 0, "skipped": True}

    existing = session.execute(
        select(ResultRace).where(ResultRace.race_id == race.race_id)
    ).scalar_one_or_none()
    if existing:
        return {"races": 0, "runners": 0, "skipped": True}

    parts = parse_race_id(race.race_id)
    row = ResultRace(
        race_id=race.race_id,
        year=race.year,
        venue=race.venue,
        meeting=race.meeting,
        day=race.day,
        race_number=parts.race_number if parts else None,
        class_label=race.class_label,
        surface=race.surface.value if race.surface else None,
        distance=race.distance,
        weather=race.weather,
        condition=race.condition.value if race.condition else None,
        source_file=filepath.name,
    )
    for position, finisher in enumerate(race.finishers, start=1):
        row.runners.append(ResultRunner(
            race_id=race.race_id,
            position=position,
            rank=finisher.rank,
            horse_name=finisher.horse_name,
            time=finisher.time,
            closing=finisher.closing,
            fields_json=json.dumps(finisher.fields, ensure_ascii=False),
        ))
    session.add(row)
    return {"races": 1, "runners": len(race.finishers), "skipped": False}


def import_results(result_dir: str | Path, db_path: str | Path | None = None) -> dict:
    """Import every result CSV in a directory (idempotent).

    A file that fails to parse or insert is rolled back and logged; the
    rest of the batch continues.
    """
    result_dir = Path(result_dir)
    engine = init_db(db_path)
    SessionFactory = sessionmaker(bind=engine)

    files = sorted(result_dir.glob("*.csv")) if result_dir.is_dir() else []
    print(f"Found {len(files)} result files to import")

    totals = {"races": 0, "runners": 0, "skipped": 0, "errors": 0}
    batch_size = 500

    for i, filepath in enumerate(files):
        session = SessionFactory()
        try:
            stats = import_result_file(session, filepath)
            session.commit()
            totals["races"] += stats["races"]
            totals["runners"] += stats["runners"]
            totals["skipped"] += int(stats["skipped"])
            if (i + 1) % batch_size == 0:
                print(
                    f"  [{i + 1}/{len(files)}] "
                    f"{totals['races']} races, {totals['runners']} runners"
                )
        except Exception as e:
            session.rollback()
            totals["errors"] += 1
            logger.error(f"Failed to import {filepath.name}: {e}")
            print(f"  ERROR: {filepath.name}: {e}")
        finally:
            session.close()

    print(
        f"Result import complete: {totals['races']} new races, "
        f"{totals['runners']} runners ({totals['skipped']} skipped)"
    )
    return totals


def parse_measurement(item: dict) -> TrackMeasurement | None:
    """One measurement record, keyed in Japanese or by field name."""
    data = {MEASUREMENT_KEYS.get(k, k): v for k, v in item.items()}
    year = _to_int(data.get("year"))
    meeting = _to_int(data.get("meeting"))
    day = _to_int(data.get("day"))
    venue = normalize_venue(data.get("venue"))
    if year is None or meeting is None or day is None or not venue:
        return None
    return TrackMeasurement(
        year=year,
        venue=venue,
        meeting=meeting,
        day=day,
        date=str(data.get("date") or ""),
        cushion=_to_float(data.get("cushion")),
        moisture_goal=_to_float(data.get("moisture_goal")),
        moisture_corner=_to_float(data.get("moisture_corner")),
    )


def read_measurements(filepath: str | Path) -> list[TrackMeasurement]:
    """Read the measurement JSON array, dropping records without a day key."""
    with open(filepath, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{filepath}: expected a JSON array of measurements")

    measurements = []
    for item in data:
        m = parse_measurement(item) if isinstance(item, dict) else None
        if m is None:
            logger.warning(f"Skipping measurement without year/venue/meeting/day: {item}")
            continue
        measurements.append(m)
    return measurements


def import_measurements(filepath: str | Path, db_path: str | Path | None = None) -> int:
    """Import track measurements, skipping days already stored. Returns rows added."""
    engine = init_db(db_path)
    SessionFactory = sessionmaker(bind=engine)
    measurements = read_measurements(filepath)

    session = SessionFactory()
    added = 0
    try:
        existing = {
            (r.year, r.venue, r.meeting, r.day)
            for r in session.execute(select(TrackMeasurementRow)).scalars()
        }
        for m in measurements:
            if tuple(m.key) in existing:
                continue
            session.add(TrackMeasurementRow(
                year=m.year,
                venue=m.venue,
                meeting=m.meeting,
                day=m.day,
                date=m.date,
                cushion=m.cushion,
                moisture_goal=m.moisture_goal,
                moisture_corner=m.moisture_corner,
            ))
            existing.add(tuple(m.key))
            added += 1
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Failed to import measurements from {filepath}: {e}")
        raise
    finally:
        session.close()

    print(f"Measurement import complete: {added} new days ({len(measurements)} read)")
    return added


# --- Loading back into engine records ---

def race_from_row(row: ResultRace) -> RaceRecord:
    return RaceRecord(
        race_id=row.race_id,
        year=row.year,
        venue=row.venue,
        surface=Surface.parse(row.surface),
        distance=row.distance,
        class_label=row.class_label or "",
        condition=TrackCondition.parse(row.condition),
        meeting=row.meeting,
        day=row.day,
        weather=row.weather or "",
        finishers=tuple(
            FinisherRecord(
                rank=r.rank or "",
                time=r.time or "",
                closing=r.closing or "",
                horse_name=r.horse_name or "",
                fields=r.fields,
            )
            for r in row.runners
        ),
    )


def load_corpus(session) -> list[RaceRecord]:
    """Every stored race, ordered by race id."""
    rows = session.execute(
        select(ResultRace)
        .options(selectinload(ResultRace.runners))
        .order_by(ResultRace.race_id)
    ).scalars().all()
    return [race_from_row(r) for r in rows]


def load_race(session, race_id: str) -> RaceRecord | None:
    row = session.execute(
        select(ResultRace)
        .options(selectinload(ResultRace.runners))
        .where(ResultRace.race_id == race_id)
    ).scalar_one_or_none()
    return race_from_row(row) if row else None


def load_measurements(session) -> list[TrackMeasurement]:
    rows = session.execute(
        select(TrackMeasurementRow).order_by(
            TrackMeasurementRow.year,
            TrackMeasurementRow.venue,
            TrackMeasurementRow.meeting,
            TrackMeasurementRow.day,
        )
    ).scalars().all()
    return [
        TrackMeasurement(
            year=r.year,
            venue=r.venue,
            meeting=r.meeting,
            day=r.day,
            date=r.date or "",
            cushion=r.cushion,
            moisture_goal=r.moisture_goal,
            moisture_corner=r.moisture_corner,
        )
        for r in rows
    ]


if __name__ == "__main__":
    import argparse

    from .config import settings

    parser = argparse.ArgumentParser(description="Import race results and track measurements")
    parser.add_argument(
        "--result-dir",
        default=str(settings.result_dir),
        help="Directory of result_<race_id>.csv files",
    )
    parser.add_argument(
        "--measurements",
        default=None,
        help="Track measurement JSON file (optional)",
    )
    parser.add_argument(
        "--db-path",
        default=str(settings.db_path),
        help="Path to the rating DB",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    import_results(args.result_dir, args.db_path)
    if args.measurements:
        import_measurements(args.measurements, args.db_path)
