"""Shared test fixtures for baba."""

import csv
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker

from baba.importer import RESULT_COLUMNS
from baba.models import init_db


@pytest.fixture
def db_path(tmp_path):
    """Temporary SQLite DB for tests."""
    return tmp_path / "test_baba.db"


@pytest.fixture
def session(db_path):
    """Get a session with empty tables."""
    engine = init_db(db_path)
    Session = sessionmaker(bind=engine)
    sess = Session()
    yield sess
    sess.close()


@pytest.fixture
def result_dir(tmp_path):
    path = tmp_path / "race_result"
    path.mkdir()
    return path


@pytest.fixture
def result_row():
    """Build one result CSV row; race-level defaults are a Tokyo turf 2000m open race."""

    def _row(rank="1", horse="Horse A", time="2:00.0", closing="34.0", **overrides):
        row = {
            "競馬場名": "東京",
            "開催": "4回",
            "開催日": "9日目",
            "クラス": "3歳以上オープン",
            "芝/ダート": "芝",
            "距離": "2000",
            "天候": "晴",
            "馬場": "良",
            "着順": rank,
            "枠番": "1",
            "馬番": "1",
            "馬名": horse,
            "性齢": "牡4",
            "斤量": "58.0",
            "騎手": "Jockey",
            "タイム": time,
            "着差": "",
            "通過": "5-5",
            "上がり": closing,
            "人気": "1",
            "単勝オッズ": "2.5",
        }
        row.update(overrides)
        return row

    return _row


@pytest.fixture
def write_result_csv(result_dir):
    """Write rows to result_<race_id>.csv in the temporary result dir."""

    def _write(race_id, rows, columns=RESULT_COLUMNS) -> Path:
        path = result_dir / f"result_{race_id}.csv"
        with open(path, "w", encoding="utf-8", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=list(columns), extrasaction="ignore")
            writer.writeheader()
            for row in rows:
                writer.writerow(row)
        return path

    return _write
