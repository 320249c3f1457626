"""SQLAlchemy models for the rating database.

Separate SQLite DB (baba.db) holding the imported result corpus, the
official track measurements, and the last built baseline and bias tables.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import DeclarativeBase, Session, relationship, sessionmaker


DB_PATH = Path("data/baba.db")


class Base(DeclarativeBase):
    pass


class ResultRace(Base):
    """One row per race in the result corpus."""

    __tablename__ = "result_races"

    id = Column(Integer, primary_key=True, autoincrement=True)
    race_id = Column(String(12), unique=True, nullable=False)  # YYYYVVKKDDNN
    year = Column(Integer, nullable=False)
    venue = Column(String(20), nullable=False)
    meeting = Column(Integer)  # 開催 "4回" -> 4
    day = Column(Integer)  # 開催日 "9日目" -> 9
    race_number = Column(Integer)
    class_label = Column(String(100))
    surface = Column(String(10))  # 芝 / ダート
    distance = Column(Integer)  # meters
    weather = Column(String(20))
    condition = Column(String(10))  # 良 / 稍重 / 重 / 不良
    source_file = Column(String(200))
    imported_at = Column(DateTime, default=datetime.utcnow)

    runners = relationship(
        "ResultRunner",
        back_populates="race",
        order_by="ResultRunner.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_rr_venue_dist", "venue", "distance"),
        Index("ix_rr_day", "year", "venue", "meeting", "day"),
    )


class ResultRunner(Base):
    """One row per runner line, in official order."""

    __tablename__ = "result_runners"

    id = Column(Integer, primary_key=True, autoincrement=True)
    race_fk = Column(Integer, ForeignKey("result_races.id"), nullable=False)
    race_id = Column(String(12), nullable=False)
    position = Column(Integer, nullable=False)  # row order in the result table
    rank = Column(String(10))  # 着順, may be 中止/取消/除外
    horse_name = Column(String(100))
    time = Column(String(20))  # "1:55.2"
    closing = Column(String(10))  # 上がり "33.6"
    fields_json = Column(Text)  # every source column, for output rows

    race = relationship("ResultRace", back_populates="runners")

    __table_args__ = (
        Index("ix_rrun_race", "race_id"),
    )

    @property
    def fields(self) -> dict:
        return json.loads(self.fields_json) if self.fields_json else {}


class TrackMeasurementRow(Base):
    """Official cushion value and turf moisture for one race-day."""

    __tablename__ = "track_measurements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    year = Column(Integer, nullable=False)
    venue = Column(String(20), nullable=False)
    meeting = Column(Integer, nullable=False)
    day = Column(Integer, nullable=False)
    date = Column(String(20))
    cushion = Column(Float)
    moisture_goal = Column(Float)
    moisture_corner = Column(Float)

    __table_args__ = (
        UniqueConstraint("year", "venue", "meeting", "day", name="uq_tm_day"),
    )


class BaselineTime(Base):
    """Stored baseline table entry (full refresh on every build)."""

    __tablename__ = "baseline_times"

    id = Column(Integer, primary_key=True, autoincrement=True)
    venue = Column(String(20), nullable=False)
    distance = Column(Integer, nullable=False)
    category = Column(String(10), nullable=False)
    anchor_index = Column(Integer, nullable=False)
    early_seconds = Column(Float, nullable=False)
    closing_seconds = Column(Float, nullable=False)
    total_seconds = Column(Float, nullable=False)
    slope = Column(Float, nullable=False)
    sample_count = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("venue", "distance", "category", name="uq_bt_key"),
    )


class TrackBiasDay(Base):
    """Stored bias table entry (full refresh on every build)."""

    __tablename__ = "track_bias_days"

    id = Column(Integer, primary_key=True, autoincrement=True)
    year = Column(Integer, nullable=False)
    venue = Column(String(20), nullable=False)
    meeting = Column(Integer, nullable=False)
    day = Column(Integer, nullable=False)
    value = Column(Float, nullable=False)
    sample_count = Column(Integer, nullable=False)
    label = Column(String(20))

    __table_args__ = (
        UniqueConstraint("year", "venue", "meeting", "day", name="uq_tbd_day"),
    )


# --- Database setup ---

def get_engine(db_path: str | Path | None = None):
    """Create SQLite engine for the rating DB."""
    path = Path(db_path) if db_path else DB_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(
        f"sqlite:///{path}",
        echo=False,
        connect_args={"check_same_thread": False},
    )


def get_session(db_path: str | Path | None = None) -> Session:
    """Get a sync session for the rating DB."""
    engine = get_engine(db_path)
    factory = sessionmaker(bind=engine)
    return factory()


def init_db(db_path: str | Path | None = None):
    """Create all tables in the rating DB."""
    engine = get_engine(db_path)
    Base.metadata.create_all(engine)
    return engine
