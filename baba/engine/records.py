"""Normalised race result records.

A RaceRecord is one race from the result corpus with its finishers in
official order. Records are plain data: parsing helpers turn the raw
result strings into seconds, and everything downstream works from the
derived properties.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from enum import Enum

_RACE_TIME_RE = re.compile(r"^(\d+):(\d+\.\d+)$")
_CLOSING_TIME_RE = re.compile(r"^\d+(?:\.\d+)?$")
_LEADING_INT_RE = re.compile(r"^\s*(\d+)")


class Surface(str, Enum):
    """Racing surface as printed on result pages."""

    TURF = "芝"
    DIRT = "ダート"

    @classmethod
    def parse(cls, text: str | None) -> Surface | None:
        if not text:
            return None
        t = text.strip()
        if t in ("ダ", "ダート"):
            return cls.DIRT
        if t == "芝":
            return cls.TURF
        return None


class TrackCondition(str, Enum):
    """Official going. GOOD is the reference condition for baselines."""

    GOOD = "良"
    SLIGHTLY_HEAVY = "稍重"
    HEAVY = "重"
    BAD = "不良"

    @classmethod
    def parse(cls, text: str | None) -> TrackCondition | None:
        if not text:
            return None
        try:
            return cls(text.strip())
        except ValueError:
            return None


def parse_race_time(time_str: str | None) -> float | None:
    """Parse an "M:SS.S" finishing time to seconds.

    Anything not matching ``digits:digits.digits`` (blank, "中止", a bare
    seconds value) returns None, as does a zero time.
    """
    if not time_str or not isinstance(time_str, str):
        return None
    match = _RACE_TIME_RE.match(time_str.strip())
    if not match:
        return None
    secs = int(match.group(1)) * 60 + float(match.group(2))
    return secs if secs > 0 else None


def parse_closing_time(value: str | None) -> float | None:
    """Parse a closing-segment (last 600m) time such as "34.5"."""
    if not value or not isinstance(value, str):
        return None
    v = value.strip()
    if not _CLOSING_TIME_RE.match(v):
        return None
    secs = float(v)
    return secs if secs > 0 else None


def format_race_time(seconds: float) -> str:
    """Seconds -> "M:SS.S" (e.g. 119.32 -> "1:59.3")."""
    minutes = math.floor(seconds / 60)
    rest = seconds - minutes * 60
    return f"{minutes}:{rest:04.1f}"


def parse_ordinal(text: str | None) -> int | None:
    """Leading integer of a meeting/day label: "4回" -> 4, "9日目" -> 9."""
    if text is None:
        return None
    match = _LEADING_INT_RE.match(str(text))
    return int(match.group(1)) if match else None


def parse_rank(text: str | None) -> int | None:
    """Numeric finishing rank, None for 中止/取消/除外/失格 and blanks."""
    if not text:
        return None
    t = text.strip()
    return int(t) if t.isdigit() else None


@dataclass(frozen=True)
class FinisherRecord:
    """One runner's line in a result table."""

    rank: str
    time: str = ""
    closing: str = ""
    horse_name: str = ""
    fields: dict = field(default_factory=dict, compare=False, hash=False)  # raw row

    @property
    def finish_rank(self) -> int | None:
        return parse_rank(self.rank)

    @property
    def total_seconds(self) -> float | None:
        return parse_race_time(self.time)

    @property
    def closing_seconds(self) -> float | None:
        return parse_closing_time(self.closing)

    @property
    def early_seconds(self) -> float | None:
        """Total minus closing segment, None unless both parse."""
        total = self.total_seconds
        closing = self.closing_seconds
        if total is None or closing is None:
            return None
        return total - closing

    @property
    def is_finisher(self) -> bool:
        """Numeric rank: scratched/disqualified runners never aggregate."""
        return self.finish_rank is not None

    @property
    def has_sectional(self) -> bool:
        """Finisher with both total and closing times."""
        return self.is_finisher and self.early_seconds is not None


@dataclass(frozen=True)
class RaceRecord:
    """One race from the result corpus."""

    race_id: str
    year: int
    venue: str
    surface: Surface | None
    distance: int | None
    class_label: str
    condition: TrackCondition | None
    meeting: int | None
    day: int | None
    weather: str = ""
    finishers: tuple[FinisherRecord, ...] = ()

    @property
    def is_turf(self) -> bool:
        return self.surface is Surface.TURF

    @property
    def day_key(self) -> tuple[int, str, int, int] | None:
        """(year, venue, meeting, day) or None when the meeting is unknown."""
        if self.meeting is None or self.day is None or not self.venue:
            return None
        return (self.year, self.venue, self.meeting, self.day)

    def valid_finishers(self) -> list[FinisherRecord]:
        """Finishers with numeric rank and parseable total + closing times."""
        return [f for f in self.finishers if f.has_sectional]

    def timed_finishers(self) -> list[FinisherRecord]:
        """Finishers with numeric rank and a parseable total time."""
        return [
            f for f in self.finishers
            if f.is_finisher and f.total_seconds is not None
        ]
