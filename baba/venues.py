"""Centralised venue registry for the ten JRA racecourses.

Race ids follow the netkeiba layout ``YYYYVVKKDDNN``: year, venue code,
meeting (kai), day of meeting (nichime) and race number.
"""
import logging
import re
from typing import NamedTuple

logger = logging.getLogger(__name__)

# JRA venue code -> canonical venue name (as printed on result pages)
VENUE_CODES = {
    "01": "札幌",
    "02": "函館",
    "03": "福島",
    "04": "新潟",
    "05": "東京",
    "06": "中山",
    "07": "中京",
    "08": "京都",
    "09": "阪神",
    "10": "小倉",
}

# Romanised names seen in file names, track-report URLs and hand-entered data
VENUE_ALIASES = {
    "sapporo": "札幌",
    "hakodate": "函館",
    "fukushima": "福島",
    "niigata": "新潟",
    "tokyo": "東京",
    "nakayama": "中山",
    "chukyo": "中京",
    "kyoto": "京都",
    "hanshin": "阪神",
    "kokura": "小倉",
}

_CANONICAL = set(VENUE_CODES.values())

_RACE_ID_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})(\d{2})(\d{2})$")


class RaceIdParts(NamedTuple):
    year: int
    venue_code: str
    meeting: int
    day: int
    race_number: int


def normalize_venue(venue: str | None) -> str:
    """Normalise a venue name to its canonical Japanese form.

    Unknown names are returned stripped but otherwise unchanged.
    """
    if not venue:
        return ""
    v = venue.strip()
    if v in _CANONICAL:
        return v
    alias = VENUE_ALIASES.get(v.lower())
    if alias:
        return alias
    return v


def parse_race_id(race_id: str) -> RaceIdParts | None:
    """Split a 12 digit race id into its parts, or None if malformed."""
    match = _RACE_ID_RE.match(race_id.strip()) if race_id else None
    if not match:
        return None
    year, venue_code, meeting, day, race_number = match.groups()
    return RaceIdParts(
        year=int(year),
        venue_code=venue_code,
        meeting=int(meeting),
        day=int(day),
        race_number=int(race_number),
    )


def venue_from_race_id(race_id: str) -> str:
    """Canonical venue for a race id ("" when the code is unknown)."""
    parts = parse_race_id(race_id)
    if not parts:
        return ""
    venue = VENUE_CODES.get(parts.venue_code, "")
    if not venue:
        logger.debug(f"Unknown venue code {parts.venue_code} in race {race_id}")
    return venue


def is_known_venue(venue: str) -> bool:
    """Check if venue resolves to one of the JRA racecourses."""
    return normalize_venue(venue) in _CANONICAL
