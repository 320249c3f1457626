"""Race class classification.

Maps the free-text class label of a result page ("3歳以上2勝クラス",
"天皇賞(秋)(G1)", "障害3歳以上未勝利") to a RaceCategory. Matching is
order-sensitive because a label can hit several patterns: jump markers
first, then maiden/debut, then the win classes in ascending order, then the
open/graded catch-all.
"""

from __future__ import annotations

import re
from enum import Enum


class RaceCategory(str, Enum):
    """Class bands used to key baselines. Declaration order is the sort order."""

    MAIDEN = "maiden"
    WIN1 = "win1"
    WIN2 = "win2"
    WIN3 = "win3"
    OPEN = "open"

    @property
    def rank(self) -> int:
        return _CATEGORY_ORDER[self]


_CATEGORY_ORDER = {cat: i for i, cat in enumerate(RaceCategory)}


class Generation(str, Enum):
    """Age restriction of a race."""

    TWO_YEAR_OLD = "2yo"
    THREE_YEAR_OLD = "3yo"
    MIXED = "mixed"


JUMP_MARKERS = ("障害",)
MAIDEN_MARKERS = ("新馬", "未勝利")
# (category, markers) in ascending order; old prize-money names alongside
WIN_CLASS_MARKERS = (
    (RaceCategory.WIN1, ("1勝", "500万下")),
    (RaceCategory.WIN2, ("2勝", "1000万下")),
    (RaceCategory.WIN3, ("3勝", "1600万下")),
)
OPEN_MARKERS = ("オープン", "OP")
GRADED_RE = re.compile(r"G[1-3I]|GI|GII|GIII|リステッド|L$")

# Anchor index per category: the rating of an average good-ground run
CATEGORY_ANCHOR_INDEX = {
    RaceCategory.MAIDEN: 280,
    RaceCategory.WIN1: 300,
    RaceCategory.WIN2: 305,
    RaceCategory.WIN3: 310,
    RaceCategory.OPEN: 315,
}


def classify_race(class_label: str | None) -> RaceCategory | None:
    """Classify a class label, None for jump races and unparseable labels.

    Special-race names without any class text also return None.
    """
    if not class_label:
        return None
    label = class_label.strip()
    if any(m in label for m in JUMP_MARKERS):
        return None
    if any(m in label for m in MAIDEN_MARKERS):
        return RaceCategory.MAIDEN
    for category, markers in WIN_CLASS_MARKERS:
        if any(m in label for m in markers):
            return category
    if any(m in label for m in OPEN_MARKERS):
        return RaceCategory.OPEN
    if GRADED_RE.search(label):
        return RaceCategory.OPEN
    return None


def detect_generation(class_label: str | None) -> Generation:
    """Age restriction from the class label.

    "3歳以上" (three and up) is mixed-age; "3歳" alone restricts the field.
    """
    if not class_label:
        return Generation.MIXED
    if "2歳" in class_label:
        return Generation.TWO_YEAR_OLD
    if "3歳" in class_label and "以上" not in class_label:
        return Generation.THREE_YEAR_OLD
    return Generation.MIXED
