"""Tests for race class classification and generation detection."""

import pytest

from baba.engine.classifier import (
    CATEGORY_ANCHOR_INDEX,
    Generation,
    RaceCategory,
    classify_race,
    detect_generation,
)


class TestClassifyRace:
    @pytest.mark.parametrize("label,expected", [
        ("2歳新馬", RaceCategory.MAIDEN),
        ("3歳未勝利", RaceCategory.MAIDEN),
        ("3歳以上1勝クラス", RaceCategory.WIN1),
        ("3歳以上500万下", RaceCategory.WIN1),
        ("3歳以上2勝クラス", RaceCategory.WIN2),
        ("3歳以上1000万下", RaceCategory.WIN2),
        ("3歳以上3勝クラス", RaceCategory.WIN3),
        ("4歳以上1600万下", RaceCategory.WIN3),
        ("3歳以上オープン", RaceCategory.OPEN),
        ("3歳OP", RaceCategory.OPEN),
        ("天皇賞(秋)(G1)", RaceCategory.OPEN),
        ("ターコイズS(GIII)", RaceCategory.OPEN),
        ("リステッド", RaceCategory.OPEN),
    ])
    def test_flat_classes(self, label, expected):
        assert classify_race(label) is expected

    def test_jump_race_is_none(self):
        assert classify_race("障害3歳以上未勝利") is None

    def test_graded_jump_race_is_none(self):
        assert classify_race("中山大障害(J・G1)") is None

    def test_maiden_beats_win_class(self):
        """Checked in order, so the first match wins."""
        assert classify_race("未勝利1勝") is RaceCategory.MAIDEN

    def test_unknown_label(self):
        assert classify_race("特別") is None

    def test_empty(self):
        assert classify_race("") is None
        assert classify_race(None) is None

    def test_whitespace(self):
        assert classify_race("  3歳以上2勝クラス ") is RaceCategory.WIN2


class TestDetectGeneration:
    def test_two_year_old(self):
        assert detect_generation("2歳未勝利") is Generation.TWO_YEAR_OLD

    def test_three_year_old(self):
        assert detect_generation("3歳オープン") is Generation.THREE_YEAR_OLD

    def test_three_and_up_is_mixed(self):
        assert detect_generation("3歳以上オープン") is Generation.MIXED

    def test_four_and_up_is_mixed(self):
        assert detect_generation("4歳以上3勝クラス") is Generation.MIXED

    def test_no_age_text(self):
        assert detect_generation("天皇賞(秋)(G1)") is Generation.MIXED

    def test_none(self):
        assert detect_generation(None) is Generation.MIXED


class TestRaceCategory:
    def test_rank_follows_class_order(self):
        ranks = [c.rank for c in (
            RaceCategory.MAIDEN, RaceCategory.WIN1, RaceCategory.WIN2,
            RaceCategory.WIN3, RaceCategory.OPEN,
        )]
        assert ranks == sorted(ranks)

    def test_anchor_index_increases_with_class(self):
        anchors = [CATEGORY_ANCHOR_INDEX[c] for c in RaceCategory]
        assert anchors == [280, 300, 305, 310, 315]
