"""Tests for the performance index calculator."""

import pytest

from baba.engine.baseline import BaselineEntry, BaselineTable
from baba.engine.bias import BiasEntry, BiasTable
from baba.engine.classifier import Generation, RaceCategory
from baba.engine.index import (
    ABILITY_COLUMN,
    CLOSING_COLUMN,
    OVERALL_COLUMN,
    IndexRunSummary,
    RaceStatus,
    compute_finisher_indices,
    index_corpus,
    index_race,
    leader_early_time,
)
from baba.engine.params import RatingParams
from baba.engine.records import FinisherRecord, RaceRecord, Surface, TrackCondition


def _make_race(race_id="202305040911", venue="東京", distance=2000,
               class_label="天皇賞(秋)(G1)", surface="芝", condition="良",
               finishers=(("1", "1:55.2", "34.2"),), meeting=4, day=9):
    return RaceRecord(
        race_id=race_id,
        year=int(race_id[:4]),
        venue=venue,
        surface=Surface.parse(surface),
        distance=distance,
        class_label=class_label,
        condition=TrackCondition.parse(condition),
        meeting=meeting,
        day=day,
        finishers=tuple(
            FinisherRecord(
                rank=r, time=t, closing=c, horse_name=f"Horse_{i}",
                fields={"着順": r, "馬名": f"Horse_{i}", "タイム": t, "上がり": c},
            )
            for i, (r, t, c) in enumerate(finishers, start=1)
        ),
    )


def _entry(venue="東京", distance=2000, category=RaceCategory.OPEN,
           early=86.0, closing=34.0, total=120.0, slope=0.0):
    anchors = {RaceCategory.MAIDEN: 280, RaceCategory.WIN1: 300, RaceCategory.WIN2: 305,
               RaceCategory.WIN3: 310, RaceCategory.OPEN: 315}
    return BaselineEntry(venue, distance, category, anchors[category],
                         early, closing, total, slope, 50)


def _bias(value, day=9):
    return BiasEntry(2023, "東京", 4, day, value, 100, "standard")


class TestReferenceRun:
    """Tokyo 2000m open, 1:55.2 on a -0.86 day against a 119.32 baseline."""

    def test_overall_336(self):
        race = _make_race()
        baseline = _entry(early=85.72, closing=33.6, total=119.32)
        finishers, anchor = compute_finisher_indices(race, baseline, _bias(-0.86))
        assert anchor == 315
        assert finishers[0].index.overall == 336

    def test_via_tables(self):
        result = index_race(
            _make_race(),
            BaselineTable([_entry(early=85.72, closing=33.6, total=119.32)]),
            BiasTable([_bias(-0.86)]),
        )
        assert result.status is RaceStatus.INDEXED
        assert result.has_bias
        assert result.bias_value == -0.86
        assert result.finishers[0].index.overall == 336


class TestOverallIndex:
    def test_baseline_time_scores_anchor(self):
        finishers, _ = compute_finisher_indices(
            _make_race(finishers=[("1", "2:00.0", "34.0")]), _entry(), None,
        )
        assert finishers[0].index.overall == 315

    def test_faster_scores_higher(self):
        finishers, _ = compute_finisher_indices(
            _make_race(finishers=[("1", "1:59.0", "34.0"), ("2", "2:00.0", "34.0")]),
            _entry(), None,
        )
        assert finishers[0].index.overall > finishers[1].index.overall

    def test_slow_day_credits_runner(self):
        """A +1.0s day at 2000m raises the bar by 1.0s: 315 + 6.442."""
        finishers, _ = compute_finisher_indices(
            _make_race(finishers=[("1", "2:00.0", "34.0")]), _entry(), _bias(1.0),
        )
        assert finishers[0].index.overall == 321

    def test_bias_scaled_by_distance(self):
        race = _make_race(distance=1600, class_label="3歳以上オープン",
                          finishers=[("1", "1:36.0", "34.0")])
        baseline = _entry(distance=1600, early=62.0, total=96.0)
        finishers, _ = compute_finisher_indices(race, baseline, _bias(1.0))
        # 0.8s race bias x 8.0525 points per second
        assert finishers[0].index.overall == 321


class TestStoredAnchor:
    def test_entry_anchor_used(self):
        baseline = BaselineEntry("東京", 2000, RaceCategory.OPEN, 320, 86.0, 34.0, 120.0, 0.0, 50)
        finishers, anchor = compute_finisher_indices(
            _make_race(finishers=[("1", "2:00.0", "34.0")]), baseline, None,
        )
        assert anchor == 320
        assert finishers[0].index.overall == 320

    def test_params_anchor_table_ignored(self):
        params = RatingParams(anchor_index={c: 300 for c in RaceCategory})
        finishers, anchor = compute_finisher_indices(
            _make_race(finishers=[("1", "2:00.0", "34.0")]), _entry(), None, params,
        )
        assert anchor == 315
        assert finishers[0].index.overall == 315

    def test_generation_added_to_entry_anchor(self):
        baseline = BaselineEntry("東京", 2000, RaceCategory.OPEN, 320, 86.0, 34.0, 120.0, 0.0, 50)
        race = _make_race(class_label="2歳オープン", finishers=[("1", "2:00.0", "34.0")])
        _, anchor = compute_finisher_indices(race, baseline, None)
        assert anchor == 332


class TestGenerationCorrection:
    def _overall(self, class_label, category=RaceCategory.OPEN):
        race = _make_race(class_label=class_label, finishers=[("1", "2:00.0", "34.0")])
        finishers, anchor = compute_finisher_indices(race, _entry(category=category), None)
        return finishers[0].index.overall, anchor

    def test_mixed_age_open(self):
        assert self._overall("3歳以上オープン") == (315, 315)

    def test_three_year_old_open(self):
        assert self._overall("3歳オープン") == (322, 322)

    def test_two_year_old_open(self):
        assert self._overall("2歳オープン") == (327, 327)

    def test_three_year_old_win1(self):
        assert self._overall("3歳1勝クラス", RaceCategory.WIN1) == (302, 302)

    def test_two_year_old_win1(self):
        assert self._overall("2歳1勝クラス", RaceCategory.WIN1) == (303, 303)

    def test_no_offset_for_maiden(self):
        assert self._overall("3歳未勝利", RaceCategory.MAIDEN) == (280, 280)

    def test_age_restricted_raises_index(self):
        """Same time, same baseline: the age-restricted field rates higher."""
        restricted, _ = self._overall("3歳オープン")
        mixed, _ = self._overall("3歳以上オープン")
        assert restricted - mixed == 7

    def test_generation_reported(self):
        result = index_race(
            _make_race(class_label="2歳オープン"),
            BaselineTable([_entry()]),
            BiasTable(),
        )
        assert result.generation is Generation.TWO_YEAR_OLD
        assert result.anchor_index == 327


class TestClosingIndex:
    def _race(self):
        return _make_race(finishers=[
            ("1", "2:00.0", "34.0"),  # early 86.0, leader
            ("2", "2:00.0", "33.5"),  # early 86.5, 0.5s behind
        ])

    def test_leader_early_time(self):
        assert leader_early_time(self._race()) == pytest.approx(86.0)

    def test_leader_at_baseline(self):
        finishers, _ = compute_finisher_indices(self._race(), _entry(), None)
        assert finishers[0].index.closing == 0
        assert finishers[0].index.ability == 315

    def test_draft_correction(self):
        """33.5 + 0.5 x 0.6 = 33.8 against 34.0 expected: 0.2s x 6.442 -> 1."""
        finishers, _ = compute_finisher_indices(self._race(), _entry(), None)
        assert finishers[1].index.closing == 1

    def test_ability_half_up(self):
        """315 + 1 x 0.5 = 315.5 rounds to 316."""
        finishers, _ = compute_finisher_indices(self._race(), _entry(), None)
        assert finishers[1].index.ability == 316

    def test_draft_discounts_trailing_runner(self):
        race = self._race()
        with_draft, _ = compute_finisher_indices(race, _entry(), None)
        without, _ = compute_finisher_indices(race, _entry(), None, RatingParams(draft_factor=0.0))
        assert without[1].index.closing == 3
        assert with_draft[1].index.closing <= without[1].index.closing

    def test_larger_gap_never_raises_closing_index(self):
        race = _make_race(finishers=[
            ("1", "2:00.0", "34.0"),
            ("2", "2:00.5", "34.0"),
            ("3", "2:01.0", "34.0"),
        ])
        finishers, _ = compute_finisher_indices(race, _entry(), None)
        closing = [f.index.closing for f in finishers]
        assert closing == sorted(closing, reverse=True)
        assert closing[2] == -4

    def test_pace_slope_shifts_expectation(self):
        """Negative slope: a slower early section earns a faster expected close."""
        race = _make_race(finishers=[("1", "2:01.0", "34.0")])
        flat, _ = compute_finisher_indices(race, _entry(slope=0.0), None)
        sloped, _ = compute_finisher_indices(race, _entry(slope=-1.0), None)
        # early 87.0 is 1.0s slow: expected closing 33.0 instead of 34.0
        assert sloped[0].index.closing == flat[0].index.closing - 6

    def test_bias_split_between_sections(self):
        race = _make_race(finishers=[("1", "2:01.0", "34.4")])
        finishers, _ = compute_finisher_indices(race, _entry(slope=0.0), _bias(1.0))
        # expected closing 34.0 + 0.4 = 34.4, no gap to the leader
        assert finishers[0].index.closing == 0
        assert finishers[0].index.overall == 315


class TestNullFinishers:
    def test_non_numeric_rank(self):
        race = _make_race(finishers=[("1", "2:00.0", "34.0"), ("中止", "", "")])
        finishers, _ = compute_finisher_indices(race, _entry(), None)
        assert finishers[1].index.is_null
        assert finishers[1].index.as_strings() == {
            OVERALL_COLUMN: "", CLOSING_COLUMN: "", ABILITY_COLUMN: "",
        }
        assert finishers[0].index.overall == 315

    def test_missing_closing_time(self):
        race = _make_race(finishers=[("1", "2:00.0", "34.0"), ("2", "2:00.2", "")])
        finishers, _ = compute_finisher_indices(race, _entry(), None)
        assert finishers[1].index.is_null

    def test_official_order_kept(self):
        race = _make_race(finishers=[("1", "2:00.0", "34.0"), ("取消", "", ""), ("2", "2:00.2", "34.1")])
        finishers, _ = compute_finisher_indices(race, _entry(), None)
        assert [f.finisher.rank for f in finishers] == ["1", "取消", "2"]


class TestIndexRace:
    def test_not_turf(self):
        result = index_race(_make_race(surface="ダート"), BaselineTable([_entry()]), BiasTable())
        assert result.status is RaceStatus.NOT_TURF
        assert all(f.index.is_null for f in result.finishers)

    def test_missing_distance_has_no_baseline(self):
        result = index_race(_make_race(distance=None), BaselineTable([_entry()]), BiasTable())
        assert result.status is RaceStatus.NO_BASELINE
        assert all(f.index.is_null for f in result.finishers)

    def test_missing_distance_counted_as_no_baseline(self):
        _, summary = index_corpus([_make_race(distance=None)], BaselineTable([_entry()]), BiasTable())
        assert summary.no_baseline == 1
        assert summary.not_turf == 0

    def test_jump_race_unclassified(self):
        result = index_race(
            _make_race(class_label="障害3歳以上オープン"), BaselineTable([_entry()]), BiasTable(),
        )
        assert result.status is RaceStatus.UNCLASSIFIED

    def test_no_baseline(self):
        result = index_race(_make_race(venue="中山"), BaselineTable([_entry()]), BiasTable())
        assert result.status is RaceStatus.NO_BASELINE

    def test_missing_bias_is_zero(self):
        result = index_race(
            _make_race(finishers=[("1", "2:00.0", "34.0")]),
            BaselineTable([_entry()]),
            BiasTable(),
        )
        assert result.indexed
        assert not result.has_bias
        assert result.bias_value == 0.0
        assert result.finishers[0].index.overall == 315

    def test_rows_keep_source_fields(self):
        result = index_race(_make_race(), BaselineTable([_entry()]), BiasTable())
        row = result.rows()[0]
        assert row["馬名"] == "Horse_1"
        assert row["タイム"] == "1:55.2"
        assert row[OVERALL_COLUMN].lstrip("-").isdigit()
        assert CLOSING_COLUMN in row and ABILITY_COLUMN in row


class TestIndexCorpus:
    def _corpus(self):
        return [
            _make_race("202305040911", finishers=[("1", "1:59.8", "34.0"), ("2", "2:00.1", "33.9")]),
            _make_race("202305040811", class_label="3歳以上1勝クラス",
                       finishers=[("1", "2:01.0", "34.5")]),
            _make_race("202305040711", surface="ダート"),
            _make_race("202305040611", class_label="障害3歳以上オープン"),
            _make_race("202305040511", day=8, finishers=[("1", "2:00.0", "34.0"), ("除外", "", "")]),
        ]

    def _tables(self):
        baseline = BaselineTable([
            _entry(),
            _entry(category=RaceCategory.WIN1, early=86.6, closing=34.6, total=121.2),
        ])
        bias = BiasTable([_bias(0.3)])
        return baseline, bias

    def test_summary_counts(self):
        baseline, bias = self._tables()
        _, summary = index_corpus(self._corpus(), baseline, bias)
        assert summary.processed == 3
        assert summary.not_turf == 1
        assert summary.unclassified == 1
        assert summary.no_baseline == 0
        assert summary.skipped == 2
        assert summary.no_bias == 1
        assert summary.null_finishers == 1

    def test_single_race_matches_corpus_run(self):
        baseline, bias = self._tables()
        results, _ = index_corpus(self._corpus(), baseline, bias)
        for race, full in zip(self._corpus(), results):
            single = index_race(race, baseline, bias)
            assert [f.index for f in single.finishers] == [f.index for f in full.finishers]
            assert single.status is full.status

    def test_deterministic(self):
        baseline, bias = self._tables()
        first, _ = index_corpus(self._corpus(), baseline, bias)
        second, _ = index_corpus(self._corpus(), baseline, bias)
        assert [r.rows() for r in first] == [r.rows() for r in second]


class TestIndexRunSummary:
    def test_as_dict(self):
        summary = IndexRunSummary(processed=5, not_turf=2, no_baseline=1)
        d = summary.as_dict()
        assert d["processed"] == 5
        assert d["skipped"] == 3
