"""
Tests for anchor/hedge branch profits and the two solvers
Run with: pytest tests/test_hedge_math.py -v
"""

import math

import pytest

from stakepool.core.enums import WagerStatus
from stakepool.core.errors import InvalidInputError
from stakepool.core.hedge_math import (
    ODDS_BUFFERS,
    compute_middle_profits,
    profit_for_status,
    suggest_anchor_from_hedge,
    suggest_hedge_from_anchor,
)

TOL = 1e-6


class TestComputeMiddleProfits:

    def test_docstring_example(self):
        m = compute_middle_profits(2.10, 100, 2.00, 100)
        assert m.p1 == pytest.approx(10.0)
        assert m.p2 == pytest.approx(0.0)
        assert m.pb == pytest.approx(210.0)

    def test_both_win_is_sum_of_single_wins_plus_stakes(self):
        m = compute_middle_profits(1.85, 60, 2.40, 45)
        assert m.pb == pytest.approx(m.p1 + m.p2 + 60 + 45)

    def test_to_dict(self):
        assert compute_middle_profits(2.0, 10, 2.0, 10).to_dict() == {
            "p1": 0.0, "p2": 0.0, "pb": 20.0,
        }

    @pytest.mark.parametrize("o1, s1, o2, s2", [
        (1.0, 100, 2.0, 100),
        (2.0, 0, 2.0, 100),
        (2.0, 100, 0.5, 100),
        (2.0, 100, 2.0, -5),
        (float("nan"), 100, 2.0, 100),
        (2.0, float("inf"), 2.0, 100),
        ("abc", 100, 2.0, 100),
    ])
    def test_invalid_input_raises(self, o1, s1, o2, s2):
        with pytest.raises(InvalidInputError):
            compute_middle_profits(o1, s1, o2, s2)


class TestSuggestHedgeFromAnchor:

    def test_worked_example(self):
        s = suggest_hedge_from_anchor(2.10, 100, 10)
        assert s.feasible
        assert s.target_profit == pytest.approx(10.0)
        assert s.o2min == pytest.approx(2.10)
        assert s.o2 == pytest.approx(2.10)
        assert s.s2 == pytest.approx(100.0)
        assert s.p1 == pytest.approx(10.0)
        assert s.p2 == pytest.approx(10.0)
        assert s.pb == pytest.approx(220.0)

    def test_buffer_raises_hedge_odds_and_improves_anchor_branch(self):
        base = suggest_hedge_from_anchor(2.10, 100, 10)
        buffered = suggest_hedge_from_anchor(2.10, 100, 10, odds_buffer=0.05)
        assert buffered.o2 == pytest.approx(base.o2min + 0.05)
        assert buffered.o2min == pytest.approx(base.o2min)
        assert buffered.p1 > 10.0
        assert buffered.p2 == pytest.approx(10.0)

    def test_recommends_smallest_stake_that_covers_target(self):
        s = suggest_hedge_from_anchor(2.10, 100, 10, odds_buffer=0.05)
        assert s.s2 == pytest.approx((100 + 10) / (s.o2 - 1))
        assert s.s2 == pytest.approx(95.65217391304348)
        assert s.p1 == pytest.approx(210 - 100 - s.s2)

    @pytest.mark.parametrize("o1, s1, pct", [
        (2.10, 100, 10),
        (1.50, 250, 5),
        (3.40, 20, 50),
        (1.91, 1000, 0),
        (5.00, 7.5, 300),
    ])
    @pytest.mark.parametrize("buffer", ODDS_BUFFERS)
    def test_feasible_results_lock_in_target(self, o1, s1, pct, buffer):
        s = suggest_hedge_from_anchor(o1, s1, pct, buffer)
        assert s.feasible
        target = s1 * pct / 100
        assert s.p1 >= target - TOL
        assert s.p2 == pytest.approx(target, abs=TOL)
        assert s.s2 == pytest.approx((s1 + target) / (s.o2 - 1))
        m = compute_middle_profits(o1, s1, s.o2, s.s2)
        assert (s.p1, s.p2, s.pb) == pytest.approx((m.p1, m.p2, m.pb))

    @pytest.mark.parametrize("o1, pct", [
        (2.10, 110),   # target equals the anchor margin
        (2.10, 150),
        (1.05, 5),
        (1.01, 10),
    ])
    def test_unreachable_target_is_infeasible_not_error(self, o1, pct):
        s = suggest_hedge_from_anchor(o1, 100, pct)
        assert s.feasible is False
        assert s.reason
        assert s.o2min is None and s.s2 is None and s.p1 is None

    @pytest.mark.parametrize("kwargs", [
        {"o1": 1.0, "s1": 100, "target_pct": 10},
        {"o1": 2.0, "s1": 0, "target_pct": 10},
        {"o1": 2.0, "s1": 100, "target_pct": -1},
        {"o1": 2.0, "s1": 100, "target_pct": 10, "odds_buffer": -0.03},
        {"o1": 2.0, "s1": 100, "target_pct": math.nan},
    ])
    def test_invalid_input_raises(self, kwargs):
        with pytest.raises(InvalidInputError):
            suggest_hedge_from_anchor(**kwargs)


class TestSuggestAnchorFromHedge:

    def test_worked_example(self):
        s = suggest_anchor_from_hedge(2.00, 100, 10)
        assert s.feasible
        assert s.s1 == pytest.approx(90.0)
        assert s.o1min == pytest.approx(1 + 110 / 90)
        assert s.p1 == pytest.approx(10.0)
        assert s.p2 == pytest.approx(10.0)

    def test_buffer_adds_to_anchor_branch(self):
        s = suggest_anchor_from_hedge(2.00, 100, 10, odds_buffer=0.10)
        assert s.o1 == pytest.approx(s.o1min + 0.10)
        assert s.p2 == pytest.approx(10.0)
        assert s.p1 == pytest.approx(10.0 + s.s1 * 0.10)

    def test_infeasible_when_margin_too_small(self):
        s = suggest_anchor_from_hedge(1.05, 100, 10)
        assert s.feasible is False
        assert s.s1 is None

    def test_invalid_odds_raises(self):
        with pytest.raises(InvalidInputError):
            suggest_anchor_from_hedge(0.9, 100, 10)


class TestProfitForStatus:

    @pytest.mark.parametrize("status, expected", [
        (WagerStatus.WON,       45.0),
        (WagerStatus.HALF_WON,  22.5),
        (WagerStatus.LOST,     -50.0),
        (WagerStatus.HALF_LOST, -25.0),
        (WagerStatus.VOID,       0.0),
    ])
    def test_terminal_statuses(self, status, expected):
        assert profit_for_status(status, 1.90, 50) == pytest.approx(expected)

    def test_pending_has_no_profit(self):
        assert profit_for_status(WagerStatus.PENDING, 1.90, 50) is None

    def test_accepts_string_status(self):
        assert profit_for_status("LOST", 3.0, 30) == pytest.approx(-30.0)
