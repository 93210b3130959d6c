"""
Tests for pro-rata profit distribution
Run with: pytest tests/test_distribution.py -v
"""

from datetime import date

import pytest

from stakepool.core.distribution import (
    ParticipantSnapshot,
    conservation_tolerance,
    distribute,
)
from stakepool.core.enums import LedgerKind, ParticipantRole
from stakepool.core.errors import InvalidInputError

DAY = date(2026, 10, 16)


def _investor(pid, principal, **kwargs):
    return ParticipantSnapshot(participant_id=pid, principal=principal, **kwargs)


# ---------------------------------------------------------------------------
# No-op cases
# ---------------------------------------------------------------------------

def test_empty_participants_is_noop():
    result = distribute([], 50.0, 0.01)
    assert result.is_noop
    assert result.updated_participants == []
    assert result.total_net_distributed == 0.0
    assert result.total_fees_collected == 0.0
    assert result.ledger_entries == []


def test_zero_principal_is_noop():
    people = [_investor(1, 0.0), _investor(2, 0.0)]
    result = distribute(people, 50.0, 0.01)
    assert result.is_noop
    assert result.updated_participants == people


def test_only_ineligible_participants_is_noop():
    people = [
        _investor(1, 500.0, active=False),
        _investor(2, 500.0, role=ParticipantRole.ADMIN),
    ]
    result = distribute(people, 50.0, 0.01)
    assert result.is_noop
    assert result.updated_participants == people


# ---------------------------------------------------------------------------
# Profitable day
# ---------------------------------------------------------------------------

def test_single_investor_example():
    result = distribute([_investor(1, 100.0)], 10.0, 0.01, entry_date=DAY)

    assert result.total_fees_collected == pytest.approx(0.10)
    assert result.total_net_distributed == pytest.approx(9.90)

    updated = result.updated_participants[0]
    assert updated.cycle_gross_profit == pytest.approx(10.0)
    assert updated.cycle_fees_paid == pytest.approx(0.10)
    assert updated.cycle_net_profit == pytest.approx(9.90)
    assert updated.total_profit_earned == pytest.approx(9.90)
    assert updated.principal == 100.0

    kinds = [(e.kind, round(e.amount, 6), e.entry_date) for e in result.ledger_entries]
    assert kinds == [
        (LedgerKind.PROFIT_PAYOUT, 9.9, DAY),
        (LedgerKind.FEE, -0.1, DAY),
    ]


def test_pro_rata_shares():
    people = [_investor(1, 100.0), _investor(2, 300.0)]
    result = distribute(people, 40.0, 0.0)

    shares = {a.participant_id: a.share for a in result.allocations}
    assert shares[1] == pytest.approx(0.25)
    assert shares[2] == pytest.approx(0.75)
    gross = {a.participant_id: a.gross_profit for a in result.allocations}
    assert gross[1] == pytest.approx(10.0)
    assert gross[2] == pytest.approx(30.0)


def test_zero_fee_rate_writes_no_fee_entries():
    result = distribute([_investor(1, 100.0), _investor(2, 100.0)], 20.0, 0.0)
    assert all(e.kind is LedgerKind.PROFIT_PAYOUT for e in result.ledger_entries)
    assert result.total_fees_collected == 0.0


def test_counters_accumulate_on_existing_values():
    person = _investor(1, 100.0, total_profit_earned=5.0, cycle_gross_profit=2.0,
                       cycle_fees_paid=0.5, cycle_net_profit=1.5)
    updated = distribute([person], 10.0, 0.10).updated_participants[0]
    assert updated.cycle_gross_profit == pytest.approx(12.0)
    assert updated.cycle_fees_paid == pytest.approx(1.5)
    assert updated.cycle_net_profit == pytest.approx(10.5)
    assert updated.total_profit_earned == pytest.approx(14.0)


@pytest.mark.parametrize("principals, gross, rate", [
    ([100.0, 200.0, 300.0], 17.35, 0.01),
    ([1.0, 1.0, 1.0], 10.0, 0.015),
    ([999.99, 0.01, 12345.0, 7.5], 1234.56, 0.19),
    ([100.0, 200.0], -75.0, 0.05),
])
def test_conservation(principals, gross, rate):
    people = [_investor(i, p) for i, p in enumerate(principals, start=1)]
    result = distribute(people, gross, rate)

    total_gross = sum(a.gross_profit for a in result.allocations)
    assert abs(total_gross - gross) <= conservation_tolerance(gross)
    assert abs(
        result.total_net_distributed + result.total_fees_collected - gross
    ) <= conservation_tolerance(gross)


# ---------------------------------------------------------------------------
# Losing day
# ---------------------------------------------------------------------------

def test_loss_day_charges_no_fees():
    people = [_investor(1, 100.0), _investor(2, 300.0)]
    result = distribute(people, -40.0, 0.05)

    assert result.total_fees_collected == 0.0
    assert result.total_net_distributed == pytest.approx(-40.0)
    assert all(e.kind is LedgerKind.PROFIT_PAYOUT for e in result.ledger_entries)
    nets = {a.participant_id: a.net_profit for a in result.allocations}
    assert nets[1] == pytest.approx(-10.0)
    assert nets[2] == pytest.approx(-30.0)


# ---------------------------------------------------------------------------
# Mixed eligibility
# ---------------------------------------------------------------------------

def test_ineligible_participants_pass_through_unchanged():
    inactive = _investor(2, 1000.0, active=False, cycle_net_profit=3.0)
    admin = _investor(3, 1000.0, role=ParticipantRole.ADMIN)
    people = [_investor(1, 100.0), inactive, admin]

    result = distribute(people, 10.0, 0.0)

    assert [p.participant_id for p in result.updated_participants] == [1, 2, 3]
    assert result.updated_participants[1] is inactive
    assert result.updated_participants[2] is admin
    assert [a.participant_id for a in result.allocations] == [1]
    assert result.allocations[0].share == pytest.approx(1.0)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("gross, rate", [
    (float("nan"), 0.01),
    (float("inf"), 0.01),
    (10.0, -0.01),
    (10.0, 1.0),
    (10.0, float("nan")),
])
def test_invalid_arguments_raise(gross, rate):
    with pytest.raises(InvalidInputError):
        distribute([_investor(1, 100.0)], gross, rate)
