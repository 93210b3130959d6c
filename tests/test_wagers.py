"""
Tests for the wager book: placement, edits, resolution and deletion
Run with: pytest tests/test_wagers.py -v
"""

from datetime import date

import pytest

from stakepool.core.enums import AuditEventType, WagerKind, WagerStatus
from stakepool.core.errors import InvalidInputError, InvariantViolation, WagerNotFoundError
from stakepool.core.hedge_math import compute_middle_profits
from stakepool.models import AuditEvent, Wager
from stakepool.services.settlement import close_day
from stakepool.services.wagers import (
    LegInput,
    delete_group,
    find_pair,
    get_group,
    list_unsettled_dates,
    list_wagers,
    place_pair,
    place_wager,
    resolve_wager,
    update_wager,
)

DAY = date(2026, 10, 16)


# ---------------------------------------------------------------------------
# Placement
# ---------------------------------------------------------------------------

class TestPlacement:

    def test_single_wager_is_pending_anchor(self, db):
        wager = place_wager(db, LegInput(wager_date=DAY, odds=1.95, stake=40, selection="Home"))

        assert wager.kind == WagerKind.ANCHOR
        assert wager.status == WagerStatus.PENDING
        assert wager.profit is None
        assert wager.settled_in_ledger is False
        assert wager.group_id
        assert wager.market == "Home"

    def test_pair_shares_group_and_stores_middle(self, db, pair):
        anchor, hedge = pair(o1=2.10, s1=100, o2=2.00, s2=100)

        assert anchor.group_id == hedge.group_id
        assert anchor.kind == WagerKind.ANCHOR
        assert hedge.kind == WagerKind.HEDGE
        expected = compute_middle_profits(2.10, 100, 2.00, 100)
        assert hedge.middle_p1 == pytest.approx(expected.p1)
        assert hedge.middle_p2 == pytest.approx(expected.p2)
        assert hedge.middle_pb == pytest.approx(expected.pb)

    def test_each_single_wager_gets_its_own_group(self, db):
        a = place_wager(db, LegInput(wager_date=DAY, odds=2.0, stake=10, selection="A"))
        b = place_wager(db, LegInput(wager_date=DAY, odds=2.0, stake=10, selection="B"))
        assert a.group_id != b.group_id

    @pytest.mark.parametrize("odds, stake", [(1.0, 10), (0.5, 10), (2.0, 0), (2.0, -3)])
    def test_invalid_leg_raises(self, db, odds, stake):
        with pytest.raises(InvalidInputError):
            place_wager(db, LegInput(wager_date=DAY, odds=odds, stake=stake, selection="X"))
        assert db.query(Wager).count() == 0

    def test_pair_legs_on_different_dates_refused(self, db):
        anchor = LegInput(wager_date=DAY, odds=2.10, stake=100, selection="Over 2.5")
        hedge = LegInput(wager_date=date(2026, 10, 17), odds=2.10, stake=100, selection="Under 3.5")

        with pytest.raises(InvalidInputError):
            place_pair(db, anchor, hedge)
        assert db.query(Wager).count() == 0

    def test_placement_is_audited(self, db, pair):
        pair()
        event = db.query(AuditEvent).filter(
            AuditEvent.event_type == AuditEventType.WAGER_PLACED
        ).one()
        assert event.actor == "tester"
        assert set(event.details["middle"]) == {"p1", "p2", "pb"}


# ---------------------------------------------------------------------------
# Resolution and edits
# ---------------------------------------------------------------------------

class TestResolution:

    def test_resolve_sets_profit(self, db):
        wager = place_wager(db, LegInput(wager_date=DAY, odds=1.90, stake=50, selection="Home"))
        resolve_wager(db, wager.id, WagerStatus.WON)

        assert wager.status == WagerStatus.WON
        assert wager.profit == pytest.approx(45.0)
        assert wager.resolved_at is not None

    def test_changing_outcome_requires_revert(self, db, resolved_wager):
        wager = resolved_wager(WagerStatus.WON)
        with pytest.raises(InvariantViolation):
            resolve_wager(db, wager.id, WagerStatus.LOST)
        db.refresh(wager)
        assert wager.status == WagerStatus.WON

    def test_revert_to_pending_clears_profit(self, db, resolved_wager):
        wager = resolved_wager(WagerStatus.WON)
        update_wager(db, wager.id, status=WagerStatus.PENDING)

        assert wager.status == WagerStatus.PENDING
        assert wager.profit is None
        assert wager.resolved_at is None

        resolve_wager(db, wager.id, WagerStatus.LOST)
        assert wager.profit == pytest.approx(-10.0)

    def test_odds_edit_on_resolved_wager_refused(self, db, resolved_wager):
        wager = resolved_wager(WagerStatus.WON)
        with pytest.raises(InvariantViolation):
            update_wager(db, wager.id, odds=3.0)

    def test_odds_and_status_in_one_call(self, db):
        wager = place_wager(db, LegInput(wager_date=DAY, odds=2.0, stake=10, selection="Home"))
        update_wager(db, wager.id, odds=3.0, status=WagerStatus.WON)
        assert wager.profit == pytest.approx(20.0)

    def test_notes_editable_after_resolution(self, db, resolved_wager):
        wager = resolved_wager(WagerStatus.LOST)
        update_wager(db, wager.id, notes="bad beat")
        assert wager.notes == "bad beat"

    def test_settled_wager_is_frozen(self, db, resolved_wager):
        wager = resolved_wager(WagerStatus.WON)
        close_day(db, DAY)

        with pytest.raises(InvariantViolation):
            update_wager(db, wager.id, status=WagerStatus.PENDING)
        with pytest.raises(InvariantViolation):
            update_wager(db, wager.id, notes="too late")

    def test_edit_recomputes_pair_middle(self, db, pair):
        anchor, hedge = pair(o1=2.10, s1=100, o2=2.00, s2=100)

        update_wager(db, anchor.id, stake=80)

        expected = compute_middle_profits(2.10, 80, 2.00, 100)
        db.refresh(hedge)
        assert hedge.middle_p1 == pytest.approx(expected.p1)
        assert hedge.middle_p2 == pytest.approx(expected.p2)
        assert hedge.middle_pb == pytest.approx(expected.pb)

    def test_update_is_audited_with_changed_fields(self, db):
        wager = place_wager(db, LegInput(wager_date=DAY, odds=2.0, stake=10, selection="Home"))
        update_wager(db, wager.id, odds=2.2, actor="operator")

        event = db.query(AuditEvent).filter(
            AuditEvent.event_type == AuditEventType.WAGER_UPDATED
        ).one()
        assert event.actor == "operator"
        assert event.details["changed_fields"] == [
            {"field": "odds", "old": 2.0, "new": 2.2},
        ]

    def test_unknown_wager(self, db):
        with pytest.raises(WagerNotFoundError):
            update_wager(db, 9999, notes="x")


# ---------------------------------------------------------------------------
# Groups and queries
# ---------------------------------------------------------------------------

class TestGroups:

    def test_delete_group_removes_both_legs(self, db, pair):
        anchor, _ = pair()
        group_id = anchor.group_id

        assert delete_group(db, group_id) == 2
        assert get_group(db, group_id) == []
        assert db.query(AuditEvent).filter(
            AuditEvent.event_type == AuditEventType.WAGER_GROUP_DELETED
        ).count() == 1

    def test_delete_settled_group_refused(self, db, pair):
        anchor, hedge = pair()
        resolve_wager(db, anchor.id, WagerStatus.WON)
        resolve_wager(db, hedge.id, WagerStatus.LOST)
        close_day(db, DAY)

        with pytest.raises(InvariantViolation):
            delete_group(db, anchor.group_id)
        assert len(get_group(db, anchor.group_id)) == 2

    def test_delete_unknown_group(self, db):
        with pytest.raises(WagerNotFoundError):
            delete_group(db, "missing")

    def test_find_pair_rejects_orphan_hedge(self):
        orphan = Wager(id=7, group_id="g", kind=WagerKind.HEDGE)
        with pytest.raises(InvariantViolation):
            find_pair([orphan])

    def test_find_pair_single_anchor(self):
        anchor = Wager(id=1, group_id="g", kind=WagerKind.ANCHOR)
        assert find_pair([anchor]) == (anchor, None)

    def test_list_wagers_by_day(self, db):
        place_wager(db, LegInput(wager_date=DAY, odds=2.0, stake=10, selection="A"))
        place_wager(db, LegInput(wager_date=date(2026, 10, 17), odds=2.0, stake=10, selection="B"))

        assert [w.selection for w in list_wagers(db, day=DAY)] == ["A"]
        assert len(list_wagers(db)) == 2

    def test_list_unsettled_dates(self, db, resolved_wager):
        resolved_wager(WagerStatus.WON, day=date(2026, 10, 15))
        resolved_wager(WagerStatus.LOST, day=DAY)
        place_wager(db, LegInput(wager_date=date(2026, 10, 17), odds=2.0, stake=10, selection="P"))

        assert list_unsettled_dates(db) == [date(2026, 10, 15), DAY]

        close_day(db, date(2026, 10, 15))
        assert list_unsettled_dates(db) == [DAY]
