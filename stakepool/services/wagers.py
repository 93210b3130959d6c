"""
Wager book: placement, edits and resolution of anchor/hedge groups.

Public API:
  place_wager(db, leg, actor)                → Wager          (single ANCHOR)
  place_pair(db, anchor, hedge, actor)       → (Wager, Wager) (ANCHOR + HEDGE, same date)
  update_wager(db, wager_id, ..., actor)     → Wager
  resolve_wager(db, wager_id, status, actor) → Wager
  delete_group(db, group_id, actor)          → int            (rows deleted)
  list_wagers(db, day=None, group_id=None)   → List[Wager]
  list_unsettled_dates(db)                   → List[date]

Lifecycle rules:
  * Odds and stake are editable only while the wager is PENDING (including
    the call that resolves it).
  * ``profit`` is written at the PENDING → terminal transition and cleared
    when an unsettled wager is reverted to PENDING.
  * Once ``settled_in_ledger`` is set nothing economic may change.
  * Any odds/stake edit on a paired leg recomputes the pair's branch profits
    from scratch via ``compute_middle_profits``.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from stakepool.core.enums import AuditEventType, WagerKind, WagerStatus
from stakepool.core.errors import InvalidInputError, InvariantViolation, WagerNotFoundError
from stakepool.core.hedge_math import (
    compute_middle_profits,
    profit_for_status,
    validate_odds,
    validate_stake,
)
from stakepool.models import Wager
from stakepool.services.audit import record_event

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Input structure
# ---------------------------------------------------------------------------

@dataclass
class LegInput:
    """Operator-supplied description of one wager leg."""

    wager_date: date
    odds: float
    stake: float
    selection: str
    event: Optional[str] = None
    sport: Optional[str] = None
    league: Optional[str] = None
    market: Optional[str] = None
    event_timestamp: Optional[datetime] = None
    notes: Optional[str] = None


def _new_group_id() -> str:
    return uuid.uuid4().hex


def _build_wager(leg: LegInput, kind: WagerKind, group_id: str, actor: str) -> Wager:
    return Wager(
        group_id=group_id,
        kind=kind,
        wager_date=leg.wager_date,
        event_timestamp=leg.event_timestamp,
        sport=leg.sport,
        league=leg.league,
        event=leg.event,
        market=leg.market or leg.selection,
        selection=leg.selection,
        odds=validate_odds("odds", leg.odds),
        stake=validate_stake("stake", leg.stake),
        status=WagerStatus.PENDING,
        settled_in_ledger=False,
        created_by=actor,
        notes=leg.notes,
    )


def _set_middle(hedge: Wager, anchor: Wager) -> None:
    profits = compute_middle_profits(anchor.odds, anchor.stake, hedge.odds, hedge.stake)
    hedge.middle_p1 = profits.p1
    hedge.middle_p2 = profits.p2
    hedge.middle_pb = profits.pb


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_wager(db: Session, wager_id: int) -> Wager:
    wager = db.query(Wager).filter(Wager.id == wager_id).first()
    if wager is None:
        raise WagerNotFoundError(f"Wager {wager_id} not found")
    return wager


def get_group(db: Session, group_id: str) -> List[Wager]:
    return db.query(Wager).filter(Wager.group_id == group_id).order_by(Wager.id).all()


def list_wagers(
    db: Session,
    day: Optional[date] = None,
    group_id: Optional[str] = None,
) -> List[Wager]:
    query = db.query(Wager)
    if day is not None:
        query = query.filter(Wager.wager_date == day)
    if group_id is not None:
        query = query.filter(Wager.group_id == group_id)
    return query.order_by(Wager.wager_date.desc(), Wager.id).all()


def list_unsettled_dates(db: Session) -> List[date]:
    """Dates holding resolved wagers that have not been closed yet."""
    rows = (
        db.query(Wager.wager_date)
        .filter(
            Wager.status != WagerStatus.PENDING,
            Wager.settled_in_ledger.is_(False),
        )
        .distinct()
        .order_by(Wager.wager_date)
        .all()
    )
    return [row[0] for row in rows]


def find_pair(group: List[Wager]) -> Tuple[Optional[Wager], Optional[Wager]]:
    """Return ``(anchor, hedge)`` for a group; raise on an orphan hedge."""
    anchor = next((w for w in group if w.kind == WagerKind.ANCHOR), None)
    hedge = next((w for w in group if w.kind == WagerKind.HEDGE), None)
    if hedge is not None and anchor is None:
        raise InvariantViolation(f"Hedge wager {hedge.id} has no anchor in group {hedge.group_id}")
    return anchor, hedge


# ---------------------------------------------------------------------------
# Placement
# ---------------------------------------------------------------------------

def place_wager(db: Session, leg: LegInput, actor: str = "system") -> Wager:
    """Place a single wager; it still gets its own group id."""
    wager = _build_wager(leg, WagerKind.ANCHOR, _new_group_id(), actor)
    try:
        db.add(wager)
        db.flush()
        record_event(
            db, actor, AuditEventType.WAGER_PLACED,
            f"Wager placed: {wager.selection} @ {wager.odds:.3f} for {wager.stake:.2f}.",
            wager_id=wager.id,
            group_id=wager.group_id,
            odds=wager.odds,
            stake=wager.stake,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Wager %d placed by %s: %s @ %.3f x %.2f",
                wager.id, actor, wager.selection, wager.odds, wager.stake)
    return wager


def place_pair(
    db: Session,
    anchor_leg: LegInput,
    hedge_leg: LegInput,
    actor: str = "system",
) -> Tuple[Wager, Wager]:
    """Place an anchor and its hedge atomically under one group id.

    Both legs must carry the same ``wager_date`` so the pair settles in a
    single closure.
    """
    if anchor_leg.wager_date != hedge_leg.wager_date:
        raise InvalidInputError(
            f"Anchor dated {anchor_leg.wager_date} and hedge dated "
            f"{hedge_leg.wager_date}; a pair must share one wager date"
        )
    group_id = _new_group_id()
    anchor = _build_wager(anchor_leg, WagerKind.ANCHOR, group_id, actor)
    hedge = _build_wager(hedge_leg, WagerKind.HEDGE, group_id, actor)
    _set_middle(hedge, anchor)

    try:
        db.add_all([anchor, hedge])
        db.flush()
        record_event(
            db, actor, AuditEventType.WAGER_PLACED,
            f"Wager pair placed for {anchor.event or anchor.selection}.",
            group_id=group_id,
            anchor={"id": anchor.id, "selection": anchor.selection,
                    "odds": anchor.odds, "stake": anchor.stake},
            hedge={"id": hedge.id, "selection": hedge.selection,
                   "odds": hedge.odds, "stake": hedge.stake},
            middle={"p1": hedge.middle_p1, "p2": hedge.middle_p2, "pb": hedge.middle_pb},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Pair %s placed by %s: p1=%.2f p2=%.2f pb=%.2f",
        group_id, actor, hedge.middle_p1, hedge.middle_p2, hedge.middle_pb,
    )
    return anchor, hedge


# ---------------------------------------------------------------------------
# Edits and resolution
# ---------------------------------------------------------------------------

_AUDITED_FIELDS = ("status", "odds", "stake", "notes")


def _snapshot(wager: Wager) -> dict:
    return {
        "status": WagerStatus(wager.status).value,
        "odds": wager.odds,
        "stake": wager.stake,
        "notes": wager.notes,
    }


def update_wager(
    db: Session,
    wager_id: int,
    *,
    odds: Optional[float] = None,
    stake: Optional[float] = None,
    status: Optional[WagerStatus] = None,
    notes: Optional[str] = None,
    actor: str = "system",
) -> Wager:
    """
    Apply operator edits to an unsettled wager.

    Raises:
        WagerNotFoundError: Unknown id.
        InvariantViolation: The wager is settled, odds/stake edits on an
            already-resolved wager, or re-resolving without reverting to
            PENDING first.
        InvalidInputError: Odds ≤ 1 or stake ≤ 0.
    """
    try:
        wager = get_wager(db, wager_id)
        if wager.settled_in_ledger:
            raise InvariantViolation(f"Wager {wager_id} is settled and can no longer change")

        before = _snapshot(wager)
        current = WagerStatus(wager.status)
        new_status = WagerStatus(status) if status is not None else current
        economic_edit = odds is not None or stake is not None

        if current.is_terminal:
            if economic_edit:
                raise InvariantViolation(
                    f"Wager {wager_id} is resolved; revert it to PENDING before editing odds or stake"
                )
            if new_status.is_terminal and new_status is not current:
                raise InvariantViolation(
                    f"Wager {wager_id} is already {current.value}; revert it to PENDING first"
                )

        if odds is not None:
            wager.odds = validate_odds("odds", odds)
        if stake is not None:
            wager.stake = validate_stake("stake", stake)
        if notes is not None:
            wager.notes = notes

        if new_status is not current:
            wager.status = new_status
            if new_status is WagerStatus.PENDING:
                wager.profit = None
                wager.resolved_at = None
            else:
                wager.profit = profit_for_status(new_status, wager.odds, wager.stake)
                wager.resolved_at = datetime.utcnow()

        if economic_edit:
            anchor, hedge = find_pair(get_group(db, wager.group_id))
            if anchor is not None and hedge is not None:
                _set_middle(hedge, anchor)

        after = _snapshot(wager)
        changes = [
            {"field": name, "old": before[name], "new": after[name]}
            for name in _AUDITED_FIELDS
            if before[name] != after[name]
        ]
        if changes:
            record_event(
                db, actor, AuditEventType.WAGER_UPDATED,
                f"Wager {wager.id} ({wager.selection}) updated.",
                wager_id=wager.id,
                group_id=wager.group_id,
                changed_fields=changes,
            )
        db.commit()
    except InvariantViolation as exc:
        db.rollback()
        logger.warning("Wager update refused: %s", exc)
        raise
    except Exception:
        db.rollback()
        raise

    logger.info("Wager %d updated by %s (%d fields)", wager_id, actor, len(changes))
    return wager


def resolve_wager(
    db: Session,
    wager_id: int,
    status: WagerStatus,
    actor: str = "system",
) -> Wager:
    """Set the outcome of a PENDING wager (profit is derived from odds/stake)."""
    return update_wager(db, wager_id, status=status, actor=actor)


def delete_group(db: Session, group_id: str, actor: str = "system") -> int:
    """Delete every leg of an unsettled group."""
    try:
        group = get_group(db, group_id)
        if not group:
            raise WagerNotFoundError(f"Wager group {group_id} not found")
        settled = [w.id for w in group if w.settled_in_ledger]
        if settled:
            raise InvariantViolation(
                f"Wager group {group_id} has settled legs {settled}; it cannot be deleted"
            )

        deleted = [
            {"id": w.id, "kind": WagerKind(w.kind).value, "selection": w.selection, "stake": w.stake}
            for w in group
        ]
        for wager in group:
            db.delete(wager)
        record_event(
            db, actor, AuditEventType.WAGER_GROUP_DELETED,
            f"Wager group {group_id} deleted ({len(group)} legs).",
            group_id=group_id,
            deleted_values=deleted,
        )
        db.commit()
    except InvariantViolation as exc:
        db.rollback()
        logger.warning("Group delete refused: %s", exc)
        raise
    except Exception:
        db.rollback()
        raise

    logger.info("Wager group %s deleted by %s", group_id, actor)
    return len(deleted)
