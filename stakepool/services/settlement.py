"""
Daily closure: turn a date's resolved wagers into ledger entries, once.

Public API:
  select_unsettled(db, day)              → List[Wager]
  aggregate_wagers(wagers, ...)          → (turnover, daily_gross_profit)
  close_day(db, day, actor="system")     → ClosureResult

Closure steps, all inside one database transaction:

    1. Select wagers dated ``day`` that are resolved and not yet settled.
       An empty selection is a successful no-op.
    2. Verify pairing (no orphan HEDGE) and that every profit is set.
    3. Aggregate turnover and gross profit (VOID policy below).
    4. Distribute once via ``core.distribution.distribute`` with the fee
       rate of the current active-investor count.
    5. Write the DailyHistory row, ledger entries, participant counters and
       two audit events.
    6. Flip ``settled_in_ledger`` with a conditional UPDATE; fewer rows than
       selected means another closer won the race.
    7. Commit.  Any failure rolls the whole attempt back.

Re-running ``close_day`` for a closed date selects nothing, which is the
only double-distribution guard needed.  Within a process, closures of the
same date are additionally serialised by a per-date lock; across processes
the conditional UPDATE and the unique ``daily_history.date`` do that job.

VOID policy: a VOID wager contributes 0 profit and, by default, 0 turnover
(its stake is returned).  It is still counted in ``wager_count`` and marked
settled.  Set ``VOID_COUNTS_TURNOVER=true`` to count its stake as turnover.
"""

import logging
import math
import os
import threading
import weakref
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stakepool.core.distribution import distribute
from stakepool.core.enums import AuditEventType, WagerKind, WagerStatus
from stakepool.core.errors import (
    ClosureError,
    ConcurrentClosureError,
    InvariantViolation,
    StakePoolError,
)
from stakepool.core.fee_schedule import fee_rate, fee_tier_label
from stakepool.models import DailyHistory, LedgerEntry, Participant, Wager
from stakepool.services.audit import record_event
from stakepool.services.participants import (
    apply_snapshot,
    to_snapshot,
    total_investor_principal,
)

logger = logging.getLogger(__name__)

_AUTO_NOTE = "Generated automatically from resolved wagers."


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class ClosureResult:
    """Outcome of one ``close_day`` call."""

    day: date
    closed: bool
    message: str = ""
    wager_count: int = 0
    turnover: float = 0.0
    daily_gross_profit: float = 0.0
    distributed_net_profit: float = 0.0
    collected_fees: float = 0.0
    fee_rate: float = 0.0
    active_investors: int = 0
    bank_value_start: Optional[float] = None
    bank_value_end: Optional[float] = None
    history_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "day": self.day.isoformat(),
            "closed": self.closed,
            "message": self.message,
            "wager_count": self.wager_count,
            "turnover": self.turnover,
            "daily_gross_profit": self.daily_gross_profit,
            "distributed_net_profit": self.distributed_net_profit,
            "collected_fees": self.collected_fees,
            "fee_rate": self.fee_rate,
            "active_investors": self.active_investors,
            "bank_value_start": self.bank_value_start,
            "bank_value_end": self.bank_value_end,
            "history_id": self.history_id,
        }


# ---------------------------------------------------------------------------
# Per-date serialisation
# ---------------------------------------------------------------------------

# Entries disappear once no closure of that date holds the lock.
_date_locks: "weakref.WeakValueDictionary[date, threading.Lock]" = weakref.WeakValueDictionary()
_date_locks_guard = threading.Lock()


def _lock_for(day: date) -> threading.Lock:
    with _date_locks_guard:
        lock = _date_locks.get(day)
        if lock is None:
            lock = threading.Lock()
            _date_locks[day] = lock
        return lock


def _void_counts_turnover() -> bool:
    return os.getenv("VOID_COUNTS_TURNOVER", "false").lower() == "true"


# ---------------------------------------------------------------------------
# Selection and aggregation
# ---------------------------------------------------------------------------

def select_unsettled(db: Session, day: date) -> List[Wager]:
    """Resolved, not-yet-settled wagers dated ``day``."""
    return (
        db.query(Wager)
        .filter(
            Wager.wager_date == day,
            Wager.status != WagerStatus.PENDING,
            Wager.settled_in_ledger.is_(False),
        )
        .order_by(Wager.id)
        .all()
    )


def aggregate_wagers(
    wagers: Iterable[Wager],
    *,
    void_counts_turnover: bool = False,
) -> Tuple[float, float]:
    """Return ``(turnover, daily_gross_profit)`` for a selection."""
    turnover = 0.0
    gross = 0.0
    for wager in wagers:
        if WagerStatus(wager.status) is WagerStatus.VOID:
            if void_counts_turnover:
                turnover += wager.stake
            continue
        turnover += wager.stake
        gross += wager.profit
    return turnover, gross


def _verify_selection(db: Session, wagers: List[Wager]) -> None:
    for wager in wagers:
        if wager.profit is None or not math.isfinite(wager.profit):
            raise InvariantViolation(
                f"Wager {wager.id} is {WagerStatus(wager.status).value} but has no valid profit"
            )

    hedge_groups = {w.group_id for w in wagers if w.kind == WagerKind.HEDGE}
    if not hedge_groups:
        return
    anchored = {
        row[0]
        for row in db.query(Wager.group_id)
        .filter(Wager.group_id.in_(hedge_groups), Wager.kind == WagerKind.ANCHOR)
        .all()
    }
    orphans = sorted(hedge_groups - anchored)
    if orphans:
        raise InvariantViolation(f"Hedge wagers without an anchor in groups {orphans}")


def _bank_value_start(db: Session, last: Optional[DailyHistory]) -> float:
    if last is not None:
        return last.bank_value_end
    return total_investor_principal(db)


# ---------------------------------------------------------------------------
# Closure
# ---------------------------------------------------------------------------

def close_day(
    db: Session,
    day: date,
    *,
    actor: str = "system",
    void_counts_turnover: Optional[bool] = None,
) -> ClosureResult:
    """
    Settle every resolved, unsettled wager dated ``day`` exactly once.

    Returns:
        ClosureResult; ``closed`` is False when there was nothing to settle.

    Raises:
        InvariantViolation: Orphan hedge, a resolved wager without profit, or
            late wagers for a date that already has a history record.
            Nothing is written.
        ConcurrentClosureError: Another closer settled some of the selected
            wagers first.  Rolled back.
        ClosureError: Any other failure.  Rolled back; safe to retry.
    """
    if void_counts_turnover is None:
        void_counts_turnover = _void_counts_turnover()

    lock = _lock_for(day)
    with lock:
        try:
            return _close_day_locked(db, day, actor, void_counts_turnover)
        except StakePoolError:
            db.rollback()
            logger.error("Closure of %s aborted", day, exc_info=True)
            raise
        except IntegrityError as exc:
            db.rollback()
            logger.error("Closure of %s lost a race: %s", day, exc)
            raise ConcurrentClosureError(
                f"Day {day} was closed concurrently; nothing was written", day=day
            ) from exc
        except Exception as exc:
            db.rollback()
            logger.error("Closure of %s failed and was rolled back: %s", day, exc, exc_info=True)
            raise ClosureError(
                f"Closure of {day} failed and was rolled back; retry is safe", day=day
            ) from exc


def _close_day_locked(
    db: Session,
    day: date,
    actor: str,
    void_counts_turnover: bool,
) -> ClosureResult:
    wagers = select_unsettled(db, day)
    if not wagers:
        logger.info("Close day %s: no resolved unsettled wagers", day)
        return ClosureResult(day=day, closed=False, message="No resolved unsettled wagers")

    _verify_selection(db, wagers)
    if db.query(DailyHistory.id).filter(DailyHistory.date == day).first() is not None:
        raise InvariantViolation(
            f"Day {day} is already closed; {len(wagers)} late-resolved wagers cannot be re-settled"
        )
    turnover, gross = aggregate_wagers(wagers, void_counts_turnover=void_counts_turnover)

    participants = db.query(Participant).order_by(Participant.id).all()
    snapshots = [to_snapshot(p) for p in participants]
    active = sum(1 for s in snapshots if s.is_eligible)
    rate = fee_rate(active)

    last = db.query(DailyHistory).order_by(DailyHistory.date.desc()).first()
    bank_start = _bank_value_start(db, last)
    bank_end = bank_start + gross
    day_number = (
        db.query(DailyHistory.day_number).order_by(DailyHistory.day_number.desc()).limit(1).scalar()
        or 0
    ) + 1

    dist = distribute(snapshots, gross, rate, entry_date=day)

    history = DailyHistory(
        day_number=day_number,
        date=day,
        turnover=turnover,
        daily_gross_profit=gross,
        wager_count=len(wagers),
        bank_value_start=bank_start,
        bank_value_end=bank_end,
        distributed_net_profit=dist.total_net_distributed,
        collected_fees=dist.total_fees_collected,
        fee_rate=rate,
        active_investors=active,
        closed_by=actor,
        notes=_AUTO_NOTE,
    )
    db.add(history)
    db.flush()

    db.add_all([
        LedgerEntry(
            participant_id=draft.participant_id,
            entry_date=draft.entry_date,
            amount=draft.amount,
            kind=draft.kind,
            daily_history_id=history.id,
        )
        for draft in dist.ledger_entries
    ])

    by_id = {p.id: p for p in participants}
    for snapshot in dist.updated_participants:
        apply_snapshot(by_id[snapshot.participant_id], snapshot)

    ids = [w.id for w in wagers]
    flipped = (
        db.query(Wager)
        .filter(Wager.id.in_(ids), Wager.settled_in_ledger.is_(False))
        .update(
            {Wager.settled_in_ledger: True, Wager.daily_history_id: history.id},
            synchronize_session="fetch",
        )
    )
    if flipped != len(ids):
        raise ConcurrentClosureError(
            f"Only {flipped} of {len(ids)} wagers for {day} were still unsettled", day=day
        )

    record_event(
        db, actor, AuditEventType.WAGERS_RESOLVED,
        f"{len(wagers)} wagers for {day.isoformat()} processed. Gross profit: {gross:.2f}.",
        date=day.isoformat(),
        wager_count=len(wagers),
        wager_ids=ids,
        turnover=turnover,
        daily_gross_profit=gross,
    )
    record_event(
        db, actor, AuditEventType.PROFIT_DISTRIBUTION,
        (
            f"Profit distributed for {day.isoformat()}. "
            f"Net: {dist.total_net_distributed:.2f}, fees: {dist.total_fees_collected:.2f}."
        ),
        date=day.isoformat(),
        fee_rate=rate,
        fee_tier=fee_tier_label(active),
        total_net_distributed=dist.total_net_distributed,
        total_fees_collected=dist.total_fees_collected,
        allocations=[
            {"participant_id": a.participant_id, "gross": a.gross_profit,
             "fee": a.fee, "net": a.net_profit}
            for a in dist.allocations
        ],
    )

    db.commit()

    logger.info(
        "Closed %s: %d wagers, turnover %.2f, gross %.2f, net %.2f, fees %.2f (rate %.3f, %d investors)",
        day, len(wagers), turnover, gross,
        dist.total_net_distributed, dist.total_fees_collected, rate, active,
    )

    return ClosureResult(
        day=day,
        closed=True,
        message="Day closed and profit distributed",
        wager_count=len(wagers),
        turnover=turnover,
        daily_gross_profit=gross,
        distributed_net_profit=dist.total_net_distributed,
        collected_fees=dist.total_fees_collected,
        fee_rate=rate,
        active_investors=active,
        bank_value_start=bank_start,
        bank_value_end=bank_end,
        history_id=history.id,
    )


def list_history(db: Session, limit: Optional[int] = None) -> List[DailyHistory]:
    query = db.query(DailyHistory).order_by(DailyHistory.date.desc())
    if limit:
        query = query.limit(limit)
    return query.all()
