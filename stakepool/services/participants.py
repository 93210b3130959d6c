"""
Participant principal and cycle bookkeeping.

Public API:
  to_snapshot(participant)                       → ParticipantSnapshot
  apply_snapshot(participant, snapshot)          → None
  active_investor_count(db)                      → int
  total_investor_principal(db)                   → float
  approve_deposit(db, participant_id, amount)    → LedgerEntry
  approve_withdrawal(db, participant_id, amount) → LedgerEntry
  reset_cycle(db, participant_id)                → Participant

Deposits and withdrawals are the only writers of DEPOSIT / WITHDRAWAL ledger
entries; PROFIT_PAYOUT and FEE entries come exclusively from day closure.
Cycle counters are reset here, by an explicit administrative action, and
never by settlement.
"""

import logging
import math
from datetime import date, datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from stakepool.core.distribution import ParticipantSnapshot
from stakepool.core.enums import AuditEventType, LedgerKind, ParticipantRole
from stakepool.core.errors import (
    InvalidInputError,
    InvariantViolation,
    ParticipantNotFoundError,
)
from stakepool.models import LedgerEntry, Participant
from stakepool.services.audit import record_event

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# ORM <-> snapshot
# ---------------------------------------------------------------------------

def to_snapshot(participant: Participant) -> ParticipantSnapshot:
    return ParticipantSnapshot(
        participant_id=participant.id,
        principal=participant.invested_amount or 0.0,
        active=bool(participant.is_active),
        role=participant.role,
        total_profit_earned=participant.total_profit_earned or 0.0,
        cycle_gross_profit=participant.cycle_gross_profit or 0.0,
        cycle_fees_paid=participant.cycle_fees_paid or 0.0,
        cycle_net_profit=participant.cycle_net_profit or 0.0,
    )


def apply_snapshot(participant: Participant, snapshot: ParticipantSnapshot) -> None:
    """Copy the distribution counters of ``snapshot`` onto the ORM row."""
    if participant.id != snapshot.participant_id:
        raise InvariantViolation(
            f"Snapshot for participant {snapshot.participant_id} "
            f"applied to participant {participant.id}"
        )
    participant.total_profit_earned = snapshot.total_profit_earned
    participant.cycle_gross_profit = snapshot.cycle_gross_profit
    participant.cycle_fees_paid = snapshot.cycle_fees_paid
    participant.cycle_net_profit = snapshot.cycle_net_profit


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def _eligible_filter(query):
    return query.filter(
        Participant.role == ParticipantRole.INVESTOR,
        Participant.is_active.is_(True),
        Participant.invested_amount > 0,
    )


def active_investor_count(db: Session) -> int:
    """Investors that would share in a distribution right now."""
    return _eligible_filter(db.query(func.count(Participant.id))).scalar() or 0


def total_investor_principal(db: Session) -> float:
    """Principal held by all investors, active or not."""
    total = (
        db.query(func.coalesce(func.sum(Participant.invested_amount), 0.0))
        .filter(Participant.role == ParticipantRole.INVESTOR)
        .scalar()
    )
    return float(total or 0.0)


def get_participant(db: Session, participant_id: int) -> Participant:
    participant = db.query(Participant).filter(Participant.id == participant_id).first()
    if participant is None:
        raise ParticipantNotFoundError(f"Participant {participant_id} not found")
    return participant


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

def _positive_amount(amount: float) -> float:
    amount = float(amount)
    if not math.isfinite(amount) or amount <= 0:
        raise InvalidInputError(f"amount must be a positive number, got {amount!r}")
    return amount


def approve_deposit(
    db: Session,
    participant_id: int,
    amount: float,
    actor: str = "system",
    entry_date: Optional[date] = None,
) -> LedgerEntry:
    """Credit principal and append a DEPOSIT entry."""
    amount = _positive_amount(amount)
    try:
        participant = get_participant(db, participant_id)
        participant.invested_amount = (participant.invested_amount or 0.0) + amount
        entry = LedgerEntry(
            participant_id=participant.id,
            entry_date=entry_date or date.today(),
            amount=amount,
            kind=LedgerKind.DEPOSIT,
        )
        db.add(entry)
        record_event(
            db, actor, AuditEventType.DEPOSIT_APPROVED,
            f"Deposit of {amount:.2f} approved for {participant.name}.",
            participant_id=participant.id,
            amount=amount,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Deposit %.2f approved for participant %d by %s", amount, participant_id, actor)
    return entry


def approve_withdrawal(
    db: Session,
    participant_id: int,
    amount: float,
    actor: str = "system",
    entry_date: Optional[date] = None,
) -> LedgerEntry:
    """Debit principal and append a (negative) WITHDRAWAL entry."""
    amount = _positive_amount(amount)
    try:
        participant = get_participant(db, participant_id)
        principal = participant.invested_amount or 0.0
        if amount > principal:
            raise InvalidInputError(
                f"Withdrawal {amount:.2f} exceeds principal {principal:.2f} "
                f"for participant {participant_id}"
            )
        participant.invested_amount = principal - amount
        entry = LedgerEntry(
            participant_id=participant.id,
            entry_date=entry_date or date.today(),
            amount=-amount,
            kind=LedgerKind.WITHDRAWAL,
        )
        db.add(entry)
        record_event(
            db, actor, AuditEventType.WITHDRAWAL_APPROVED,
            f"Withdrawal of {amount:.2f} approved for {participant.name}.",
            participant_id=participant.id,
            amount=amount,
        )
        db.commit()
    except InvalidInputError:
        db.rollback()
        logger.warning("Withdrawal refused for participant %d: %.2f", participant_id, amount)
        raise
    except Exception:
        db.rollback()
        raise

    logger.info("Withdrawal %.2f approved for participant %d by %s", amount, participant_id, actor)
    return entry


def reset_cycle(db: Session, participant_id: int, actor: str = "system") -> Participant:
    """Zero the per-cycle gross/fee/net counters (lifetime profit is kept)."""
    try:
        participant = get_participant(db, participant_id)
        previous = {
            "gross": participant.cycle_gross_profit,
            "fees": participant.cycle_fees_paid,
            "net": participant.cycle_net_profit,
        }
        participant.cycle_gross_profit = 0.0
        participant.cycle_fees_paid = 0.0
        participant.cycle_net_profit = 0.0
        participant.cycle_started_at = datetime.utcnow()
        record_event(
            db, actor, AuditEventType.CYCLE_RESET,
            f"Cycle counters reset for {participant.name}.",
            participant_id=participant.id,
            previous=previous,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Cycle reset for participant %d by %s", participant_id, actor)
    return participant
