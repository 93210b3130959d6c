"""Pro-rata distribution of a day's pooled P&L across investors.

All functions here are **pure**: they operate on immutable
:class:`ParticipantSnapshot` values and return new ones together with the
ledger entries to append.  Persisting them is the caller's job
(:mod:`stakepool.services.settlement`).

For each eligible participant ``i`` with principal ``P_i``::

    share_i  = P_i / ΣP
    gross_i  = daily_gross_profit · share_i        (sign follows the day)
    fee_i    = gross_i · fee_rate   if gross_i > 0 else 0
    net_i    = gross_i − fee_i

Design decisions
----------------
* **Fees never apply to a loss.**  A losing day yields ``fee_i = 0`` for
  everybody, so ``Σ net_i = daily_gross_profit`` and nothing is collected.
* **No zero-amount ledger noise.**  A FEE entry is only drafted when the fee
  is strictly positive; the PROFIT_PAYOUT entry is always drafted, and may be
  negative.
* **Floating-point conservation.**  Amounts are plain floats and no
  remainder reconciliation is performed, so ``Σ gross_i`` equals the day's
  gross only up to rounding.  :data:`CONSERVATION_EPSILON` documents the
  accepted error; tests assert "within epsilon", never exact equality.
* **Nothing to distribute into is not an error.**  With no eligible
  participants (or zero eligible principal) the call returns its input
  unchanged with zero totals.

Run tests with::

    pytest tests/test_distribution.py -v
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Final, List, Optional, Sequence

from stakepool.core.enums import LedgerKind, ParticipantRole
from stakepool.core.errors import InvalidInputError

#: Relative tolerance for ``Σ gross_i ≈ daily_gross_profit``.
CONSERVATION_EPSILON: Final[float] = 1e-9


def conservation_tolerance(amount: float) -> float:
    """Absolute tolerance for a distributed ``amount``."""
    return CONSERVATION_EPSILON * max(1.0, abs(amount))


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ParticipantSnapshot:
    """In-memory view of a participant at the start of distribution."""

    participant_id: int
    principal: float
    active: bool = True
    role: ParticipantRole = ParticipantRole.INVESTOR
    total_profit_earned: float = 0.0
    cycle_gross_profit: float = 0.0
    cycle_fees_paid: float = 0.0
    cycle_net_profit: float = 0.0

    @property
    def is_eligible(self) -> bool:
        return (
            ParticipantRole(self.role) is ParticipantRole.INVESTOR
            and self.active
            and (self.principal or 0.0) > 0.0
        )


@dataclass(frozen=True)
class LedgerDraft:
    """A ledger entry to append for one participant."""

    participant_id: int
    entry_date: date
    amount: float
    kind: LedgerKind


@dataclass(frozen=True)
class Allocation:
    """One participant's slice of the day."""

    participant_id: int
    share: float
    gross_profit: float
    fee: float
    net_profit: float


@dataclass
class DistributionResult:
    updated_participants: List[ParticipantSnapshot]
    total_net_distributed: float = 0.0
    total_fees_collected: float = 0.0
    ledger_entries: List[LedgerDraft] = field(default_factory=list)
    allocations: List[Allocation] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not self.allocations


# ---------------------------------------------------------------------------
# Core logic
# ---------------------------------------------------------------------------

def distribute(
    participants: Sequence[ParticipantSnapshot],
    daily_gross_profit: float,
    fee_rate: float,
    *,
    entry_date: Optional[date] = None,
) -> DistributionResult:
    """Allocate ``daily_gross_profit`` across eligible participants.

    Args:
        participants: Snapshot of every participant; ineligible ones pass
            through unchanged.
        daily_gross_profit: Signed aggregate profit of the day's settled
            wagers.
        fee_rate: Platform fee rate in ``[0, 1)``, normally
            :func:`stakepool.core.fee_schedule.fee_rate` of the current active
            investor count.
        entry_date: Date stamped on the drafted ledger entries.  Defaults to
            today.

    Returns:
        :class:`DistributionResult` with updated snapshots (same order as the
        input), ledger drafts, per-participant allocations and totals.

    Raises:
        InvalidInputError: If the gross profit is not finite or the fee rate
            is outside ``[0, 1)``.

    Examples::

        distribute([ParticipantSnapshot(1, principal=100)], 10.0, 0.01)
            → gross 10.00, fee 0.10, net 9.90, total_fees_collected 0.10
    """
    if not math.isfinite(daily_gross_profit):
        raise InvalidInputError(
            f"daily_gross_profit must be finite, got {daily_gross_profit!r}."
        )
    if not (math.isfinite(fee_rate) and 0.0 <= fee_rate < 1.0):
        raise InvalidInputError(f"fee_rate must be in [0, 1), got {fee_rate!r}.")

    participants = list(participants)
    eligible = [p for p in participants if p.is_eligible]
    if not eligible:
        return DistributionResult(updated_participants=participants)

    total_principal = sum(p.principal for p in eligible)
    if total_principal <= 0.0:
        return DistributionResult(updated_participants=participants)

    entry_date = entry_date or date.today()
    result = DistributionResult(updated_participants=[])

    for participant in participants:
        if not participant.is_eligible:
            result.updated_participants.append(participant)
            continue

        share = participant.principal / total_principal
        gross = daily_gross_profit * share
        fee = gross * fee_rate if gross > 0.0 else 0.0
        net = gross - fee

        result.total_net_distributed += net
        result.total_fees_collected += fee
        result.allocations.append(Allocation(
            participant_id=participant.participant_id,
            share=share,
            gross_profit=gross,
            fee=fee,
            net_profit=net,
        ))

        result.ledger_entries.append(LedgerDraft(
            participant_id=participant.participant_id,
            entry_date=entry_date,
            amount=net,
            kind=LedgerKind.PROFIT_PAYOUT,
        ))
        if fee > 0.0:
            result.ledger_entries.append(LedgerDraft(
                participant_id=participant.participant_id,
                entry_date=entry_date,
                amount=-fee,
                kind=LedgerKind.FEE,
            ))

        result.updated_participants.append(replace(
            participant,
            cycle_gross_profit=participant.cycle_gross_profit + gross,
            cycle_fees_paid=participant.cycle_fees_paid + fee,
            cycle_net_profit=participant.cycle_net_profit + net,
            total_profit_earned=participant.total_profit_earned + net,
        ))

    return result
