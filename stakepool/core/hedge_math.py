"""Anchor + hedge ("middle") mathematics. Single source of truth.

Every function here is **pure**: no I/O, no logging, no side effects.
Import from this module; never recompute branch profits locally in services.

A pair consists of an *anchor* leg (decimal odds ``o1``, stake ``s1``) and a
*hedge* leg (``o2``, ``s2``) on an overlapping or opposite outcome.  Three
branches are always evaluated::

    p1 = s1·(o1 − 1) − s2              only the anchor wins
    p2 = s2·(o2 − 1) − s1              only the hedge wins
    pb = s1·(o1 − 1) + s2·(o2 − 1)     both win (the "middle")

The two solvers are mirror images.  Given one leg that is already placed and
a target guaranteed profit ``T`` (a percentage of that leg's stake) they
return the odds and stake the other leg needs.

Design decisions
----------------
* ``target_pct`` is expressed in percent (``10`` means 10% of the placed
  stake), matching how operators enter it.
* Infeasibility is a normal answer, not an error: the result carries
  ``feasible=False`` and every numeric field is ``None``.  Structurally
  invalid input (NaN, odds ≤ 1, stake ≤ 0) raises
  :class:`~stakepool.core.errors.InvalidInputError` instead.
* Each division below is evaluated only after the feasibility predicate that
  guarantees its denominator is positive.
* The hedge solver recommends the *smallest* stake that keeps ``p2 ≥ T``,
  ``(s1 + T) / (o2 − 1)``, capped at ``s1·(o1 − 1) − T`` so ``p1 ≥ T``.
  Any odds buffer therefore lands entirely on the anchor branch: ``p2 = T``
  and ``p1`` grows.
* Branch profits are always recomputed with :func:`compute_middle_profits`
  after any edit to either leg; they are never patched incrementally.

Run tests with::

    pytest tests/test_hedge_math.py -v
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Final, Optional

from stakepool.core.enums import WagerStatus
from stakepool.core.errors import InvalidInputError

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

#: Odds buffers offered to operators as a safety margin over the minimum odds.
ODDS_BUFFERS: Final[tuple[float, ...]] = (0.0, 0.03, 0.05, 0.10)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MiddleProfits:
    """Profit of a pair under each outcome branch."""

    p1: float   # only the anchor wins
    p2: float   # only the hedge wins
    pb: float   # both legs win

    def to_dict(self) -> dict:
        return {"p1": self.p1, "p2": self.p2, "pb": self.pb}


@dataclass(frozen=True)
class HedgeSuggestion:
    """Recommended hedge leg for a placed anchor.

    All numeric fields are ``None`` when ``feasible`` is False.
    """

    feasible: bool
    target_profit: Optional[float] = None
    o2min: Optional[float] = None
    o2: Optional[float] = None
    s2: Optional[float] = None
    p1: Optional[float] = None
    p2: Optional[float] = None
    pb: Optional[float] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class AnchorSuggestion:
    """Recommended anchor leg for a placed hedge.

    All numeric fields are ``None`` when ``feasible`` is False.
    """

    feasible: bool
    target_profit: Optional[float] = None
    o1min: Optional[float] = None
    o1: Optional[float] = None
    s1: Optional[float] = None
    p1: Optional[float] = None
    p2: Optional[float] = None
    pb: Optional[float] = None
    reason: Optional[str] = None


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


def _finite(name: str, value: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise InvalidInputError(f"{name} must be a number, got {value!r}.") from None
    if not math.isfinite(value):
        raise InvalidInputError(f"{name} must be finite, got {value!r}.")
    return value


def validate_odds(name: str, odds: float) -> float:
    """Return ``odds`` as float; raise unless finite and strictly > 1."""
    odds = _finite(name, odds)
    if odds <= 1.0:
        raise InvalidInputError(
            f"{name}={odds!r} is not valid decimal odds. Must be > 1.0."
        )
    return odds


def validate_stake(name: str, stake: float) -> float:
    """Return ``stake`` as float; raise unless finite and strictly positive."""
    stake = _finite(name, stake)
    if stake <= 0.0:
        raise InvalidInputError(f"{name} must be > 0, got {stake!r}.")
    return stake


def _non_negative(name: str, value: float) -> float:
    value = _finite(name, value)
    if value < 0.0:
        raise InvalidInputError(f"{name} must be >= 0, got {value!r}.")
    return value


# ---------------------------------------------------------------------------
# Branch profits
# ---------------------------------------------------------------------------


def compute_middle_profits(o1: float, s1: float, o2: float, s2: float) -> MiddleProfits:
    """Profit of an anchor/hedge pair under each of the three branches.

    Args:
        o1: Anchor decimal odds (> 1).
        s1: Anchor stake (> 0).
        o2: Hedge decimal odds (> 1).
        s2: Hedge stake (> 0).

    Returns:
        :class:`MiddleProfits` with ``p1``, ``p2`` and ``pb``.

    Raises:
        InvalidInputError: On non-finite values, odds ≤ 1 or stake ≤ 0.

    Examples::

        compute_middle_profits(2.10, 100, 2.00, 100)
            → MiddleProfits(p1=10.0, p2=0.0, pb=210.0)
    """
    o1 = validate_odds("o1", o1)
    s1 = validate_stake("s1", s1)
    o2 = validate_odds("o2", o2)
    s2 = validate_stake("s2", s2)

    anchor_win = s1 * (o1 - 1.0)
    hedge_win = s2 * (o2 - 1.0)
    return MiddleProfits(
        p1=anchor_win - s2,
        p2=hedge_win - s1,
        pb=anchor_win + hedge_win,
    )


# ---------------------------------------------------------------------------
# Solvers
# ---------------------------------------------------------------------------


def suggest_hedge_from_anchor(
    o1: float,
    s1: float,
    target_pct: float,
    odds_buffer: float = 0.0,
) -> HedgeSuggestion:
    """Solve for the hedge leg that locks in ``target_pct`` of the anchor stake.

    With ``T = s1 · target_pct / 100``::

        feasible  ⇔  target_pct / 100 < o1 − 1
        o2min     =  1 + (s1 + T) / (s1·(o1 − 1) − T)
        o2        =  o2min + odds_buffer
        s2        =  min((s1 + T) / (o2 − 1),  s1·(o1 − 1) − T)

    Args:
        o1: Anchor decimal odds (> 1).
        s1: Anchor stake (> 0).
        target_pct: Guaranteed profit as a percentage of ``s1`` (≥ 0).
        odds_buffer: Safety margin added to the minimum hedge odds (≥ 0).

    Returns:
        :class:`HedgeSuggestion`.  When feasible, ``p2 = T`` and ``p1 ≥ T``
        up to floating-point rounding.

    Raises:
        InvalidInputError: On structurally invalid input.  Never raised for
            an unreachable target.

    Examples::

        suggest_hedge_from_anchor(2.10, 100, 10)
            → feasible, o2min = 2.10, s2 = 100, p1 = p2 = 10
    """
    o1 = validate_odds("o1", o1)
    s1 = validate_stake("s1", s1)
    target_pct = _non_negative("target_pct", target_pct)
    odds_buffer = _non_negative("odds_buffer", odds_buffer)

    rate = target_pct / 100.0
    if not rate < o1 - 1.0:
        return HedgeSuggestion(
            feasible=False,
            reason=(
                f"Target {target_pct:g}% is not below the anchor margin "
                f"{(o1 - 1.0) * 100:g}%; no hedge odds can fund it."
            ),
        )

    target = s1 * rate
    margin = s1 * (o1 - 1.0) - target          # > 0 by the check above
    o2min = 1.0 + (s1 + target) / margin
    if o2min <= 1.0:
        return HedgeSuggestion(feasible=False, reason="Minimum hedge odds would be <= 1.")

    o2 = o2min + odds_buffer
    lower = (s1 + target) / (o2 - 1.0)
    upper = margin
    s2 = min(lower, upper)

    profits = compute_middle_profits(o1, s1, o2, s2)
    return HedgeSuggestion(
        feasible=True,
        target_profit=target,
        o2min=o2min,
        o2=o2,
        s2=s2,
        p1=profits.p1,
        p2=profits.p2,
        pb=profits.pb,
    )


def suggest_anchor_from_hedge(
    o2: float,
    s2: float,
    target_pct: float,
    odds_buffer: float = 0.0,
) -> AnchorSuggestion:
    """Solve for the anchor leg given a placed hedge (mirror of the above).

    With ``T = s2 · target_pct / 100``::

        feasible  ⇔  o2 − 1 > target_pct / 100
        s1        =  s2 · (o2 − 1 − target_pct / 100)
        o1min     =  1 + (T + s2) / s1
        o1        =  o1min + odds_buffer

    The resulting pair has ``p2 = T`` exactly and ``p1 = T + s1·odds_buffer``.
    """
    o2 = validate_odds("o2", o2)
    s2 = validate_stake("s2", s2)
    target_pct = _non_negative("target_pct", target_pct)
    odds_buffer = _non_negative("odds_buffer", odds_buffer)

    rate = target_pct / 100.0
    if not o2 - 1.0 > rate:
        return AnchorSuggestion(
            feasible=False,
            reason=(
                f"Hedge margin {(o2 - 1.0) * 100:g}% does not exceed the "
                f"target {target_pct:g}%."
            ),
        )

    target = s2 * rate
    s1 = s2 * (o2 - 1.0 - rate)
    if s1 <= 0.0:
        return AnchorSuggestion(feasible=False, reason="Required anchor stake would be <= 0.")

    o1min = 1.0 + (target + s2) / s1
    if o1min <= 1.0:
        return AnchorSuggestion(feasible=False, reason="Minimum anchor odds would be <= 1.")

    o1 = o1min + odds_buffer
    profits = compute_middle_profits(o1, s1, o2, s2)
    return AnchorSuggestion(
        feasible=True,
        target_profit=target,
        o1min=o1min,
        o1=o1,
        s1=s1,
        p1=profits.p1,
        p2=profits.p2,
        pb=profits.pb,
    )


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def profit_for_status(status: WagerStatus, odds: float, stake: float) -> Optional[float]:
    """Realised profit of a single wager for a given outcome status.

    ``PENDING`` returns ``None`` (profit is undefined until resolution).
    Half outcomes (Asian handicap quarter lines) settle half the stake.
    """
    odds = validate_odds("odds", odds)
    stake = validate_stake("stake", stake)
    status = WagerStatus(status)

    if status is WagerStatus.PENDING:
        return None
    if status is WagerStatus.WON:
        return stake * (odds - 1.0)
    if status is WagerStatus.HALF_WON:
        return stake * (odds - 1.0) / 2.0
    if status is WagerStatus.LOST:
        return -stake
    if status is WagerStatus.HALF_LOST:
        return -stake / 2.0
    return 0.0  # VOID
