"""Tiered platform fee: the single source of truth for fee rates.

Every function here is **pure**: no I/O, no logging, no cached state.
The active-investor count is always an explicit argument; callers must pass
the freshest count they have (the settlement orchestrator counts active
investors inside its own transaction).

The schedule is a monotonically non-decreasing step function of the number
of active investors, capped at 19%::

    active investors   rate
    ----------------   -----
    0-1                0.0%
    2-5                1.0%
    6-10               1.5%
    11-20              2.0%
    21-50              2.5%
    51-100             5.0%
    101-200           10.0%
    201-500           15.0%
    over 500          19.0%   (fixed ceiling)

The fee is only ever charged on a participant's positive daily gross profit;
see :mod:`stakepool.core.distribution`.

Run tests with::

    pytest tests/test_fee_schedule.py -v
"""

from __future__ import annotations

from typing import Final

from stakepool.core.errors import InvalidInputError

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

#: ``(inclusive upper bound, rate, label)`` for every bounded tier, ascending.
#: The first tier is "fewer than 2", i.e. an inclusive bound of 1.
_TIERS: Final[tuple[tuple[int, float, str], ...]] = (
    (1, 0.0, "under 2 active investors"),
    (5, 0.01, "2-5 active investors"),
    (10, 0.015, "6-10 active investors"),
    (20, 0.02, "11-20 active investors"),
    (50, 0.025, "21-50 active investors"),
    (100, 0.05, "51-100 active investors"),
    (200, 0.10, "101-200 active investors"),
    (500, 0.15, "201-500 active investors"),
)

#: Rate applied above the last bounded tier.
MAX_FEE_RATE: Final[float] = 0.19

_TOP_LABEL: Final[str] = "over 500 active investors"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def _tier_index(active_count: int) -> int:
    if isinstance(active_count, bool) or not isinstance(active_count, int):
        raise InvalidInputError(
            f"active_count must be an int, got {active_count!r}."
        )
    if active_count < 0:
        raise InvalidInputError(
            f"active_count must be >= 0, got {active_count!r}."
        )
    for idx, (upper, _, _) in enumerate(_TIERS):
        if active_count <= upper:
            return idx
    return len(_TIERS)


def fee_rate(active_count: int) -> float:
    """Platform fee rate for the given number of active investors.

    Args:
        active_count: Number of active investors with positive principal.

    Returns:
        Fee rate in ``[0, 0.19]``.

    Raises:
        InvalidInputError: If ``active_count`` is negative or not an int.

    Examples::

        fee_rate(1)   → 0.0
        fee_rate(3)   → 0.01
        fee_rate(501) → 0.19
    """
    idx = _tier_index(active_count)
    if idx == len(_TIERS):
        return MAX_FEE_RATE
    return _TIERS[idx][1]


def fee_tier_label(active_count: int) -> str:
    """Human-readable bracket for audit display, e.g. ``"6-10 active investors"``."""
    idx = _tier_index(active_count)
    if idx == len(_TIERS):
        return _TOP_LABEL
    return _TIERS[idx][2]
