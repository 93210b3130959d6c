"""
Stake watchdog: advisory warnings for a proposed anchor/hedge pair.

Two conditions are checked before an operator commits a pair:

  1. STAKE_EXPOSURE   combined stake exceeds N% of the current bank
                        (``WATCHDOG_STAKE_THRESHOLD_PCT``, default 5)
  2. THIN_MIDDLE      the both-win profit is below N% of combined stake
                        (``WATCHDOG_MIDDLE_PROFIT_THRESHOLD_PCT``, default 1)

Warnings never block placement; they are returned alongside the hedge
suggestion for the operator to judge.
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from stakepool.models import DailyHistory
from stakepool.services.participants import total_investor_principal

logger = logging.getLogger(__name__)


@dataclass
class StakeWarning:
    warning_type: str         # STAKE_EXPOSURE | THIN_MIDDLE
    message: str
    threshold: float
    current_value: float

    def to_dict(self) -> dict:
        return {
            "warning_type": self.warning_type,
            "message": self.message,
            "threshold": self.threshold,
            "current_value": self.current_value,
        }


def current_bank_value(db: Session) -> float:
    """Bank at the end of the latest closed day, else total investor principal."""
    last = db.query(DailyHistory).order_by(DailyHistory.date.desc()).first()
    if last is not None:
        return last.bank_value_end
    return total_investor_principal(db)


def check_pair(
    total_bank: float,
    anchor_stake: float,
    hedge_stake: float,
    middle_profit: Optional[float],
    *,
    stake_threshold_pct: Optional[float] = None,
    middle_threshold_pct: Optional[float] = None,
) -> List[StakeWarning]:
    """Evaluate both watchdog conditions for a pair."""
    if stake_threshold_pct is None:
        stake_threshold_pct = float(os.getenv("WATCHDOG_STAKE_THRESHOLD_PCT", "5"))
    if middle_threshold_pct is None:
        middle_threshold_pct = float(os.getenv("WATCHDOG_MIDDLE_PROFIT_THRESHOLD_PCT", "1"))

    warnings: List[StakeWarning] = []
    total_stake = (anchor_stake or 0.0) + (hedge_stake or 0.0)
    if total_stake <= 0:
        return warnings

    if total_bank > 0:
        stake_pct = total_stake / total_bank * 100.0
        if stake_pct > stake_threshold_pct:
            warnings.append(StakeWarning(
                warning_type="STAKE_EXPOSURE",
                message=(
                    f"Combined stake {total_stake:.2f} is {stake_pct:.1f}% of the bank, "
                    f"above the {stake_threshold_pct:g}% threshold"
                ),
                threshold=stake_threshold_pct,
                current_value=round(stake_pct, 4),
            ))

    if middle_profit is not None:
        middle_pct = middle_profit / total_stake * 100.0
        if middle_pct < middle_threshold_pct:
            warnings.append(StakeWarning(
                warning_type="THIN_MIDDLE",
                message=(
                    f"Middle profit {middle_profit:.2f} is only {middle_pct:.2f}% "
                    f"of combined stake"
                ),
                threshold=middle_threshold_pct,
                current_value=round(middle_pct, 4),
            ))

    for warning in warnings:
        logger.info("Watchdog %s: %s", warning.warning_type, warning.message)
    return warnings
