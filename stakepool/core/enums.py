from enum import Enum


class WagerKind(str, Enum):
    ANCHOR = "ANCHOR"   # First leg, taken at the value price
    HEDGE = "HEDGE"     # Complementary leg sharing the anchor's group_id


class WagerStatus(str, Enum):
    PENDING = "PENDING"     # Initial state
    WON = "WON"
    HALF_WON = "HALF_WON"
    LOST = "LOST"
    HALF_LOST = "HALF_LOST"
    VOID = "VOID"           # Stake returned, zero P&L

    @property
    def is_terminal(self) -> bool:
        return self is not WagerStatus.PENDING


class LedgerKind(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    PROFIT_PAYOUT = "PROFIT_PAYOUT"
    FEE = "FEE"


class ParticipantRole(str, Enum):
    INVESTOR = "INVESTOR"
    ADMIN = "ADMIN"


class AuditEventType(str, Enum):
    WAGER_PLACED = "WAGER_PLACED"
    WAGER_UPDATED = "WAGER_UPDATED"
    WAGER_GROUP_DELETED = "WAGER_GROUP_DELETED"
    WAGERS_RESOLVED = "WAGERS_RESOLVED"
    PROFIT_DISTRIBUTION = "PROFIT_DISTRIBUTION"
    DEPOSIT_APPROVED = "DEPOSIT_APPROVED"
    WITHDRAWAL_APPROVED = "WITHDRAWAL_APPROVED"
    CYCLE_RESET = "CYCLE_RESET"
