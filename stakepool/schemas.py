"""
Pydantic request/response schemas for the StakePool API.

Using explicit schemas instead of raw dicts prevents mass-assignment
on ORM models (nobody can PATCH ``settled_in_ledger`` or ``profit``) and
generates accurate OpenAPI docs.
"""

from typing import Optional
from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from stakepool.core.enums import (
    AuditEventType,
    LedgerKind,
    ParticipantRole,
    WagerKind,
    WagerStatus,
)


# ---------------------------------------------------------------------------
# Fees
# ---------------------------------------------------------------------------

class FeeResponse(BaseModel):
    active_count: int
    fee_rate: float
    tier_label: str


# ---------------------------------------------------------------------------
# Hedge calculators
# ---------------------------------------------------------------------------

class HedgeFromAnchorRequest(BaseModel):
    """Payload for POST /api/hedge/from-anchor."""

    anchor_odds: float = Field(..., gt=1.0, allow_inf_nan=False, description="Decimal odds o1")
    anchor_stake: float = Field(..., gt=0, allow_inf_nan=False, description="Stake s1")
    target_pct: float = Field(..., ge=0, allow_inf_nan=False, description="Guaranteed profit, % of s1")
    odds_buffer: float = Field(0.0, ge=0, allow_inf_nan=False, description="e.g. 0, 0.03, 0.05, 0.10")

    model_config = {
        "json_schema_extra": {
            "example": {"anchor_odds": 2.10, "anchor_stake": 100, "target_pct": 10, "odds_buffer": 0.03}
        }
    }


class AnchorFromHedgeRequest(BaseModel):
    """Payload for POST /api/hedge/from-hedge."""

    hedge_odds: float = Field(..., gt=1.0, allow_inf_nan=False, description="Decimal odds o2")
    hedge_stake: float = Field(..., gt=0, allow_inf_nan=False, description="Stake s2")
    target_pct: float = Field(..., ge=0, allow_inf_nan=False, description="Guaranteed profit, % of s2")
    odds_buffer: float = Field(0.0, ge=0, allow_inf_nan=False)


class WatchdogWarningResponse(BaseModel):
    warning_type: str
    message: str
    threshold: float
    current_value: float


class SuggestionResponse(BaseModel):
    """Solver output; numeric fields are null when infeasible."""

    feasible: bool
    reason: Optional[str] = None
    target_profit: Optional[float] = None
    min_odds: Optional[float] = None
    recommended_odds: Optional[float] = None
    recommended_stake: Optional[float] = None
    p1: Optional[float] = None
    p2: Optional[float] = None
    pb: Optional[float] = None
    warnings: list[WatchdogWarningResponse] = []


# ---------------------------------------------------------------------------
# Wagers
# ---------------------------------------------------------------------------

class LegCreate(BaseModel):
    """One wager leg as entered by the operator."""

    wager_date: date = Field(..., description="Accounting date used by day closure")
    odds: float = Field(..., gt=1.0, allow_inf_nan=False, description="Decimal odds")
    stake: float = Field(..., gt=0, allow_inf_nan=False)
    selection: str = Field(..., min_length=1, max_length=200)
    event: Optional[str] = Field(None, max_length=200)
    sport: Optional[str] = Field(None, max_length=80)
    league: Optional[str] = Field(None, max_length=120)
    market: Optional[str] = Field(None, max_length=120)
    event_timestamp: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("selection")
    @classmethod
    def strip_selection(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("selection cannot be blank")
        return v


class PairCreate(BaseModel):
    """Payload for POST /api/wagers/pair."""

    anchor: LegCreate
    hedge: LegCreate


class WagerUpdate(BaseModel):
    """
    Payload for PATCH /api/wagers/{wager_id}.

    Odds and stake can only change while the wager is PENDING (or in the
    same request that resolves it).  Setting status to PENDING reverts an
    unsettled resolution.
    """

    odds: Optional[float] = Field(None, gt=1.0, allow_inf_nan=False)
    stake: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    status: Optional[WagerStatus] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def require_change(self) -> "WagerUpdate":
        if all(v is None for v in (self.odds, self.stake, self.status, self.notes)):
            raise ValueError("At least one field must be provided")
        return self


class WagerResponse(BaseModel):
    id: int
    group_id: str
    kind: WagerKind
    wager_date: date
    event_timestamp: Optional[datetime] = None
    sport: Optional[str] = None
    league: Optional[str] = None
    event: Optional[str] = None
    market: Optional[str] = None
    selection: Optional[str] = None
    odds: float
    stake: float
    status: WagerStatus
    profit: Optional[float] = None
    resolved_at: Optional[datetime] = None
    settled_in_ledger: bool
    middle_p1: Optional[float] = None
    middle_p2: Optional[float] = None
    middle_pb: Optional[float] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class PairResponse(BaseModel):
    group_id: str
    anchor: WagerResponse
    hedge: WagerResponse


# ---------------------------------------------------------------------------
# Closure and history
# ---------------------------------------------------------------------------

class CloseDayRequest(BaseModel):
    day: date


class ClosureResponse(BaseModel):
    day: date
    closed: bool
    message: str
    wager_count: int
    turnover: float
    daily_gross_profit: float
    distributed_net_profit: float
    collected_fees: float
    fee_rate: float
    active_investors: int
    bank_value_start: Optional[float] = None
    bank_value_end: Optional[float] = None
    history_id: Optional[int] = None


class DailyHistoryResponse(BaseModel):
    id: int
    day_number: int
    date: date
    turnover: float
    daily_gross_profit: float
    wager_count: int
    bank_value_start: float
    bank_value_end: float
    distributed_net_profit: float
    collected_fees: float
    fee_rate: float
    active_investors: int
    notes: Optional[str] = None

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------

class ParticipantResponse(BaseModel):
    id: int
    name: str
    role: ParticipantRole
    is_active: bool
    invested_amount: float
    total_profit_earned: float
    cycle_gross_profit: float
    cycle_fees_paid: float
    cycle_net_profit: float

    class Config:
        from_attributes = True


class AmountRequest(BaseModel):
    amount: float = Field(..., gt=0, allow_inf_nan=False)


class LedgerEntryResponse(BaseModel):
    id: int
    participant_id: int
    entry_date: date
    amount: float
    kind: LedgerKind

    class Config:
        from_attributes = True


class AuditEventResponse(BaseModel):
    id: int
    created_at: datetime
    actor: str
    event_type: AuditEventType
    description: str
    details: Optional[dict] = None

    class Config:
        from_attributes = True
