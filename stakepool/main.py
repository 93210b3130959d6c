"""
FastAPI application for the StakePool syndicate engine
Includes REST API, the optional auto-close job, and error mapping
"""

from fastapi import FastAPI, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import List, Optional
from zoneinfo import ZoneInfo
import logging
import os

from stakepool.models import get_db, Participant, SessionLocal
from stakepool.auth import verify_api_key, verify_admin_api_key
from stakepool.core.errors import (
    ClosureError,
    ConcurrentClosureError,
    InvalidInputError,
    InvariantViolation,
    ParticipantNotFoundError,
    WagerNotFoundError,
)
from stakepool.core.enums import AuditEventType
from stakepool.core.fee_schedule import fee_rate, fee_tier_label
from stakepool.core.hedge_math import suggest_anchor_from_hedge, suggest_hedge_from_anchor
from stakepool.services.audit import recent_events
from stakepool.services.participants import (
    active_investor_count,
    approve_deposit,
    approve_withdrawal,
    reset_cycle,
)
from stakepool.services.settlement import close_day, list_history
from stakepool.services.wagers import (
    LegInput,
    delete_group,
    list_unsettled_dates,
    list_wagers,
    place_pair,
    place_wager,
    update_wager,
)
from stakepool.services.watchdog import check_pair, current_bank_value
from stakepool.schemas import (
    AmountRequest,
    AnchorFromHedgeRequest,
    AuditEventResponse,
    CloseDayRequest,
    ClosureResponse,
    DailyHistoryResponse,
    FeeResponse,
    HedgeFromAnchorRequest,
    LedgerEntryResponse,
    LegCreate,
    PairCreate,
    PairResponse,
    ParticipantResponse,
    SuggestionResponse,
    WagerResponse,
    WagerUpdate,
)

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Scheduler instance
scheduler = BackgroundScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    logger.info("🚀 Starting StakePool")

    auto_close = os.getenv("AUTO_CLOSE_ENABLED", "false").lower() == "true"
    if auto_close:
        close_hour = int(os.getenv("AUTO_CLOSE_HOUR", "1"))
        timezone = os.getenv("AUTO_CLOSE_TIMEZONE", "Europe/Bucharest")
        scheduler.add_job(
            _auto_close_job,
            CronTrigger(hour=close_hour, minute=0, timezone=timezone),
            id="auto_close_day",
            name="Close Previous Day",
            replace_existing=True,
        )
        logger.info("Auto-close enabled: previous day closes at %02d:00 %s", close_hour, timezone)

    scheduler.start()

    yield

    # Shutdown
    logger.info("👋 Shutting down StakePool")
    scheduler.shutdown()


app = FastAPI(
    title="StakePool",
    description="Pooled-bankroll wager ledger with anchor/hedge calculators",
    version="1.0",
    lifespan=lifespan,
)

# CORS (adjust origins for production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# SCHEDULED JOB
# ============================================================================

def _auto_close_job():
    """
    Close yesterday (in the configured timezone).

    Safe to run on any schedule: a date with nothing left to settle is a no-op.
    """
    timezone = os.getenv("AUTO_CLOSE_TIMEZONE", "Europe/Bucharest")
    day = datetime.now(ZoneInfo(timezone)).date() - timedelta(days=1)
    db = SessionLocal()
    try:
        result = close_day(db, day, actor="scheduler")
        logger.info("Auto-close %s: %s", day, result.message)
    except Exception as exc:
        logger.error("Auto-close job failed for %s: %s", day, exc, exc_info=True)
    finally:
        db.close()


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Health check"""
    return {
        "app": "StakePool",
        "version": "1.0",
        "status": "operational",
        "timestamp": datetime.utcnow().isoformat(),
    }


@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """Health check endpoint"""
    health = {"status": "healthy", "database": "connected", "scheduler": "running"}

    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check database error: {e}")
        health["status"] = "degraded"
        health["database"] = f"error: {str(e)}"

    if not scheduler.running:
        health["status"] = "degraded"
        health["scheduler"] = "stopped"

    return health


# ============================================================================
# AUTHENTICATED ENDPOINTS - CALCULATORS
# ============================================================================

@app.get("/api/fees", response_model=FeeResponse)
async def get_fee(
    active_count: Optional[int] = Query(default=None, ge=0),
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Fee rate for a given active-investor count (defaults to the current count)."""
    if active_count is None:
        active_count = active_investor_count(db)
    return FeeResponse(
        active_count=active_count,
        fee_rate=fee_rate(active_count),
        tier_label=fee_tier_label(active_count),
    )


@app.post("/api/hedge/from-anchor", response_model=SuggestionResponse)
async def hedge_from_anchor(
    payload: HedgeFromAnchorRequest,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Recommend hedge odds and stake for a placed anchor."""
    s = suggest_hedge_from_anchor(
        payload.anchor_odds, payload.anchor_stake, payload.target_pct, payload.odds_buffer
    )
    if not s.feasible:
        return SuggestionResponse(feasible=False, reason=s.reason)

    warnings = check_pair(current_bank_value(db), payload.anchor_stake, s.s2, s.pb)
    return SuggestionResponse(
        feasible=True,
        target_profit=s.target_profit,
        min_odds=s.o2min,
        recommended_odds=s.o2,
        recommended_stake=s.s2,
        p1=s.p1,
        p2=s.p2,
        pb=s.pb,
        warnings=[w.to_dict() for w in warnings],
    )


@app.post("/api/hedge/from-hedge", response_model=SuggestionResponse)
async def anchor_from_hedge(
    payload: AnchorFromHedgeRequest,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Recommend anchor odds and stake for a placed hedge."""
    s = suggest_anchor_from_hedge(
        payload.hedge_odds, payload.hedge_stake, payload.target_pct, payload.odds_buffer
    )
    if not s.feasible:
        return SuggestionResponse(feasible=False, reason=s.reason)

    warnings = check_pair(current_bank_value(db), s.s1, payload.hedge_stake, s.pb)
    return SuggestionResponse(
        feasible=True,
        target_profit=s.target_profit,
        min_odds=s.o1min,
        recommended_odds=s.o1,
        recommended_stake=s.s1,
        p1=s.p1,
        p2=s.p2,
        pb=s.pb,
        warnings=[w.to_dict() for w in warnings],
    )


# ============================================================================
# AUTHENTICATED ENDPOINTS - WAGERS
# ============================================================================

def _to_leg(leg: LegCreate) -> LegInput:
    return LegInput(**leg.model_dump())


@app.get("/api/wagers", response_model=List[WagerResponse])
async def get_wagers(
    day: Optional[date] = Query(default=None),
    group_id: Optional[str] = Query(default=None),
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Wagers, newest date first; optionally for one date or one group."""
    return list_wagers(db, day=day, group_id=group_id)


@app.post("/api/wagers", response_model=WagerResponse, status_code=201)
async def create_wager(
    payload: LegCreate,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Place a single (unhedged) wager."""
    return place_wager(db, _to_leg(payload), actor=user)


@app.post("/api/wagers/pair", response_model=PairResponse, status_code=201)
async def create_pair(
    payload: PairCreate,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Place an anchor and its hedge under one group id."""
    anchor, hedge = place_pair(db, _to_leg(payload.anchor), _to_leg(payload.hedge), actor=user)
    return PairResponse(
        group_id=anchor.group_id,
        anchor=WagerResponse.model_validate(anchor),
        hedge=WagerResponse.model_validate(hedge),
    )


@app.patch("/api/wagers/{wager_id}", response_model=WagerResponse)
async def patch_wager(
    wager_id: int,
    payload: WagerUpdate,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Edit or resolve an unsettled wager."""
    return update_wager(
        db,
        wager_id,
        odds=payload.odds,
        stake=payload.stake,
        status=payload.status,
        notes=payload.notes,
        actor=user,
    )


@app.delete("/api/wagers/groups/{group_id}")
async def remove_group(
    group_id: str,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Delete an unsettled wager group (anchor and hedge together)."""
    deleted = delete_group(db, group_id, actor=user)
    return {"message": "Wager group deleted", "group_id": group_id, "deleted": deleted}


# ============================================================================
# AUTHENTICATED ENDPOINTS - HISTORY AND PARTICIPANTS
# ============================================================================

@app.get("/api/history", response_model=List[DailyHistoryResponse])
async def get_history(
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Closed days, newest first."""
    return list_history(db, limit=limit)


@app.get("/api/participants", response_model=List[ParticipantResponse])
async def get_participants(
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    return db.query(Participant).order_by(Participant.id).all()


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================

@app.post("/admin/close-day", response_model=ClosureResponse)
async def admin_close_day(
    payload: CloseDayRequest,
    user: str = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    """
    Settle every resolved wager of a date and distribute its profit.

    Idempotent: a second call for the same date returns ``closed: false``.
    """
    result = close_day(db, payload.day, actor=user)
    return ClosureResponse(**result.to_dict())


@app.get("/admin/unsettled-dates")
async def admin_unsettled_dates(
    user: str = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    """Dates with resolved wagers still waiting for closure."""
    return {"dates": [d.isoformat() for d in list_unsettled_dates(db)]}


@app.post("/admin/participants/{participant_id}/deposit", response_model=LedgerEntryResponse)
async def admin_deposit(
    participant_id: int,
    payload: AmountRequest,
    user: str = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    return approve_deposit(db, participant_id, payload.amount, actor=user)


@app.post("/admin/participants/{participant_id}/withdrawal", response_model=LedgerEntryResponse)
async def admin_withdrawal(
    participant_id: int,
    payload: AmountRequest,
    user: str = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    return approve_withdrawal(db, participant_id, payload.amount, actor=user)


@app.post("/admin/participants/{participant_id}/reset-cycle", response_model=ParticipantResponse)
async def admin_reset_cycle(
    participant_id: int,
    user: str = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    """Zero a participant's cycle counters (lifetime profit is kept)."""
    return reset_cycle(db, participant_id, actor=user)


@app.get("/admin/audit-events", response_model=List[AuditEventResponse])
async def admin_audit_events(
    limit: int = Query(default=100, ge=1, le=1000),
    event_type: Optional[AuditEventType] = Query(default=None),
    user: str = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    """Most recent audit events, newest first."""
    return recent_events(db, limit=limit, event_type=event_type)


@app.get("/admin/scheduler/status")
async def get_scheduler_status(user: str = Depends(verify_admin_api_key)):
    """Get scheduler job status"""
    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
        })

    return {
        "running": scheduler.running,
        "jobs": jobs,
    }


# ============================================================================
# ERROR HANDLERS
# ============================================================================

def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "type": type(exc).__name__},
    )


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    return _error(422, exc)


@app.exception_handler(InvariantViolation)
async def invariant_handler(request: Request, exc: InvariantViolation):
    return _error(409, exc)


@app.exception_handler(WagerNotFoundError)
async def wager_not_found_handler(request: Request, exc: WagerNotFoundError):
    return _error(404, exc)


@app.exception_handler(ParticipantNotFoundError)
async def participant_not_found_handler(request: Request, exc: ParticipantNotFoundError):
    return _error(404, exc)


@app.exception_handler(ConcurrentClosureError)
async def concurrent_closure_handler(request: Request, exc: ConcurrentClosureError):
    return _error(409, exc)


@app.exception_handler(ClosureError)
async def closure_error_handler(request: Request, exc: ClosureError):
    logger.error("Closure failed: %s", exc)
    return _error(500, exc)


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Catch-all exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
