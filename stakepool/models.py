"""
Database models for the StakePool syndicate engine
SQLAlchemy ORM (SQLite for development, PostgreSQL in production)
"""

from sqlalchemy import (
    create_engine,
    event,
    Column,
    Integer,
    String,
    Float,
    DateTime,
    Boolean,
    JSON,
    Text,
    ForeignKey,
    Date,
    Enum,
)
from sqlalchemy.orm import declarative_base, sessionmaker, relationship
from datetime import datetime, date
import os
from dotenv import load_dotenv

from stakepool.core.enums import (
    AuditEventType,
    LedgerKind,
    ParticipantRole,
    WagerKind,
    WagerStatus,
)
from stakepool.core.errors import InvariantViolation

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./stakepool.db")


def make_engine(url: str = DATABASE_URL):
    """Engine factory; SQLite needs cross-thread access under FastAPI."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, pool_pre_ping=True, echo=False, connect_args=connect_args)


engine = make_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _enum(enum_cls, length: int = 20):
    # Stored as the member name; non-native so SQLite and Postgres agree.
    return Enum(enum_cls, native_enum=False, length=length, validate_strings=True)


class Participant(Base):
    """A pool member; investors carry the pro-rata weight."""

    __tablename__ = "participants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True)
    role = Column(_enum(ParticipantRole), nullable=False, default=ParticipantRole.INVESTOR)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    # Principal is the distribution weight; changed only by deposit/withdrawal flows
    invested_amount = Column(Float, nullable=False, default=0.0)
    total_profit_earned = Column(Float, nullable=False, default=0.0)

    # Per-cycle counters, reset only by an administrative cycle reset
    cycle_gross_profit = Column(Float, nullable=False, default=0.0)
    cycle_fees_paid = Column(Float, nullable=False, default=0.0)
    cycle_net_profit = Column(Float, nullable=False, default=0.0)
    cycle_started_at = Column(DateTime, default=datetime.utcnow)

    join_date = Column(Date, default=date.today)

    ledger_entries = relationship(
        "LedgerEntry", back_populates="participant", order_by="LedgerEntry.id"
    )

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class LedgerEntry(Base):
    """Append-only money movement for one participant."""

    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, index=True)
    participant_id = Column(Integer, ForeignKey("participants.id"), nullable=False, index=True)
    entry_date = Column(Date, nullable=False, index=True)
    amount = Column(Float, nullable=False)  # Signed: payouts may be negative, fees always negative
    kind = Column(_enum(LedgerKind), nullable=False, index=True)

    # Set for PROFIT_PAYOUT / FEE entries written by a day closure
    daily_history_id = Column(Integer, ForeignKey("daily_history.id"), index=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    participant = relationship("Participant", back_populates="ledger_entries")


class Wager(Base):
    """One leg of a wager group (anchor, optionally paired with a hedge)."""

    __tablename__ = "wagers"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(String(36), nullable=False, index=True)
    kind = Column(_enum(WagerKind), nullable=False, default=WagerKind.ANCHOR)

    # Accounting date (closure key) and actual event time
    wager_date = Column(Date, nullable=False, index=True)
    event_timestamp = Column(DateTime)

    # What we bet
    sport = Column(String)
    league = Column(String)
    event = Column(String)
    market = Column(String)
    selection = Column(String)
    odds = Column(Float, nullable=False)   # Decimal odds (> 1)
    stake = Column(Float, nullable=False)  # Currency units (> 0)

    # Outcome
    status = Column(_enum(WagerStatus), nullable=False, default=WagerStatus.PENDING, index=True)
    profit = Column(Float)  # NULL while PENDING
    resolved_at = Column(DateTime)

    # Set exactly once, by the day closure
    settled_in_ledger = Column(Boolean, nullable=False, default=False, index=True)
    daily_history_id = Column(Integer, ForeignKey("daily_history.id"), index=True)

    # Pair branch profits (stored on the HEDGE leg)
    middle_p1 = Column(Float)
    middle_p2 = Column(Float)
    middle_pb = Column(Float)

    created_by = Column(String)
    notes = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class DailyHistory(Base):
    """Write-once summary of one closed day."""

    __tablename__ = "daily_history"

    id = Column(Integer, primary_key=True, index=True)
    day_number = Column(Integer, nullable=False)
    date = Column(Date, nullable=False, unique=True, index=True)

    turnover = Column(Float, nullable=False)
    daily_gross_profit = Column(Float, nullable=False)
    wager_count = Column(Integer, nullable=False)

    bank_value_start = Column(Float, nullable=False)
    bank_value_end = Column(Float, nullable=False)

    distributed_net_profit = Column(Float, nullable=False)
    collected_fees = Column(Float, nullable=False)

    # Fee context at closure time (for audit)
    fee_rate = Column(Float, nullable=False)
    active_investors = Column(Integer, nullable=False)

    closed_by = Column(String)
    notes = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)


class AuditEvent(Base):
    """Operator-visible trail of every economic mutation."""

    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    actor = Column(String, nullable=False)
    event_type = Column(_enum(AuditEventType, length=32), nullable=False, index=True)
    description = Column(Text, nullable=False)
    details = Column(JSON)


# ---------------------------------------------------------------------------
# Write-once guards
# ---------------------------------------------------------------------------

@event.listens_for(DailyHistory, "before_update")
def _history_is_write_once(mapper, connection, target):
    raise InvariantViolation(f"Daily history for {target.date} is immutable")


@event.listens_for(DailyHistory, "before_delete")
def _history_is_not_deletable(mapper, connection, target):
    raise InvariantViolation(f"Daily history for {target.date} cannot be deleted")


@event.listens_for(LedgerEntry, "before_update")
def _ledger_is_append_only(mapper, connection, target):
    raise InvariantViolation(f"Ledger entry {target.id} is append-only")


@event.listens_for(LedgerEntry, "before_delete")
def _ledger_is_not_deletable(mapper, connection, target):
    raise InvariantViolation(f"Ledger entry {target.id} cannot be deleted")


# Create all tables
def init_db(bind=None):
    """Initialize database tables"""
    Base.metadata.create_all(bind=bind or engine)
    print("✅ Database tables created")


if __name__ == "__main__":
    init_db()
