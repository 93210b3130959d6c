"""Shared fixtures: an in-memory SQLite database and small row factories."""

from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from stakepool.core.enums import ParticipantRole, WagerStatus
from stakepool.models import Base, Participant
from stakepool.services.wagers import LegInput, place_pair, place_wager, resolve_wager


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_participant(db):
    def _make(name, principal=0.0, role=ParticipantRole.INVESTOR, active=True):
        participant = Participant(
            name=name,
            email=f"{name.lower().replace(' ', '.')}@example.com",
            role=role,
            is_active=active,
            invested_amount=principal,
        )
        db.add(participant)
        db.commit()
        return participant

    return _make


def leg(day=date(2026, 10, 16), odds=2.0, stake=10.0, selection="Home"):
    return LegInput(wager_date=day, odds=odds, stake=stake, selection=selection)


@pytest.fixture
def resolved_wager(db):
    """Place a single wager and resolve it in one step."""
    def _make(status=WagerStatus.WON, day=date(2026, 10, 16), odds=2.0, stake=10.0):
        wager = place_wager(db, leg(day, odds, stake), actor="tester")
        return resolve_wager(db, wager.id, status, actor="tester")

    return _make


@pytest.fixture
def pair(db):
    def _make(day=date(2026, 10, 16), o1=2.10, s1=100.0, o2=2.10, s2=100.0):
        return place_pair(
            db,
            leg(day, o1, s1, "Over 2.5"),
            leg(day, o2, s2, "Under 3.5"),
            actor="tester",
        )

    return _make
