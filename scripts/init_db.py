#!/usr/bin/env python3
"""
Database initialization script
Creates all tables and optionally seeds a demo syndicate
"""

import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Load .env file
from dotenv import load_dotenv
load_dotenv()

from stakepool.models import Base, engine, SessionLocal, Participant
from stakepool.core.enums import ParticipantRole
from stakepool.services.participants import approve_deposit
import logging
from sqlalchemy import text, inspect

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init_database(drop_existing: bool = False):
    """
    Initialize database tables

    Args:
        drop_existing: If True, drops all tables first (DANGER: ledger loss!)
    """
    logger.info("🔧 Initializing StakePool database...")

    if drop_existing:
        logger.warning("⚠️  Dropping all existing tables!")
        response = input("Are you sure? This will delete the whole ledger. Type 'yes' to confirm: ")
        if response.lower() != 'yes':
            logger.info("Aborted.")
            return

        Base.metadata.drop_all(bind=engine)
        logger.info("✅ Existing tables dropped")

    # Create all tables
    Base.metadata.create_all(bind=engine)
    logger.info("✅ Database tables created successfully")

    # List created tables
    inspector = inspect(engine)
    tables = inspector.get_table_names()
    logger.info(f"📋 Tables: {', '.join(tables)}")

    return True


def seed_test_data():
    """Add an admin and three investors with approved deposits"""
    logger.info("🌱 Seeding test data...")

    db = SessionLocal()

    try:
        if db.query(Participant).count():
            logger.info("Participants already present; skipping seed")
            return

        admin = Participant(name="Admin", email="admin@example.com", role=ParticipantRole.ADMIN)
        investors = [
            Participant(name="Investor A", email="a@example.com", role=ParticipantRole.INVESTOR),
            Participant(name="Investor B", email="b@example.com", role=ParticipantRole.INVESTOR),
            Participant(name="Investor C", email="c@example.com", role=ParticipantRole.INVESTOR),
        ]
        db.add_all([admin, *investors])
        db.commit()

        for investor, amount in zip(investors, (1000.0, 2500.0, 500.0)):
            approve_deposit(db, investor.id, amount, actor="seed")

        logger.info("✅ Test data seeded")

    except Exception as e:
        logger.error(f"❌ Error seeding data: {e}")
        db.rollback()

    finally:
        db.close()


def check_connection():
    """Test database connection"""
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        db.close()
        logger.info("✅ Database connection successful")
        return True
    except Exception as e:
        logger.error(f"❌ Database connection failed: {e}")
        return False


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Initialize StakePool database")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables (DANGER!)")
    parser.add_argument("--seed", action="store_true", help="Seed a demo syndicate")
    parser.add_argument("--check", action="store_true", help="Only check connection")

    args = parser.parse_args()

    if args.check:
        check_connection()
    else:
        if check_connection():
            init_database(drop_existing=args.drop)

            if args.seed:
                seed_test_data()

            logger.info("🎉 Database initialization complete!")
        else:
            logger.error("Cannot initialize database - connection failed")
            sys.exit(1)
