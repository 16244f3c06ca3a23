#!/usr/bin/env python3
"""Setup script for the vendor portal API: migrate the schema and load sample data."""

import asyncio
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from vendor_portal.core.database import async_session_factory, close_db
from vendor_portal.models import Departure, DepartureStatus, Plan

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SAMPLE_VENDOR_ID = "vendor-sample"


def run_migrations() -> None:
    """Apply Alembic migrations up to head."""
    logger.info("Running database migrations...")

    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))
    command.upgrade(alembic_cfg, "head")

    logger.info("Database migrations completed")


async def create_sample_data() -> None:
    """Create a sample plan with a few weekly departures."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        try:
            existing = await db.execute(select(func.count()).select_from(Plan))
            if existing.scalar_one() > 0:
                logger.info("Sample data already exists, skipping...")
                return

            plan = Plan(
                vendor_id=SAMPLE_VENDOR_ID,
                name="Hampta Pass Trek",
                description="Five days crossing from Kullu's green valleys into Lahaul",
                price_amount=1499900,
                price_currency="INR",
                is_active=True,
            )
            db.add(plan)
            await db.flush()

            now = datetime.now(timezone.utc)
            for week in range(5):
                db.add(Departure(
                    plan_id=plan.id,
                    departure_date=(now + timedelta(days=30 + week * 7)).date(),
                    pickup_location="Manali Mall Road",
                    pickup_time="06:30",
                    total_capacity=20,
                    booked_seats=0,
                    status=DepartureStatus.SCHEDULED.value,
                    is_active=True,
                    updated_at=now,
                ))

            await db.commit()
            logger.info("Sample data created successfully", extra={"plan_id": str(plan.id)})

        except Exception as e:
            await db.rollback()
            logger.error("Failed to create sample data", extra={"error": str(e)})
            raise
        finally:
            await close_db()


def main() -> None:
    """Main setup function."""
    logger.info("Starting vendor portal API setup...")

    run_migrations()
    asyncio.run(create_sample_data())

    logger.info("Setup completed successfully!")
    logger.info("Start the API server with: cd server && uvicorn vendor_portal.main:app --reload")


if __name__ == "__main__":
    main()
