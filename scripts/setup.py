#!/usr/bin/env python3
"""Setup script for the departure booking API."""

import asyncio
import logging
import sys
from datetime import date, timedelta
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from app.core.database import async_session_factory, close_db
from app.models import Departure
from app.schemas.allocation import PriceTable
from app.schemas.departure import CreateDepartureRequest
from app.services.departure_service import DepartureService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def run_migrations():
    """Apply every Alembic migration."""
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))
    command.upgrade(alembic_cfg, "head")


async def setup_database():
    """Setup the database with initial schema."""
    logger.info("Running database migrations...")
    try:
        # env.py drives its own event loop
        await asyncio.to_thread(run_migrations)
    except Exception:
        logger.exception("Database setup failed")
        raise
    logger.info("Database migrations completed")


async def create_sample_data():
    """Create a few open departures with a standard price table."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        existing = (await db.execute(select(func.count(Departure.id)))).scalar_one()
        if existing > 0:
            logger.info("Sample data already exists, skipping...")
            return

        service = DepartureService(db)
        prices = PriceTable(
            quad=25_000_000,
            triple=27_500_000,
            double=30_000_000,
            single=36_000_000,
        )
        first_departure = date.today() + timedelta(days=45)
        for i in range(4):
            departure_date = first_departure + timedelta(days=i * 14)
            await service.create_departure(
                CreateDepartureRequest(
                    code=f"DEP-{departure_date:%Y%m%d}",
                    departure_date=departure_date,
                    return_date=departure_date + timedelta(days=12),
                    quota=45,
                    prices=prices,
                )
            )

    logger.info("Sample data created successfully!")


async def main():
    """Main setup function."""
    logger.info("Starting departure booking API setup...")

    await setup_database()
    await create_sample_data()
    await close_db()

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn app.main:app --reload")


if __name__ == "__main__":
    asyncio.run(main())
