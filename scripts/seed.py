#!/usr/bin/env python3
"""Import tours from a JSON file into the database, or delete all tours."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from sqlalchemy import delete, func, select

from tours_api.core.database import async_session_factory, close_db, init_db
from tours_api.models.tour import Tour, TourStartDate
from tours_api.schemas.tour import CreateTourRequest
from tours_api.services.tour_service import TourService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = Path(__file__).parent / "data" / "tours-simple.json"


async def import_tours(data_file: Path) -> int:
    """Create every tour in ``data_file``; returns the number created."""
    logger.info(f"Importing tours from {data_file}")
    records = json.loads(data_file.read_text(encoding="utf-8"))

    created = 0
    async with async_session_factory() as db:
        existing = await db.scalar(select(func.count()).select_from(Tour))
        if existing:
            logger.info(f"{existing} tours already present, skipping import")
            return 0

        service = TourService(db)
        for record in records:
            await service.create_tour(CreateTourRequest.model_validate(record))
            created += 1

    logger.info(f"Imported {created} tours")
    return created


async def delete_tours() -> int:
    """Delete every tour; start dates cascade."""
    async with async_session_factory() as db:
        await db.execute(delete(TourStartDate))
        result = await db.execute(delete(Tour))
        await db.commit()
    logger.info(f"Deleted {result.rowcount} tours")
    return result.rowcount


async def main(argv: list[str]) -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--file", type=Path, default=DEFAULT_DATA_FILE, help="JSON file with a list of tours")
    parser.add_argument("--delete", action="store_true", help="Delete all tours instead of importing")
    args = parser.parse_args(argv)

    await init_db()
    try:
        if args.delete:
            await delete_tours()
        else:
            await import_tours(args.file)
    except Exception as e:
        logger.error(f"Seeding failed: {e}")
        raise
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1:]))
