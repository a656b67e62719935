"""
Seed the sales-rep roster.

Usage:
    python -m database.seed [--database-url URL] [--create-tables]
"""

import argparse
import asyncio
import logging
import sys
from typing import Any, Dict, List, Optional

from config.settings import get_settings
from database.repositories import Store
from database.session import Database
from utils.exceptions import LeadEngineError

logger = logging.getLogger(__name__)

INITIAL_SALES_REPS: List[Dict[str, Any]] = [
    {
        "name": "Sarah Miller",
        "email": "sarah.miller@example.com",
        "phone": "+15550000001",
        "max_open_leads": 80,
    },
    {
        "name": "David Khan",
        "email": "david.khan@example.com",
        "phone": "+15550000002",
        "max_open_leads": 80,
    },
]


async def seed_sales_reps(store: Store, reps: Optional[List[Dict[str, Any]]] = None) -> int:
    """Upsert reps by email and mark them active. Returns how many were created."""
    created_count = 0
    for rep in reps if reps is not None else INITIAL_SALES_REPS:
        values = {key: value for key, value in rep.items() if key != "email"}
        _, created = await store.sales_reps.upsert_by_email(rep["email"], is_active=True, **values)
        created_count += int(created)
        logger.info(f"{'Created' if created else 'Updated'} sales rep {rep['email']}")
    return created_count


async def main(database_url: str, create_tables: bool) -> None:
    db = Database(database_url)
    try:
        if create_tables:
            await db.create_all()
        created = await seed_sales_reps(Store(db))
        logger.info(f"Seed complete: {created} rep(s) created")
    finally:
        await db.dispose()


def cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Seed the sales-rep roster")
    parser.add_argument("--database-url", default=None, help="Defaults to DATABASE_URL")
    parser.add_argument("--create-tables", action="store_true", help="Create missing tables first")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    database_url = args.database_url or get_settings().database_url
    if not database_url:
        logger.error("DATABASE_URL is not set")
        return 1

    try:
        asyncio.run(main(database_url, args.create_tables))
    except LeadEngineError as e:
        logger.error(f"Seed failed: {e.message}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(cli())
