#!/usr/bin/env python3
"""
Database Initialization Script
==============================

Create the Labelwise tables and object-store buckets, and optionally seed
the supported states with their well-known regulatory sources.

Usage:
    python scripts/init_databases.py
    python scripts/init_databases.py --postgres-only
    python scripts/init_databases.py --storage-only
    python scripts/init_databases.py --seed

Version: 0.1.0
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from shared.logging import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False, service_name="init-db")
logger = get_logger(__name__)


async def init_postgres() -> bool:
    """Create all tables."""
    from shared.database.postgres import PostgresClient

    logger.info("postgres_init_started")
    try:
        await PostgresClient.create_all()
    except Exception as e:
        logger.error("postgres_init_failed", error=str(e))
        return False

    logger.info("postgres_init_completed")
    return True


async def init_storage() -> bool:
    """Create the upload and report buckets."""
    from shared.storage import StorageError, get_object_store

    logger.info("storage_init_started")
    try:
        await get_object_store().ensure_buckets()
    except StorageError as e:
        logger.error("storage_init_failed", error=str(e))
        return False

    logger.info("storage_init_completed")
    return True


async def seed_data() -> bool:
    """Seed states and their regulatory sources. Existing rows are left alone."""
    from sqlalchemy import select

    from services.regulatory_monitor.jurisdictions import JURISDICTIONS, Jurisdiction
    from shared.database.models import RegulatorySourceModel, StateModel
    from shared.database.postgres import postgres_session

    logger.info("seed_started")
    try:
        async with postgres_session() as db:
            for jurisdiction, config in JURISDICTIONS.items():
                if jurisdiction is Jurisdiction.DEFAULT:
                    continue

                result = await db.execute(
                    select(StateModel).where(StateModel.abbreviation == jurisdiction.value)
                )
                state = result.scalar_one_or_none()
                if state is None:
                    state = StateModel(
                        name=config.name,
                        abbreviation=jurisdiction.value,
                        is_enabled=True,
                    )
                    db.add(state)
                    await db.flush()
                    logger.info("state_seeded", state=jurisdiction.value)

                result = await db.execute(
                    select(RegulatorySourceModel.source_url).where(
                        RegulatorySourceModel.state_id == state.id
                    )
                )
                known = set(result.scalars().all())
                for page in config.pages:
                    if page.url in known:
                        continue
                    db.add(
                        RegulatorySourceModel(
                            state_id=state.id,
                            source_name=page.name,
                            source_url=page.url,
                        )
                    )
                    logger.info("source_seeded", state=jurisdiction.value, url=page.url)
    except Exception as e:
        logger.error("seed_failed", error=str(e))
        return False

    logger.info("seed_completed")
    return True


async def main(args: argparse.Namespace) -> int:
    """Main initialization function."""
    logger.info("labelwise_init_started")

    results = {}

    if args.all or args.postgres_only:
        results["postgres"] = await init_postgres()

    if args.all or args.storage_only:
        results["storage"] = await init_storage()

    if args.seed:
        results["seed"] = await seed_data()

    failed = [name for name, success in results.items() if not success]
    for name, success in results.items():
        logger.info("init_step_result", step=name, ok=success)

    if failed:
        logger.error("labelwise_init_failed", failed=failed)
        return 1

    logger.info("labelwise_init_completed")
    return 0


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Initialize Labelwise databases and storage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--postgres-only",
        action="store_true",
        help="Create only the database tables",
    )
    parser.add_argument(
        "--storage-only",
        action="store_true",
        help="Create only the object-store buckets",
    )
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Seed states and regulatory sources",
    )

    args = parser.parse_args()

    # If nothing specific is selected, init everything
    args.all = not (args.postgres_only or args.storage_only)

    return args


if __name__ == "__main__":
    args = parse_args()
    exit_code = asyncio.run(main(args))
    sys.exit(exit_code)
