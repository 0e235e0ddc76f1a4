"""
Catalog seeding command line.

Usage:
    vehicle-specs-seed data/seed
    vehicle-specs-seed data/seed --database-url sqlite+aiosqlite:///specs.db --create-schema
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from vehicle_specs.catalog import AttributeCatalog
from vehicle_specs.config.logging import configure_logging
from vehicle_specs.database.connection import close_database, get_db, init_database
from vehicle_specs.errors import SpecEngineError
from vehicle_specs.ingestion.seed_catalog import CatalogSeeder

logger = structlog.get_logger(__name__)


async def run(directory: Path, database_url: Optional[str], create_schema: bool) -> int:
    await init_database(url=database_url, create_schema=create_schema)
    try:
        seeder = CatalogSeeder(AttributeCatalog())
        async with get_db() as db:
            result = await seeder.seed_directory(db, directory)
        logger.info("Catalog seeding completed", **vars(result))
        return 0
    except (SpecEngineError, FileNotFoundError) as e:
        logger.error("Catalog seeding failed", error=str(e))
        return 1
    finally:
        await close_database()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Seed the attribute catalog and taxonomy from CSV files")
    parser.add_argument("directory", type=Path, help="Directory holding attributes.csv, enum_values.csv, ...")
    parser.add_argument("--database-url", default=None, help="Async SQLAlchemy URL (defaults to settings)")
    parser.add_argument("--create-schema", action="store_true", help="Create missing tables first")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    args = parser.parse_args(argv)

    configure_logging(args.log_level, "text")
    return asyncio.run(run(args.directory, args.database_url, args.create_schema))


if __name__ == "__main__":
    sys.exit(main())
