#!/usr/bin/env python3
"""
Create or upgrade the Balanghay database.

Runs the same migration the server runs at startup: missing tables and
columns are added, loans get transaction ids and the default administrator
is seeded. With --reset every table is dropped first.

Usage:
    python scripts/init_database.py [--reset] [--database-url URL]
"""

import argparse
import logging
import sys

from sqlalchemy import inspect

from balanghay.database import get_db_manager, migrate
from balanghay.database.schema import Base

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(description="Create or upgrade the Balanghay database")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Drop every table (and all data) before migrating",
    )
    parser.add_argument("--database-url", help="Override the configured database URL")
    args = parser.parse_args()

    db_manager = get_db_manager(args.database_url)
    if not db_manager.verify_connection():
        logger.error("Cannot open database at %s", db_manager.database_url)
        sys.exit(1)

    try:
        if args.reset:
            logger.warning("Dropping all tables in %s", db_manager.database_url)
            db_manager.init_database(drop_existing=True)

        result = migrate(db_manager)

        tables = set(inspect(db_manager.engine).get_table_names())
        missing = set(Base.metadata.tables) - tables
        if missing:
            logger.error("Missing tables after migration: %s", ", ".join(sorted(missing)))
            sys.exit(1)

        logger.info("Tables: %s", ", ".join(sorted(tables)))
        logger.info("Migration result: %s", result.model_dump())
        logger.info("Database ready")
    except Exception:
        logger.exception("Database initialization failed")
        sys.exit(1)
    finally:
        db_manager.close()


if __name__ == "__main__":
    main()
