"""
Database initialization and migration script
Run this to apply the schema migrations

Usage:
    python utils/init_db.py            # apply pending migrations
    python utils/init_db.py --force    # drop the public schema first (deletes all data)
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import DatabaseConfig
from database import DatabaseConnection, DatabaseMigration

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def initialize_database(config: DatabaseConfig, force: bool = False):
    """Apply migrations, optionally dropping the existing schema first"""
    logger.info("Starting database initialization...")

    db = DatabaseConnection(config)
    await db.connect()

    try:
        migration = DatabaseMigration(db)

        if force and await migration.check_schema_exists():
            await migration.reset_schema()

        applied = await migration.run_migrations()
        logger.info(f"Applied {len(applied)} migration(s)")

        tables = await db.get_all_tables()
        logger.info(f"Tables: {', '.join(tables)}")
    finally:
        await db.disconnect()


def main():
    parser = argparse.ArgumentParser(description="Apply database migrations")
    parser.add_argument('--force', action='store_true', help="Drop the public schema before migrating")
    parser.add_argument('--env', default=None, help="Environment mode (development, test, production)")
    args = parser.parse_args()

    config = DatabaseConfig.from_environment(args.env)
    asyncio.run(initialize_database(config, force=args.force))


if __name__ == "__main__":
    main()
