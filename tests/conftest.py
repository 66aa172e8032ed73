"""
Pytest configuration and shared fixtures

Unit tests need nothing from here. Integration tests request db_connection
(or repos): each test gets a freshly created, migrated database and its own
connection pool. When no PostgreSQL server is reachable those tests are
skipped.
"""

import os
import sys
from pathlib import Path

import asyncpg
import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config import DatabaseConfig
from container import RepositoryContainer
from database import DatabaseConnection, DatabaseMigration
from tests.test_config import CONNECT_TIMEOUT, TEST_DB_CONFIG


def pytest_configure(config):
    """Mark that we're in test mode"""
    os.environ['APP_ENV'] = 'test'


async def _connect_admin():
    return await asyncpg.connect(
        host=TEST_DB_CONFIG['host'],
        port=TEST_DB_CONFIG['port'],
        user=TEST_DB_CONFIG['user'],
        password=TEST_DB_CONFIG['password'],
        database='postgres',
        ssl='prefer',
        timeout=CONNECT_TIMEOUT,
    )


async def _create_test_database():
    """Create a fresh test database, skipping the test if the server is unavailable"""
    try:
        sys_conn = await _connect_admin()
    except Exception as e:
        pytest.skip(f"PostgreSQL not reachable: {e}")

    try:
        await sys_conn.execute(f'DROP DATABASE IF EXISTS {TEST_DB_CONFIG["database"]}')
        await sys_conn.execute(f'CREATE DATABASE {TEST_DB_CONFIG["database"]}')
    finally:
        await sys_conn.close()


async def _drop_test_database():
    sys_conn = await _connect_admin()
    try:
        await sys_conn.execute(f"""
            SELECT pg_terminate_backend(pg_stat_activity.pid)
            FROM pg_stat_activity
            WHERE pg_stat_activity.datname = '{TEST_DB_CONFIG["database"]}'
              AND pid <> pg_backend_pid()
        """)
        await sys_conn.execute(f'DROP DATABASE IF EXISTS {TEST_DB_CONFIG["database"]}')
    finally:
        await sys_conn.close()


@pytest.fixture
async def db_connection():
    """
    DatabaseConnection against a fresh, migrated test database.
    """
    await _create_test_database()

    config = DatabaseConfig(
        **TEST_DB_CONFIG,
        ssl_mode='prefer',
        min_pool_size=1,
        max_pool_size=4,
    )
    db = DatabaseConnection(config)
    await db.connect()
    await DatabaseMigration(db).run_migrations()

    yield db

    await db.disconnect()
    await _drop_test_database()


@pytest.fixture
async def repos(db_connection):
    """RepositoryContainer initialized with the test database"""
    return RepositoryContainer(db_connection)
