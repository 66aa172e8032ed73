"""
Database connection management and utilities
Async PostgreSQL operations using asyncpg

DatabaseConnection is the storage execution facade used by the repository:
every statement is prepared and run on a connection acquired for that one
call, and the connection goes back to the pool on every exit path.
"""

import asyncpg
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, List, Optional, Set

from config import DatabaseConfig
from errors import ExecuteError, PrepareError, StorageError

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

# asyncpg reports server errors as PostgresError and client-side argument
# encoding problems (e.g. a str bound to an integer column) as InterfaceError
DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError)


class DatabaseConnection:
    """
    Manages PostgreSQL connection pool and provides database operations
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self):
        """Initialize connection pool"""
        if self.pool is not None:
            logger.warning("Connection pool already initialized")
            return

        try:
            self.pool = await asyncpg.create_pool(
                host=self.config.host,
                port=self.config.port,
                database=self.config.database,
                user=self.config.user,
                password=self.config.password,
                min_size=self.config.min_pool_size,
                max_size=self.config.max_pool_size,
                command_timeout=self.config.command_timeout,
                ssl=self.config.ssl,
            )
            logger.info(f"Connected to PostgreSQL at {self.config.host}:{self.config.port}/{self.config.database}")
        except (OSError, *DRIVER_ERRORS) as e:
            logger.error(f"Failed to connect to database: {e}")
            raise

    async def disconnect(self):
        """Close connection pool"""
        if self.pool is not None:
            await self.pool.close()
            self.pool = None
            logger.info("Database connection pool closed")

    @asynccontextmanager
    async def acquire(self):
        """
        Acquire a connection from the pool.

        Usage:
            async with db.acquire() as conn:
                result = await conn.fetch("SELECT * FROM users")

        The connection is returned to the pool even if an exception occurs.
        After a storage failure it is reset to a clean state first.
        """
        if self.pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")

        async with self.pool.acquire() as connection:
            try:
                yield connection
            except (StorageError, *DRIVER_ERRORS) as e:
                logger.error(f"Error during database operation: {e}")
                try:
                    await connection.reset()
                except DRIVER_ERRORS as reset_error:
                    logger.error(f"Failed to reset connection: {reset_error}")
                raise

    async def _prepare(self, conn, query: str, intent: str):
        logger.debug(f"Preparing {intent}: {query}")
        try:
            return await conn.prepare(query, timeout=self.config.command_timeout)
        except DRIVER_ERRORS as e:
            raise PrepareError(intent, e) from e

    @asynccontextmanager
    async def prepare(self, query: str, intent: str):
        """
        Prepare a statement on a freshly acquired connection.

        Usage:
            async with db.prepare("SELECT ... WHERE id = $1", "select from users") as stmt:
                row = await stmt.fetchrow(1)

        Raises:
            PrepareError: the server rejected the statement
            ExecuteError: a driver error escaped the block while running it
        """
        async with self.acquire() as conn:
            stmt = await self._prepare(conn, query, intent)
            try:
                yield stmt
            except DRIVER_ERRORS as e:
                raise ExecuteError(intent, e) from e

    @asynccontextmanager
    async def cursor(self, query: str, *args, intent: str, prefetch: Optional[int] = None):
        """
        Stream the rows of a prepared query through a server-side cursor.

        Runs inside a read-only transaction (cursors need one) that ends with
        the block. prefetch is the number of rows fetched per round trip.

        Usage:
            async with db.cursor(sql, *params, intent="select from events", prefetch=50) as rows:
                async for row in rows:
                    ...
        """
        async with self.acquire() as conn:
            async with conn.transaction(readonly=True):
                stmt = await self._prepare(conn, query, intent)
                try:
                    yield stmt.cursor(*args, prefetch=prefetch)
                except DRIVER_ERRORS as e:
                    raise ExecuteError(intent, e) from e

    async def execute(self, query: str, *args, timeout: Optional[float] = None) -> str:
        """
        Execute a query without returning results

        Returns:
            Status string (e.g., "INSERT 0 1")
        """
        async with self.acquire() as conn:
            return await conn.execute(query, *args, timeout=timeout)

    async def fetch(self, query: str, *args, timeout: Optional[float] = None) -> List[asyncpg.Record]:
        """Fetch multiple rows"""
        async with self.acquire() as conn:
            return await conn.fetch(query, *args, timeout=timeout)

    async def fetchval(self, query: str, *args, column: int = 0, timeout: Optional[float] = None) -> Any:
        """Fetch a single value"""
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args, column=column, timeout=timeout)

    async def check_connection(self) -> bool:
        """
        Check if database connection is healthy

        Returns:
            True if connection is healthy
        """
        try:
            result = await self.fetchval("SELECT 1")
            return result == 1
        except (RuntimeError, OSError, *DRIVER_ERRORS) as e:
            logger.error(f"Connection check failed: {e}")
            return False

    async def get_all_tables(self) -> List[str]:
        """
        Get list of all tables in the database

        Returns:
            List of table names
        """
        query = """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'public'
            AND table_type = 'BASE TABLE'
            ORDER BY table_name
        """
        result = await self.fetch(query)
        return [row['table_name'] for row in result]


class DatabaseMigration:
    """
    Apply versioned schema migrations

    Files named NNN_description.up.sql in the migrations directory are applied
    in version order, each in its own transaction. Applied versions are
    recorded in schema_migrations so re-running is a no-op.
    """

    def __init__(self, db: DatabaseConnection, migrations_dir: Path = MIGRATIONS_DIR):
        self.db = db
        self.migrations_dir = Path(migrations_dir)

    def migration_files(self) -> List[Path]:
        return sorted(self.migrations_dir.glob("*.up.sql"))

    @staticmethod
    def version_of(path: Path) -> str:
        return path.name.split("_", 1)[0]

    async def applied_versions(self) -> Set[str]:
        await self.db.execute(
            "CREATE TABLE IF NOT EXISTS schema_migrations ("
            " version TEXT PRIMARY KEY,"
            " applied_at TIMESTAMP NOT NULL DEFAULT NOW())"
        )
        rows = await self.db.fetch("SELECT version FROM schema_migrations")
        return {row['version'] for row in rows}

    async def run_migrations(self) -> List[str]:
        """
        Apply every pending migration

        Returns:
            Versions applied by this call (empty when already up to date)
        """
        logger.info(f"Resolved migrations directory: {self.migrations_dir}")
        applied = await self.applied_versions()
        newly_applied = []

        for path in self.migration_files():
            version = self.version_of(path)
            if version in applied:
                continue

            logger.info(f"Applying migration {path.name}...")
            sql = path.read_text(encoding='utf-8')
            async with self.db.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(sql)
                    await conn.execute("INSERT INTO schema_migrations (version) VALUES ($1)", version)
            newly_applied.append(version)

        if newly_applied:
            logger.info(f"Migrations complete: {', '.join(newly_applied)}")
        else:
            logger.info("Migrations complete: no change")
        return newly_applied

    async def check_schema_exists(self) -> bool:
        """Check if any tables exist in the public schema"""
        tables = await self.db.get_all_tables()
        return len(tables) > 0

    async def reset_schema(self):
        """Drop and recreate the public schema. Deletes all data."""
        logger.warning("Dropping existing schema...")
        await self.db.execute("DROP SCHEMA public CASCADE")
        await self.db.execute("CREATE SCHEMA public")

