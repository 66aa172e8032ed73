"""
Repository layer for database operations
Provides generic CRUD and query operations for any Record type

Repository works from a record's descriptor alone: table and column names come
from the record declaration, values from the record instance or the query
parameters, and the two never mix. The typed repositories at the bottom add
convenience lookups for the records shipped with the project.
"""

import logging
from typing import List, Mapping, Optional

from database import DatabaseConnection
from errors import TypeMismatch
from models import Event, Record, User
from query import Materializer, QueryBuilder, initial_capacity, resolve

logger = logging.getLogger(__name__)


def _require_record(value) -> Record:
    if isinstance(value, type) or not isinstance(value, Record):
        raise TypeMismatch(f"expected record instance, got {value!r}")
    return value


class Repository:
    """Generic CRUD over any Record type"""

    def __init__(
        self,
        db: DatabaseConnection,
        builder: Optional[QueryBuilder] = None,
        materializer: Optional[Materializer] = None,
    ):
        self.db = db
        self.builder = builder or QueryBuilder()
        self.materializer = materializer or Materializer()

    async def create(self, record: Record) -> int:
        """
        Insert a record and return its storage-assigned identifier.

        Read-only columns (id, created_at, ...) are left to the database.
        Fetch the stored row with get_by_id when you need them.
        """
        descriptor = resolve(_require_record(record))
        query = self.builder.build_insert(descriptor)
        intent = f"insert into {descriptor.table_name}"

        async with self.db.prepare(query, intent) as stmt:
            record_id = await stmt.fetchval(*descriptor.values(record))

        logger.debug(f"Created {descriptor.table_name} row {record_id}")
        return record_id

    async def update(self, record: Record) -> None:
        """
        Overwrite every writable column of the stored row with the record's
        current values. There is no partial update: unset fields are written too.
        """
        descriptor = resolve(_require_record(record))
        query = self.builder.build_update(descriptor)
        intent = f"update {descriptor.table_name}"

        async with self.db.prepare(query, intent) as stmt:
            await stmt.fetch(*descriptor.values(record), record.get_id())
            status = stmt.get_statusmsg()

        logger.debug(f"Updated {descriptor.table_name} row {record.get_id()} ({status})")

    async def delete(self, record: Record) -> None:
        descriptor = resolve(_require_record(record))
        query = self.builder.build_delete(descriptor)
        intent = f"delete from {descriptor.table_name}"

        async with self.db.prepare(query, intent) as stmt:
            await stmt.fetch(record.get_id())
            status = stmt.get_statusmsg()

        logger.debug(f"Deleted {descriptor.table_name} row {record.get_id()} ({status})")

    async def get_by_id(self, record: Record, record_id: int) -> Record:
        """
        Load the row with record_id into record (usually Type.empty()) and
        return it.

        Raises:
            RecordNotFound: no row has this identifier
        """
        descriptor = resolve(_require_record(record))
        query = self.builder.build_select_by_id(descriptor)
        intent = f"select from {descriptor.table_name}"

        async with self.db.prepare(query, intent) as stmt:
            row = await stmt.fetchrow(record_id)
            return self.materializer.scan_one(record, row, record_id)

    async def query_many(self, template: Record, query_params: Optional[Mapping[str, str]] = None) -> List[Record]:
        """
        Filter, sort and paginate records of template's type.

        With no parameters this returns the first 10 rows sorted by id
        ascending.

        Raises:
            InvalidQueryParameter: unknown filter or sort field
            InvalidPagination: limit/offset is not a non-negative integer
        """
        descriptor = resolve(_require_record(template))
        query, params, plan = self.builder.build_select(descriptor, query_params)
        intent = f"select from {descriptor.table_name}"

        async with self.db.cursor(query, *params, intent=intent, prefetch=initial_capacity(plan.limit)) as rows:
            return await self.materializer.scan_many(template, rows)

    async def count(self, template: Record, query_params: Optional[Mapping[str, str]] = None) -> int:
        """Count records matching the filters in query_params (sorting and pagination ignored)."""
        descriptor = resolve(_require_record(template))
        query, params = self.builder.build_count(descriptor, query_params)
        intent = f"count {descriptor.table_name}"

        async with self.db.prepare(query, intent) as stmt:
            return await stmt.fetchval(*params)


class UsersRepository(Repository):
    """Repository for user operations"""

    async def get_user_by_id(self, user_id: int) -> User:
        return await self.get_by_id(User.empty(), user_id)

    async def query_users(self, query_params: Optional[Mapping[str, str]] = None) -> List[User]:
        return await self.query_many(User.empty(), query_params)


class EventsRepository(Repository):
    """Repository for event operations"""

    async def get_event_by_id(self, event_id: int) -> Event:
        return await self.get_by_id(Event.empty(), event_id)

    async def query_events(self, query_params: Optional[Mapping[str, str]] = None) -> List[Event]:
        return await self.query_many(Event.empty(), query_params)
