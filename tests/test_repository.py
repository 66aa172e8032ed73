"""
Tests for the generic repository against an in-memory stand-in for
DatabaseConnection. Checks the statements issued and the values bound,
without needing a PostgreSQL server.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal

import pytest

from container import RepositoryContainer
from errors import InvalidPagination, InvalidQueryParameter, InvalidQueryValue, RecordNotFound, TypeMismatch
from models import Event, User
from repositories import Repository

START = datetime(2030, 1, 1, 12, 0)
CREATED = datetime(2024, 5, 1, 9, 30)


class FakeStatement:
    def __init__(self, db, query):
        self.db = db
        self.query = query

    def _record(self, args):
        self.db.calls.append((self.query, list(args)))

    async def fetchval(self, *args):
        self._record(args)
        return self.db.value

    async def fetchrow(self, *args):
        self._record(args)
        return self.db.rows[0] if self.db.rows else None

    async def fetch(self, *args):
        self._record(args)
        return []

    def get_statusmsg(self):
        return "UPDATE 1"


class FakeDatabase:
    """Records (query, args) pairs and returns canned results."""

    def __init__(self, value=None, rows=None):
        self.value = value
        self.rows = rows or []
        self.calls = []
        self.intents = []
        self.prefetch = None

    @asynccontextmanager
    async def prepare(self, query, intent):
        self.intents.append(intent)
        yield FakeStatement(self, query)

    @asynccontextmanager
    async def cursor(self, query, *args, intent, prefetch=None):
        self.intents.append(intent)
        self.prefetch = prefetch
        self.calls.append((query, list(args)))

        async def rows():
            for row in self.rows:
                yield row

        yield rows()


def _event(**overrides):
    fields = dict(user_id=1, name="Foo", description="d", start_date=START)
    fields.update(overrides)
    return Event(**fields)


class TestCreate:

    async def test_insert_binds_writable_columns(self):
        db = FakeDatabase(value=1)
        record_id = await Repository(db).create(_event(max_attendees=25))

        assert record_id == 1
        query, args = db.calls[0]
        assert query == (
            "INSERT INTO events (user_id, name, description, start_date, max_attendees) "
            "VALUES ($1, $2, $3, $4, $5) RETURNING id"
        )
        assert args == [1, "Foo", "d", START, 25]
        assert db.intents == ["insert into events"]

    async def test_accepts_external_names(self):
        db = FakeDatabase(value=3)
        event = Event(userId=2, name="Foo", description="d", startDate=START, maxAttendees=10)
        await Repository(db).create(event)
        assert db.calls[0][1] == [2, "Foo", "d", START, 10]

    async def test_rejects_non_record(self):
        with pytest.raises(TypeMismatch):
            await Repository(FakeDatabase()).create({"name": "Foo"})


class TestUpdateDelete:

    async def test_update_overwrites_every_writable_column(self):
        db = FakeDatabase()
        event = _event(id=4, name="Bar")
        await Repository(db).update(event)

        query, args = db.calls[0]
        assert query == (
            "UPDATE events SET user_id = $1, name = $2, description = $3, "
            "start_date = $4, max_attendees = $5 WHERE id = $6"
        )
        assert args == [1, "Bar", "d", START, None, 4]

    async def test_delete_by_record_identifier(self):
        db = FakeDatabase()
        await Repository(db).delete(User(id=9, email="a@example.com", password="password"))
        assert db.calls == [("DELETE FROM users WHERE id = $1", [9])]

    async def test_update_rejects_type(self):
        with pytest.raises(TypeMismatch):
            await Repository(FakeDatabase()).update(User)


class TestGetById:

    async def test_scans_into_supplied_record(self):
        db = FakeDatabase(rows=[(1, "hello@example.com", "password", CREATED)])
        user = User.empty()
        result = await Repository(db).get_by_id(user, 1)

        assert result is user
        assert user.email == "hello@example.com"
        assert user.created_at == CREATED
        assert db.calls == [("SELECT id, email, password, created_at FROM users WHERE id = $1", [1])]

    async def test_missing_row(self):
        with pytest.raises(RecordNotFound):
            await Repository(FakeDatabase()).get_by_id(User.empty(), 5)


class TestQueryMany:

    async def test_default_query(self):
        rows = [(i, f"u{i}@example.com", "password", CREATED) for i in range(1, 4)]
        db = FakeDatabase(rows=rows)
        users = await Repository(db).query_many(User.empty())

        assert [u.id for u in users] == [1, 2, 3]
        assert db.calls == [(
            "SELECT id, email, password, created_at FROM users ORDER BY id ASC LIMIT $1 OFFSET $2",
            [10, 0],
        )]
        assert db.prefetch == 10

    async def test_filters_and_prefetch_hint(self):
        db = FakeDatabase()
        await Repository(db).query_many(Event.empty(), {"name_contains": "Test", "limit": "120"})

        query, args = db.calls[0]
        assert query.endswith("WHERE name LIKE $1 ORDER BY id ASC LIMIT $2 OFFSET $3")
        assert args == ["%Test%", 120, 0]
        assert db.prefetch == 150

    async def test_invalid_parameters_issue_no_statement(self):
        db = FakeDatabase()
        repo = Repository(db)
        with pytest.raises(InvalidQueryParameter):
            await repo.query_many(Event.empty(), {"bogus": "1"})
        with pytest.raises(InvalidPagination):
            await repo.query_many(Event.empty(), {"limit": "abc"})
        with pytest.raises(InvalidQueryValue):
            await repo.query_many(Event.empty(), {"startDate_gte": "soon"})
        assert db.calls == []

    async def test_values_bound_as_field_types(self):
        db = FakeDatabase()
        await Repository(db).query_many(
            Event.empty(),
            {"name": "2024", "startDate_gte": "2030-01-02", "maxAttendees_lt": "2.5"},
        )

        query, args = db.calls[0]
        assert query.endswith(
            "WHERE name = $1 AND start_date >= $2 AND max_attendees < $3::numeric "
            "ORDER BY id ASC LIMIT $4 OFFSET $5"
        )
        assert args == ["2024", datetime(2030, 1, 2), Decimal("2.5"), 10, 0]

    async def test_count(self):
        db = FakeDatabase(value=12)
        total = await Repository(db).count(Event.empty(), {"maxAttendees": "75", "limit": "5"})
        assert total == 12
        assert db.calls == [("SELECT COUNT(*) FROM events WHERE max_attendees = $1", [75])]


class TestTypedRepositories:

    async def test_get_event_by_id(self):
        row = (1, 1, "Test Event", "A test event", START, CREATED, 100)
        container = RepositoryContainer(FakeDatabase(rows=[row]))
        event = await container.events.get_event_by_id(1)

        assert isinstance(event, Event)
        assert event.name == "Test Event"
        assert event.max_attendees == 100

    async def test_query_users(self):
        container = RepositoryContainer(FakeDatabase(rows=[(1, "a@example.com", "password", CREATED)]))
        users = await container.users.query_users({"email": "a@example.com"})
        assert [u.email for u in users] == ["a@example.com"]

    def test_container_shares_stateless_helpers(self):
        container = RepositoryContainer(FakeDatabase())
        assert container.users.builder is container.events.builder
        assert container.records.materializer is container.users.materializer
