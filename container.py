"""
Repository Container - Centralized dependency injection container

Single place where repositories are constructed. Callers receive a container
built around their DatabaseConnection instead of reaching for module-level
instances.
"""

from database import DatabaseConnection
from query import Materializer, QueryBuilder
from repositories import EventsRepository, Repository, UsersRepository


class RepositoryContainer:
    """
    Container for repository instances with attribute access.

    All repositories share one builder and one materializer; both are
    stateless.
    """
    def __init__(self, db: DatabaseConnection):
        self.db = db
        self.builder = QueryBuilder()
        self.materializer = Materializer()

        self.records = Repository(db, self.builder, self.materializer)
        self.users = UsersRepository(db, self.builder, self.materializer)
        self.events = EventsRepository(db, self.builder, self.materializer)
