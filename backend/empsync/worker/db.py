"""
Synchronous Database Access for Celery Workers
Sync runs, pipelines and tracker all work on a sync SQLAlchemy session
"""

from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from empsync.core.config import Settings, get_settings


def _prepare_sync_database_url(url: str, require_ssl: bool = False) -> tuple[str, dict]:
    """
    Prepare DATABASE_URL for the psycopg2 driver (sync).

    Unlike asyncpg, psycopg2 supports sslmode in URL.
    Non-PostgreSQL URLs (sqlite for local runs) pass through untouched.
    """
    url = url.replace("postgresql+asyncpg://", "postgresql://")
    url = url.replace("postgres://", "postgresql://")
    if not url.startswith("postgresql://"):
        return url, {}

    parsed = urlparse(url)
    query_params = parse_qs(parsed.query)

    if require_ssl and "sslmode" not in query_params:
        query_params["sslmode"] = ["require"]

    new_query = urlencode(query_params, doseq=True)
    clean_url = urlunparse(parsed._replace(query=new_query))

    connect_args = {
        "options": "-c statement_timeout=30000"  # 30 second timeout
    }
    return clean_url, connect_args


class SyncDatabase:
    """
    Engine + session factory handed to every worker component.

    Usage:
        database = SyncDatabase.from_settings(settings)
        with database.session() as db:
            db.execute(query)
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = sessionmaker(
            bind=engine,
            autoflush=False,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "SyncDatabase":
        url, connect_args = _prepare_sync_database_url(
            settings.DATABASE_URL, require_ssl=settings.DB_REQUIRE_SSL
        )
        kwargs = {"pool_pre_ping": True, "connect_args": connect_args, "echo": settings.DB_ECHO}
        if url.startswith("postgresql://"):
            kwargs.update(pool_size=5, max_overflow=10)
        return cls(create_engine(url, **kwargs))

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        Get a synchronous session. Caller commits.

        Usage:
            with database.session() as db:
                result = db.execute(query)
        """
        db = self._session_factory()
        try:
            yield db
        finally:
            db.close()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Session wrapped in a single transaction; commits on exit, rolls back on error"""
        with self._session_factory.begin() as db:
            yield db

    def dispose(self) -> None:
        self.engine.dispose()


@lru_cache()
def get_sync_database() -> SyncDatabase:
    """Process-wide database for Celery tasks (composition root only)"""
    return SyncDatabase.from_settings(get_settings())
