"""
Shared fixtures: SQLite databases with the full schema
"""

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool

import empsync.models  # noqa: F401  (registers tables on Base.metadata)
from empsync.core.database import Base
from empsync.worker.db import SyncDatabase


@pytest.fixture
def database():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    db = SyncDatabase(engine)
    yield db
    db.dispose()


@pytest.fixture
def threaded_database(tmp_path):
    """
    File-backed database for worker-pool runs: one connection per thread,
    writers serialized by BEGIN IMMEDIATE.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'empsync.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(engine)
    db = SyncDatabase(engine)
    yield db
    db.dispose()
