"""
Alembic environment
Runs migrations with the synchronous (psycopg2) engine used by workers
"""

from logging.config import fileConfig

from alembic import context

from empsync.core.config import get_settings
from empsync.core.database import Base
from empsync.worker.db import SyncDatabase
import empsync.models  # noqa: F401  (registers tables on Base.metadata)

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def include_object(object, name, type_, reflected, compare_to):
    # employment_overview is a materialized view on PostgreSQL
    if type_ == "table" and object.info.get("is_view"):
        return False
    return True


target_metadata = Base.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=get_settings().DATABASE_URL,
        target_metadata=target_metadata,
        include_object=include_object,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    database = SyncDatabase.from_settings(get_settings())

    with database.engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_object=include_object,
        )

        with context.begin_transaction():
            context.run_migrations()

    database.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
