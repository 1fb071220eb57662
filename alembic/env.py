"""Alembic environment for the lingua tables.

The database URL is taken from ``alembic -x database_url=...`` when given,
otherwise from ``DATABASE_URL`` in the application settings. Batch mode is
always on because SQLite cannot ALTER most column or key definitions.
"""

from logging.config import fileConfig

from sqlalchemy import create_engine, pool

from alembic import context
from lingua.config import get_settings
from lingua.database import Base
from lingua.models import chunk, recording, upload_session  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def database_url() -> str:
    return context.get_x_argument(as_dictionary=True).get("database_url") or get_settings().DATABASE_URL


def migration_options() -> dict:
    return {"target_metadata": Base.metadata, "render_as_batch": True, "compare_type": True}


def run_offline(url: str) -> None:
    """Emit the migration SQL without connecting."""
    context.configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"}, **migration_options())
    with context.begin_transaction():
        context.run_migrations()


def run_online(url: str) -> None:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    engine = create_engine(url, poolclass=pool.NullPool, connect_args=connect_args)
    try:
        with engine.connect() as connection:
            context.configure(connection=connection, **migration_options())
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_offline(database_url())
else:
    run_online(database_url())
