"""Database handle and session management.

The store is an explicitly constructed :class:`Database` object. The FastAPI
app opens it on startup and closes it on shutdown; request handlers obtain
sessions through :func:`get_db`, which reads the handle from ``app.state``.
"""

import logging
from collections.abc import Generator

from fastapi import Request
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger("lingua")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Database:
    """Owns the engine and session factory for one database URL."""

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        self.echo = echo
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database is not open")
        return self._engine

    def open(self) -> None:
        """Create the engine and make sure every table exists."""
        if self._engine is not None:
            return

        # Import models so they register with Base.metadata
        from lingua.models import chunk, recording, upload_session  # noqa: F401

        kwargs: dict = {"echo": self.echo}
        if self.url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in self.url or self.url in ("sqlite://", "sqlite+pysqlite://"):
                # One shared connection, otherwise each checkout sees an empty database
                kwargs["poolclass"] = StaticPool

        self._engine = create_engine(self.url, **kwargs)
        self._session_factory = sessionmaker(bind=self._engine, autocommit=False, autoflush=False)
        Base.metadata.create_all(bind=self._engine)
        logger.info("Database opened: %s", self._engine.url.render_as_string(hide_password=True))

    def close(self) -> None:
        """Dispose of the engine. Safe to call more than once."""
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("Database closed")

    def session(self) -> Session:
        """Return a new session bound to this database."""
        if self._session_factory is None:
            raise RuntimeError("Database is not open")
        return self._session_factory()


def get_db(request: Request) -> Generator[Session, None, None]:
    """Yield a database session from the app's database handle."""
    database: Database = request.app.state.database
    db = database.session()
    try:
        yield db
    finally:
        db.close()
