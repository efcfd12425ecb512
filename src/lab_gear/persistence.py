"""
Persistence provider for lab_gear using SQLite.
Provides the database engine, session management, and initialization.
"""

import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from lab_gear.models import Base

# Milliseconds a writer waits for SQLite's write lock before giving up.
BUSY_TIMEOUT_MS = 30_000


def database_url_for(db_path: str) -> str:
    """Turn a filesystem path (or ':memory:') into a SQLAlchemy URL."""
    if "://" in db_path:
        return db_path
    if db_path == ":memory:":
        return "sqlite:///:memory:"
    return f"sqlite:///{db_path}"


def _is_memory_url(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:")


class DatabaseManager:
    """Manages the SQLite connection and sessions."""

    def __init__(self, database_url: Optional[str] = None):
        """Initialize database manager with optional custom URL."""
        if database_url is None:
            database_url = database_url_for(os.getenv("DB_PATH", "./lab_gear.db"))

        self.database_url = database_url
        engine_kwargs = {
            # Enable SQL logging in debug mode
            "echo": os.getenv("SQL_DEBUG") == "1",
            "connect_args": {
                "check_same_thread": False,
                "timeout": BUSY_TIMEOUT_MS / 1000,
            },
        }
        if _is_memory_url(database_url):
            # One shared connection, otherwise every session sees an empty database
            engine_kwargs["poolclass"] = StaticPool

        self.engine = create_engine(database_url, **engine_kwargs)
        event.listen(self.engine, "connect", _configure_sqlite_connection)
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine
        )
        self._initialized = False

    def initialize_database(self) -> None:
        """Create all tables if they don't exist."""
        if not self._initialized:
            Base.metadata.create_all(bind=self.engine)
            self._initialized = True

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session with automatic commit/rollback and cleanup."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def journal_mode(self) -> str:
        """Return SQLite's active journal mode (``wal`` for file databases)."""
        with self.engine.connect() as conn:
            return str(conn.execute(text("PRAGMA journal_mode")).scalar()).lower()

    def reset_database(self) -> None:
        """Drop and recreate all tables (mainly for testing)."""
        Base.metadata.drop_all(bind=self.engine)
        Base.metadata.create_all(bind=self.engine)
        self._initialized = True

    def close(self) -> None:
        """Close the database engine."""
        self.engine.dispose()


def _configure_sqlite_connection(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        # WAL lets readers proceed while a single writer commits
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
    finally:
        cursor.close()
