"""
Database session management for the Balanghay backend.

One process owns one SQLite file. Every tool or resource call opens a
short-lived session from the manager below, does its work, and closes it:

1. The engine is created lazily and shared for the process lifetime
2. Foreign keys are switched on for every SQLite connection, so the
   cascade and set-null rules in the schema actually fire
3. Sessions never auto-commit; repositories commit explicitly
"""

import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_config
from .schema import Base

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DatabaseManager:
    """Owns the engine and the session factory for one database file."""

    def __init__(self, database_url: str | None = None):
        """
        Args:
            database_url: SQLAlchemy URL. Defaults to the configured SQLite path.
        """
        if database_url is None:
            database_url = get_config().get_database_url()
            logger.info("Using SQLite database at: %s", database_url)

        self.database_url = database_url
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def engine(self) -> Engine:
        """Get or create the database engine."""
        if self._engine is None:
            self._engine = create_engine(
                self.database_url,
                # Single shared connection; the process is the only writer
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
                echo=False,
            )

            @event.listens_for(self._engine, "connect")
            def set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

            logger.info("Database engine created: %s", self._engine.url)

        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False,
                # Returned rows stay readable after the per-item commits
                expire_on_commit=False,
            )
        return self._session_factory

    def create_session(self) -> Session:
        """Create a new session. The caller is responsible for closing it."""
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations.

        ```python
        with db_manager.session_scope() as session:
            session.add(Shelf(name="Fiction A"))
        # committed here, or rolled back if the block raised
        ```
        """
        session = self.create_session()
        try:
            yield session
            session.commit()
            logger.debug("Database transaction committed")
        except Exception:
            logger.exception("Database error, rolling back")
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self, drop_existing: bool = False) -> None:
        """
        Create every table that does not exist yet.

        Args:
            drop_existing: Drop all tables first. Used by tests and the
                init script's ``--reset`` flag.
        """
        if drop_existing:
            logger.warning("Dropping all existing tables...")
            Base.metadata.drop_all(bind=self.engine)

        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables ready")

    def verify_connection(self) -> bool:
        """Return True when a trivial query succeeds."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection verified")
            return True
        except Exception:
            logger.exception("Database connection failed")
            return False

    def close(self) -> None:
        """Dispose of the engine. Called on server shutdown."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None


_db_manager: DatabaseManager | None = None


def get_db_manager(database_url: str | None = None) -> DatabaseManager:
    """
    Get the process-wide database manager.

    Args:
        database_url: Only used on the first call.
    """
    global _db_manager  # noqa: PLW0603 - process-wide singleton

    if _db_manager is None:
        _db_manager = DatabaseManager(database_url)

    return _db_manager


def reset_db_manager() -> None:
    """Dispose of and forget the current manager (tests, config reloads)."""
    global _db_manager  # noqa: PLW0603

    if _db_manager is not None:
        _db_manager.close()
    _db_manager = None


def get_session() -> Session:
    """Get a new session from the process-wide manager."""
    return get_db_manager().create_session()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Module-level shortcut for ``get_db_manager().session_scope()``."""
    with get_db_manager().session_scope() as session:
        yield session


def safe_commit(session: Session, operation: str) -> None:
    """
    Commit, rolling back and re-raising as ValueError on failure.

    Args:
        session: The database session
        operation: Short description used in the error message

    Raises:
        ValueError: If the commit fails
    """
    try:
        session.commit()
    except Exception as e:
        session.rollback()
        raise ValueError(f"Database operation '{operation}' failed: {e!s}") from e


def safe_query(session: Session, query_func: Callable[[Session], T], error_msg: str) -> T:
    """
    Run ``query_func`` and turn database errors into a readable ValueError.

    Raises:
        ValueError: If the query fails
    """
    try:
        return query_func(session)
    except Exception as e:
        logger.warning("%s: %s", error_msg, e)
        raise ValueError(f"{error_msg}: Database query failed") from e
