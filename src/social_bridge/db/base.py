from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session

from social_bridge.core.errors import StoreUnavailableError


Base = declarative_base()

# Errors that mean the store could not be reached, as opposed to a rejected statement.
_UNAVAILABLE_ERRORS = (
    sa_exc.OperationalError,
    sa_exc.InterfaceError,
    sa_exc.TimeoutError,
)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatabaseSessionManager:
    """Manages SQLAlchemy database sessions and engine lifecycle."""

    def __init__(self, database_url: str) -> None:
        """Initializes the DatabaseSessionManager.

        Args:
            database_url: The SQLAlchemy-compatible URL for the database connection.
        """
        self._engine: Engine = create_engine(database_url)
        if self._engine.dialect.name == "sqlite":
            event.listen(self._engine, "connect", _enable_sqlite_foreign_keys)
        self._session_factory = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self._engine
        )

    def create_all(self) -> None:
        """Creates all database tables defined in the Base metadata."""
        try:
            Base.metadata.create_all(self._engine, checkfirst=True)
        except _UNAVAILABLE_ERRORS as exc:
            raise StoreUnavailableError(f"store unavailable: {exc}") from exc

    def dispose(self) -> None:
        """Disposes of the database engine, closing all connections."""
        self._engine.dispose()

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Provides a transactional SQLAlchemy session.

        Every statement issued inside one ``with`` block is committed together,
        which is how multi-step graph writes are made atomic.

        Yields:
            A SQLAlchemy Session object.

        Raises:
            StoreUnavailableError: If the database cannot be reached.
            Exception: Any other error is re-raised after a rollback.
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except _UNAVAILABLE_ERRORS as exc:
            session.rollback()
            raise StoreUnavailableError(f"store unavailable: {exc}") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def run(
        self, statement: str, params: Optional[Mapping[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """Executes a parameter-bound text statement and returns its rows.

        Args:
            statement: SQL text using ``:name`` placeholders.
            params: Values bound to the placeholders. Never interpolated.

        Returns:
            Zero or more result records as plain dictionaries.
        """
        with self.session() as session:
            result = session.execute(text(statement), dict(params or {}))
            if not result.returns_rows:
                return []
            return [dict(row) for row in result.mappings()]
