"""
Database connection management for the SQLite snapshot store.

Owns the engine, the session factory and the single write lock. Each
``DatabaseManager`` is an explicit instance with an ``initialize()`` /
``close()`` lifecycle; there is no module-level singleton.
"""

import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from sysmon_history.core.config import Settings, get_settings
from sysmon_history.core.exceptions import StorageConnectionError, StorageError
from sysmon_history.core.logging import get_logger
from sysmon_history.domain.models.base import Base

logger = get_logger(__name__)


def _configure_sqlite(engine: Engine) -> None:
    """
    Install connection hooks for WAL mode and real read transactions.

    pysqlite only opens a transaction before DML, so a multi-statement read
    would otherwise see several database states. Disabling its transaction
    handling and emitting BEGIN ourselves gives every session one snapshot.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA synchronous=FULL")
        finally:
            cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


class DatabaseManager:
    """
    Manages database engine, session factory and write serialization.

    Readers open their own sessions concurrently; mutations must hold
    ``write_lock`` so at most one is applied at a time.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.write_lock = threading.Lock()
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None
        self._lock = threading.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    def initialize(self) -> None:
        """
        Initialize engine, session factory and schema.

        Idempotent: a second call on an initialized manager is a no-op.
        """
        with self._lock:
            if self._engine is not None:
                logger.debug("Database already initialized, skipping")
                return

            settings = self.settings
            engine_config = settings.get_sqlalchemy_engine_config()

            try:
                if settings.database_path == ":memory:":
                    engine_config["poolclass"] = StaticPool
                else:
                    Path(settings.database_path).expanduser().parent.mkdir(
                        parents=True, exist_ok=True
                    )

                logger.info(
                    "Initializing metrics store database",
                    database_path=settings.database_path,
                )

                engine = create_engine(settings.database_url, **engine_config)
                _configure_sqlite(engine)
                Base.metadata.create_all(engine)

                self._engine = engine
                self._session_factory = sessionmaker(
                    bind=engine,
                    class_=Session,
                    expire_on_commit=False,
                    autoflush=False,
                )

                logger.info("Metrics store database initialized successfully")

            except (SQLAlchemyError, OSError) as e:
                logger.error(
                    "Failed to initialize metrics store database", error=str(e)
                )
                raise StorageConnectionError(
                    f"Failed to open metrics store: {e}",
                    details={"database_path": settings.database_path},
                ) from e

    def close(self) -> None:
        """
        Dispose of the engine and all pooled connections.

        Safe to call more than once.
        """
        with self._lock:
            if self._engine is not None:
                logger.info("Closing metrics store database")
                self._engine.dispose()
                self._engine = None
                self._session_factory = None

    @property
    def engine(self) -> Engine:
        """Get the database engine."""
        if self._engine is None:
            raise StorageConnectionError(
                "Metrics store not initialized. Call init() first."
            )
        return self._engine

    @property
    def session_factory(self) -> sessionmaker[Session]:
        """Get the session factory."""
        if self._session_factory is None:
            raise StorageConnectionError(
                "Metrics store not initialized. Call init() first."
            )
        return self._session_factory

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Read session as context manager.

        The whole block runs in one read transaction and the connection is
        returned to the pool on every exit path.
        """
        session = self.session_factory()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def write_session(self) -> Generator[Session, None, None]:
        """
        Serialized write transaction as context manager.

        Holds ``write_lock`` for the duration, commits on success and rolls
        back on any error, so each mutation is applied fully or not at all.
        """
        with self.write_lock:
            session = self.session_factory()
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    def check_health(self) -> bool:
        """
        Check database connection health.

        Returns True if the store is accessible, False otherwise.
        """
        try:
            with self.session() as session:
                session.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, StorageError) as e:
            logger.error("Database health check failed", error=str(e))
            return False
