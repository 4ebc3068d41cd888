"""Database connection and session management for the registration store."""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from push_engine.logging import get_logger

from .exceptions import RegistryConnectionError

logger = get_logger(__name__, component="database")


class RegistryDatabase:
    """Owns the SQLAlchemy engine and session factory for one database URL.

    Constructed once at start-up and handed to whatever needs sessions.

    Example:
        >>> db = RegistryDatabase("sqlite:///./data/registrations.db")
        >>> db.initialize()
        >>> with db.session() as session:
        ...     RegistrationRepository(session).add("fcm-token-123")
    """

    def __init__(self, database_url: str) -> None:
        if not database_url or not isinstance(database_url, str):
            raise RegistryConnectionError("Database URL must be a non-empty string")
        self.database_url = database_url
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    def initialize(self) -> None:
        """Create the engine, validate the connection and ensure the schema.

        Raises:
            RegistryConnectionError: If initialization fails
        """
        try:
            logger.info(
                "Initializing registry database",
                extra={"event": "database.initializing", "database_url": redact_url(self.database_url)},
            )

            url = self.database_url
            if url.startswith("sqlite:///") and not url.endswith(":memory:"):
                db_file = Path(url.replace("sqlite:///", "", 1))
                if not db_file.parent.exists():
                    logger.info(f"Creating database directory: {db_file.parent}")
                    db_file.parent.mkdir(parents=True, exist_ok=True)

            is_sqlite = url.startswith("sqlite")
            engine = create_engine(
                url,
                echo=False,
                pool_pre_ping=True,
                connect_args={"check_same_thread": False, "timeout": 30} if is_sqlite else {},
            )
            if is_sqlite:
                _configure_sqlite(engine)

            with engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()

            from .schema import create_schema

            create_schema(engine)

            self._engine = engine
            self._session_factory = sessionmaker(
                bind=engine, autoflush=True, expire_on_commit=False
            )

            logger.info(
                "Registry database initialized",
                extra={"event": "database.initialised", "database_url": redact_url(url)},
            )
        except RegistryConnectionError:
            raise
        except Exception as e:
            error_msg = f"Failed to initialize registry database: {e}"
            logger.error(error_msg, exc_info=True)
            raise RegistryConnectionError(error_msg) from e

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RegistryConnectionError("Database not initialized. Call initialize() first")
        return self._engine

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Session with commit on success and rollback on error.

        Raises:
            RegistryConnectionError: If the database is not initialized
        """
        if self._session_factory is None:
            raise RegistryConnectionError("Database not initialized. Call initialize() first")

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.warning(
                f"Database session rolled back due to exception: {e}",
                extra={"event": "database.session.rolled_back", "error_type": type(e).__name__},
            )
            raise
        finally:
            session.close()

    def close(self) -> None:
        """Dispose of pooled connections."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Registry database connections closed", extra={"event": "database.closed"})


def _configure_sqlite(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


def redact_url(url: str) -> str:
    """Hide the password of a database URL for logging.

    Example:
        >>> redact_url("postgresql://app:secret@db:5432/push")
        'postgresql://app:***@db:5432/push'
    """
    if url.startswith("sqlite") or "@" not in url:
        return url
    credentials, _, host = url.rpartition("@")
    scheme, _, userinfo = credentials.partition("://")
    user = userinfo.split(":", 1)[0]
    return f"{scheme}://{user}:***@{host}"
