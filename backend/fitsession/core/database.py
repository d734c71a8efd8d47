"""Database configuration and session management"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
import logging

logger = logging.getLogger(__name__)

# Create base class for models
Base = declarative_base()


class Database:
    """
    Owns the engine and session factory for one process.

    Nothing connects at import time: call ``init()`` at startup and
    ``shutdown()`` when the process stops.
    """

    def __init__(
        self,
        url: str,
        pool_size: int = 10,
        max_overflow: int = 5,
        echo: bool = False,
    ):
        self.url = url
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.echo = echo
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @classmethod
    def from_settings(cls, settings) -> "Database":
        return cls(
            settings.get_database_url(),
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            echo=settings.DEBUG,
        )

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database.init() has not been called")
        return self._engine

    def init(self) -> None:
        if self._engine is not None:
            return

        # Import models so metadata is populated before create_all.
        from fitsession import models  # noqa: F401

        if self.url.startswith("sqlite"):
            # SQLite is used by tests and local runs; share one connection for :memory:
            kwargs = {"connect_args": {"check_same_thread": False}}
            if self.url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
            self._engine = create_engine(self.url, echo=self.echo, **kwargs)
        else:
            self._engine = create_engine(
                self.url,
                pool_size=self.pool_size,
                max_overflow=self.max_overflow,
                pool_timeout=30,
                pool_recycle=3600,
                pool_pre_ping=True,
                echo=self.echo,
            )

        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)
        logger.info("Database engine created (dialect=%s)", self._engine.dialect.name)

    def shutdown(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Yield a session that is always closed; callers commit explicitly.
        """
        if self._session_factory is None:
            raise RuntimeError("Database.init() has not been called")
        db = self._session_factory()
        try:
            yield db
        finally:
            db.close()

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def init_schema(self, mode: str, require_head: bool = True) -> None:
        """
        Initialize database according to configured strategy.

        DB_INIT_MODE:
          - migrate: require alembic_version table (migration-first discipline)
          - create_all: create tables directly (local development and tests)
          - off: skip initialization check
        """
        mode = mode.lower().strip()
        if mode == "off":
            logger.info("DB initialization check skipped (DB_INIT_MODE=off)")
            return

        if mode == "create_all":
            self.create_all()
            logger.warning("Using create_all database initialization (recommended only for local development).")
            return

        if mode == "migrate":
            with self.engine.connect() as conn:
                if self.engine.dialect.name == "postgresql":
                    version_table_exists = conn.execute(
                        text("SELECT to_regclass('public.alembic_version')")
                    ).scalar()
                    exists = bool(version_table_exists)
                else:
                    exists = "alembic_version" in inspect(conn).get_table_names()
                if require_head and not exists:
                    raise RuntimeError(
                        "Migration table missing. Run Alembic migrations before starting the API."
                    )
            logger.info("Migration metadata detected.")
            return

        raise RuntimeError(f"Unknown DB_INIT_MODE: {mode}")
