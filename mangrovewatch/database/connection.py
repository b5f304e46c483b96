"""
Database connection management for MangroveWatch
PostgreSQL with PostGIS in production, SQLite for local runs and tests
"""

import os
import logging
import threading
from contextlib import contextmanager, nullcontext
from typing import Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool
from sqlalchemy.exc import SQLAlchemyError

from mangrovewatch.core.config import Settings, settings as default_settings
from .models import Base, GeoBase

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """
    Database connection manager with connection pooling.

    Core tables work on any SQLAlchemy dialect; the report location table
    needs PostGIS and is only created on PostgreSQL.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        pool_timeout: int = 30,
        config: Optional[Settings] = None
    ):
        """
        Initialize database connection.

        Args:
            database_url: SQLAlchemy connection URL (settings.database_url by default)
            pool_timeout: Timeout for getting connection from pool
            config: Settings supplying the pool sizes
        """
        config = config or default_settings
        self.database_url = database_url or config.database_url
        if not self.database_url:
            raise ValueError("A database URL is required")

        echo = os.getenv("DB_ECHO", "false").lower() == "true"

        if self.is_sqlite:
            # Sessions run in worker threads
            self.engine = create_engine(
                self.database_url,
                connect_args={"check_same_thread": False},
                echo=echo
            )
        else:
            self.engine = create_engine(
                self.database_url,
                poolclass=QueuePool,
                pool_size=config.db_pool_size,
                max_overflow=config.db_max_overflow,
                pool_timeout=pool_timeout,
                pool_pre_ping=True,
                echo=echo
            )

        # Session factory
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine
        )

        # SQLite has a single writer and ignores row locks; one session at a time
        self._session_lock = threading.RLock() if self.is_sqlite else None

        logger.info(f"Database connection initialized: {self._mask_url(self.database_url)}")

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def is_postgres(self) -> bool:
        return self.database_url.startswith("postgresql")

    def _mask_url(self, url: str) -> str:
        """Mask password in connection URL for logging."""
        if "@" in url and ":" in url:
            parts = url.split("@")
            credentials = parts[0].split(":")
            if len(credentials) >= 3:
                credentials[-1] = "****"
            return ":".join(credentials) + "@" + parts[1]
        return url

    def create_tables(self) -> None:
        """Create all database tables, including the spatial ones on PostGIS."""
        try:
            Base.metadata.create_all(bind=self.engine)
            if self.is_postgres:
                GeoBase.metadata.create_all(bind=self.engine)
            logger.info("Database tables created successfully")
        except SQLAlchemyError as e:
            logger.error(f"Failed to create tables: {e}")
            raise

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        try:
            if self.is_postgres:
                GeoBase.metadata.drop_all(bind=self.engine)
            Base.metadata.drop_all(bind=self.engine)
            logger.warning("All database tables dropped")
        except SQLAlchemyError as e:
            logger.error(f"Failed to drop tables: {e}")
            raise

    def check_connection(self) -> bool:
        """
        Check if database connection is healthy.

        Returns:
            True if connection is healthy
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    def check_postgis(self) -> bool:
        """
        Check if PostGIS extension is available.

        Returns:
            True if PostGIS is installed
        """
        if not self.is_postgres:
            return False
        try:
            with self.engine.connect() as conn:
                version = conn.execute(text("SELECT PostGIS_Version()")).scalar()
                logger.info(f"PostGIS version: {version}")
                return True
        except SQLAlchemyError:
            logger.warning("PostGIS extension not available")
            return False

    def enable_postgis(self) -> bool:
        """
        Enable PostGIS extension if not already enabled.

        Returns:
            True if PostGIS is enabled
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("CREATE EXTENSION IF NOT EXISTS postgis"))
                conn.commit()
            logger.info("PostGIS extension enabled")
            return True
        except SQLAlchemyError as e:
            logger.error(f"Failed to enable PostGIS: {e}")
            return False

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Context manager for database sessions.

        Commits on exit, rolls back on any error. On SQLite, sessions are
        serialized across threads.

        Yields:
            SQLAlchemy session
        """
        with self._session_lock or nullcontext():
            session = self.SessionLocal()
            try:
                yield session
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Database session error: {e}")
                raise
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    def close(self) -> None:
        """Close database connection and dispose engine."""
        self.engine.dispose()
        logger.info("Database connection closed")


# Global database instance
_db: Optional[DatabaseConnection] = None


def get_db() -> DatabaseConnection:
    """
    Get global database connection instance.

    Returns:
        DatabaseConnection instance
    """
    global _db
    if _db is None:
        _db = DatabaseConnection()
    return _db


def init_db(database_url: Optional[str] = None, create: bool = True) -> DatabaseConnection:
    """
    Initialize global database connection.

    Args:
        database_url: Optional database URL override
        create: Create missing tables

    Returns:
        DatabaseConnection instance
    """
    global _db
    _db = DatabaseConnection(database_url=database_url)
    if create:
        if _db.is_postgres:
            _db.enable_postgis()
        _db.create_tables()
    return _db
