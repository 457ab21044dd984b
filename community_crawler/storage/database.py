"""
SQLAlchemy engine and session management for the crawl database.

A ``Database`` owns one engine and one session factory. SQLite (the default
destination) and PostgreSQL URLs are both accepted.
"""

import logging
import os
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from community_crawler.models.orm import Base

logger = logging.getLogger(__name__)


class Database:
    """Engine plus session factory for one storage destination."""

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine: Engine = _create_engine(database_url)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    @contextmanager
    def get_db(self) -> Iterator[Session]:
        """
        Get a database session.

        Yields:
            SQLAlchemy session, closed when the block exits
        """
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def create_schema(self) -> None:
        """Create all crawl tables that do not exist yet."""
        Base.metadata.create_all(self.engine)
        logger.info(f"Schema ready at {self._safe_url()}")

    def ping(self) -> bool:
        """Run a trivial query to check the connection."""
        try:
            with self.get_db() as db:
                db.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database connection test failed for {self._safe_url()}: {str(e)}")
            return False

    def dispose(self) -> None:
        self.engine.dispose()

    def _safe_url(self) -> str:
        return make_url(self.database_url).render_as_string(hide_password=True)


def _create_engine(database_url: str) -> Engine:
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        database = url.database
        if database and database != ":memory:":
            directory = os.path.dirname(database)
            if directory:
                os.makedirs(directory, exist_ok=True)
            return create_engine(database_url, connect_args={"check_same_thread": False})

        # In-memory databases only live as long as their single connection
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return create_engine(
        database_url,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
    )
