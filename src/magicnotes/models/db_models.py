"""SQLAlchemy database models for the MagicNotes key-value store."""
import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, String, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool

from magicnotes.config import config

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBEntry(Base):
    """One key of the persistence port and its serialized value."""
    __tablename__ = "kv_entries"
    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.datetime.now, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of entry."""
        return f"<Entry(key='{self.key}', size={len(self.value or '')})>"


def init_db(db_url: Optional[str] = None) -> Engine:
    """Initialize the database with hardened configuration.

    - WAL (Write-Ahead Logging) mode for atomic writes
    - NORMAL synchronous mode
    - QueuePool with pre-ping to detect stale connections
    """
    url = db_url or config.get_db_url()
    if url == "sqlite://" or url.endswith(":memory:"):
        # A pooled in-memory database would hand out empty databases
        engine = create_engine(url)
    else:
        engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_pre_ping=True,
        )

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Optional[Engine] = None):
    """Get a session factory for the database."""
    if engine is None:
        engine = create_engine(config.get_db_url())
    return sessionmaker(bind=engine)
