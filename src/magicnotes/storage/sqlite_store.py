"""SQLite-backed implementation of the persistence port."""
import datetime
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from magicnotes.exceptions import ErrorCode, StorageError
from magicnotes.models.db_models import DBEntry, get_session_factory, init_db
from magicnotes.storage.base import KeyValueStore

logger = logging.getLogger(__name__)


class SqliteKeyValueStore(KeyValueStore):
    """Key-value store kept in a single SQLite table."""

    def __init__(self, engine=None):
        """Initialize the store.

        Args:
            engine: SQLAlchemy engine. If None, uses default from config.
        """
        self.engine = engine or init_db()
        self.session_factory = get_session_factory(self.engine)
        logger.info("SqliteKeyValueStore initialized")

    def load(self, key: str) -> Optional[str]:
        try:
            with self.session_factory() as session:
                entry = session.get(DBEntry, key)
                return entry.value if entry else None
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to read '{key}'",
                key=key,
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e

    def save(self, key: str, value: str) -> None:
        try:
            with self.session_factory() as session:
                entry = session.get(DBEntry, key)
                if entry is None:
                    session.add(DBEntry(key=key, value=value))
                else:
                    entry.value = value
                    entry.updated_at = datetime.datetime.now()
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to write '{key}'",
                key=key,
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        logger.debug(f"Saved key '{key}' ({len(value)} chars)")
