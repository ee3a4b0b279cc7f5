"""Persistence port for MagicNotes.

The store is a plain key-value contract: each key holds one serialized
string. Note and folder collections are stored as JSON arrays under their
own keys and rewritten in full on every mutation.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

logger = logging.getLogger(__name__)

NOTES_KEY = "notes"
FOLDERS_KEY = "folders"
PASSWORD_KEY = "secret_password"


class KeyValueStore(ABC):
    """Durable key-value storage used by the note store and the vault."""

    @abstractmethod
    def load(self, key: str) -> Optional[str]:
        """Return the value stored under ``key``, or None if absent."""

    @abstractmethod
    def save(self, key: str, value: str) -> None:
        """Replace the value stored under ``key``."""


class MemoryStore(KeyValueStore):
    """Non-durable store backed by a dict. Used in tests and scratch sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self.save_count = 0

    def load(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def save(self, key: str, value: str) -> None:
        self._data[key] = value
        self.save_count += 1
