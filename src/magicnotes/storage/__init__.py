"""Storage layer for MagicNotes."""

from magicnotes.storage.base import KeyValueStore, MemoryStore
from magicnotes.storage.note_store import NoteStore
from magicnotes.storage.sqlite_store import SqliteKeyValueStore

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "NoteStore",
    "SqliteKeyValueStore",
]
