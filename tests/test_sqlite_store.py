"""Tests for the SQLite persistence adapter."""
import pytest
from sqlalchemy import text

from magicnotes.exceptions import StorageError
from magicnotes.models.db_models import init_db
from magicnotes.models.schema import CodeLanguage, CodeNote
from magicnotes.storage.base import PASSWORD_KEY
from magicnotes.storage.note_store import NoteStore
from magicnotes.storage.sqlite_store import SqliteKeyValueStore


class TestSqliteKeyValueStore:
    def test_missing_key(self, sqlite_store):
        assert sqlite_store.load("nothing") is None

    def test_save_and_overwrite(self, sqlite_store):
        sqlite_store.save("k", "one")
        sqlite_store.save("k", "two")
        assert sqlite_store.load("k") == "two"

    def test_wal_mode_enabled(self, sqlite_store):
        with sqlite_store.engine.connect() as conn:
            mode = conn.execute(text("PRAGMA journal_mode")).scalar()
        assert mode.lower() == "wal"

    def test_values_survive_new_engine(self, test_config):
        url = test_config.get_db_url()
        engine = init_db(url)
        SqliteKeyValueStore(engine=engine).save(PASSWORD_KEY, "hunter2")
        engine.dispose()

        engine = init_db(url)
        assert SqliteKeyValueStore(engine=engine).load(PASSWORD_KEY) == "hunter2"
        engine.dispose()

    def test_note_store_round_trip(self, sqlite_store, clock):
        store = NoteStore(sqlite_store, clock=clock)
        folder = store.create_folder("Code")
        note = store.create(
            CodeNote(
                title="query",
                content="SELECT 1;",
                code_language=CodeLanguage.SQL,
                folder_id=folder.id,
                created_at=clock(),
                updated_at=clock(),
            )
        )
        reloaded = NoteStore(sqlite_store, clock=clock)
        assert reloaded.list_all() == [note]
        assert reloaded.list_folders() == [folder]

    def test_read_failure_becomes_storage_error(self, sqlite_store):
        with sqlite_store.engine.begin() as conn:
            conn.execute(text("DROP TABLE kv_entries"))
        with pytest.raises(StorageError):
            sqlite_store.load("notes")
