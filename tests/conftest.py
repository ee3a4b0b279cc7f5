"""Common test fixtures for MagicNotes."""

import pytest

from magicnotes.config import config
from magicnotes.editor.session import EditorSession
from magicnotes.models.db_models import init_db
from magicnotes.models.schema import RichNote
from magicnotes.services.notebook_service import NotebookService
from magicnotes.storage.base import MemoryStore
from magicnotes.storage.note_store import NoteStore
from magicnotes.storage.sqlite_store import SqliteKeyValueStore
from tests.fakes import FakeAIService, FakeClock, FakeScheduler


@pytest.fixture(params=["asyncio"])
def anyio_backend(request):
    """Restrict anyio tests to asyncio only (trio is not installed)."""
    return request.param


@pytest.fixture
def test_config(tmp_path, monkeypatch):
    """Point the global config at a temporary database (auto-restored)."""
    monkeypatch.setattr(config, "base_dir", tmp_path)
    monkeypatch.setattr(config, "database_path", tmp_path / "magicnotes_test.db")
    monkeypatch.setattr(config, "ai_api_key", "")
    yield config


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def note_store(memory_store, clock):
    return NoteStore(memory_store, clock=clock)


@pytest.fixture
def sqlite_store(test_config):
    engine = init_db(test_config.get_db_url())
    yield SqliteKeyValueStore(engine=engine)
    engine.dispose()


@pytest.fixture
def ai_service():
    return FakeAIService()


@pytest.fixture
def notebook(memory_store, ai_service, scheduler, clock):
    return NotebookService(
        port=memory_store,
        ai_service=ai_service,
        scheduler=scheduler,
        autosave_delay=1.5,
        clock=clock,
    )


@pytest.fixture
def make_session(note_store, scheduler, clock):
    """Factory creating a stored note and an editor session on it."""

    def _make(note=None):
        note = note_store.create(note or RichNote(title="Draft", created_at=clock(), updated_at=clock()))
        return EditorSession(note_store, note, scheduler=scheduler, autosave_delay=1.5)

    return _make
