"""Tests for the NotebookService coordinator."""
import pytest

from magicnotes.exceptions import (
    ConfirmationRequired,
    FolderNotFoundError,
    NoteNotFoundError,
    ValidationError,
)
from magicnotes.models.schema import Category, RichNote
from magicnotes.services.view_filter import ViewSelector


def _add(notebook, clock, **kwargs):
    clock.advance(1)
    return notebook.store.create(RichNote(created_at=clock(), updated_at=clock(), **kwargs))


class TestViews:
    def test_select_view_clears_search_and_selection(self, notebook):
        notebook.set_search("plan")
        notebook.selection.toggle()
        notebook.select_view(ViewSelector.of_category(Category.WORK))
        assert notebook.view == ViewSelector.of_category(Category.WORK)
        assert notebook.search_query == ""
        assert not notebook.selection.active

    def test_private_view_only_through_vault(self, notebook):
        with pytest.raises(ValidationError):
            notebook.select_view(ViewSelector.private())

    def test_unknown_folder_view(self, notebook):
        with pytest.raises(FolderNotFoundError):
            notebook.select_view(ViewSelector.of_folder("missing"))

    def test_visible_notes_follow_vault(self, notebook, clock):
        _add(notebook, clock, title="open")
        _add(notebook, clock, title="hidden", category=Category.SECRET)
        assert [n.title for n in notebook.visible_notes()] == ["open"]

        notebook.vault.request_access()
        notebook.vault.submit_password("1234")
        assert notebook.view.is_private
        assert [n.title for n in notebook.visible_notes()] == ["hidden"]

        notebook.lock_vault()
        assert notebook.view == ViewSelector.all()
        assert [n.title for n in notebook.visible_notes()] == ["open"]


class TestEditorLifecycle:
    def test_blank_note_defaults_from_category_view(self, notebook):
        notebook.select_view(ViewSelector.of_category(Category.JOURNAL))
        session = notebook.open_editor()
        note = notebook.store.get(session.note_id)
        assert note.category == Category.JOURNAL
        assert note.folder_id is None

    def test_blank_note_in_folder_view(self, notebook):
        folder = notebook.create_folder("Trips")
        session = notebook.open_editor()
        note = notebook.store.get(session.note_id)
        assert note.folder_id == folder.id
        assert note.category == Category.PERSONAL

    def test_blank_note_in_private_view_is_secret(self, notebook):
        notebook.vault.request_access()
        notebook.vault.submit_password("1234")
        session = notebook.open_editor()
        assert session.category == Category.SECRET

    def test_opening_another_note_commits_the_first(self, notebook, scheduler, clock):
        first = _add(notebook, clock, title="first")
        second = _add(notebook, clock, title="second")
        session = notebook.open_editor(first.id)
        session.set_title("first edited")
        notebook.open_editor(second.id)
        assert session.closed
        assert notebook.store.get(first.id).title == "first edited"
        assert scheduler.fire_all() == 0

    def test_cannot_open_during_selection(self, notebook):
        notebook.selection.toggle()
        with pytest.raises(ValidationError):
            notebook.open_editor()

    def test_cannot_open_private_note_while_locked(self, notebook, clock):
        note = _add(notebook, clock, category=Category.SECRET)
        with pytest.raises(ValidationError):
            notebook.open_editor(note.id)

    def test_open_missing_note(self, notebook):
        with pytest.raises(NoteNotFoundError):
            notebook.open_editor("missing")

    def test_lock_closes_private_session(self, notebook):
        notebook.vault.request_access()
        notebook.vault.submit_password("1234")
        session = notebook.open_editor()
        notebook.lock_vault()
        assert session.closed
        assert notebook.session is None

    def test_toggle_favorite(self, notebook, clock):
        note = _add(notebook, clock)
        assert notebook.toggle_favorite(note.id).is_favorite
        assert not notebook.toggle_favorite(note.id).is_favorite


class TestDeletion:
    def test_delete_note_requires_confirmation(self, notebook, clock):
        note = _add(notebook, clock)
        with pytest.raises(ConfirmationRequired):
            notebook.delete_note(note.id)
        assert notebook.store.get(note.id) is not None
        notebook.delete_note(note.id, confirmed=True)
        assert notebook.store.get(note.id) is None

    def test_delete_open_note_closes_editor(self, notebook, scheduler, clock):
        note = _add(notebook, clock)
        session = notebook.open_editor(note.id)
        session.set_title("pending")
        notebook.delete_note(note.id, confirmed=True)
        assert session.closed
        assert scheduler.fire_all() == 0
        assert notebook.drain_notices() == []

    def test_create_folder_switches_view(self, notebook):
        folder = notebook.create_folder("Books", "Reading list")
        assert notebook.view == ViewSelector.of_folder(folder.id)

    def test_blank_folder_name(self, notebook):
        with pytest.raises(ValidationError):
            notebook.create_folder(" ")
        assert notebook.view == ViewSelector.all()

    def test_delete_active_folder_resets_view(self, notebook, clock):
        folder = notebook.create_folder("Temp")
        note = _add(notebook, clock, folder_id=folder.id)
        with pytest.raises(ConfirmationRequired):
            notebook.delete_folder(folder.id)
        assert notebook.delete_folder(folder.id, confirmed=True) == 1
        assert notebook.view == ViewSelector.all()
        assert notebook.store.get(note.id).folder_id is None

    def test_delete_other_folder_keeps_view(self, notebook):
        first = notebook.create_folder("One")
        second = notebook.create_folder("Two")
        notebook.delete_folder(first.id, confirmed=True)
        assert notebook.view == ViewSelector.of_folder(second.id)


class TestPrivateNotesWhileLocked:
    def test_cannot_select_delete_or_favorite(self, notebook, clock):
        diary = _add(notebook, clock, title="diary", category=Category.SECRET)
        notebook.selection.toggle()
        with pytest.raises(ValidationError):
            notebook.selection.toggle_member(diary.id)
        with pytest.raises(NoteNotFoundError):
            notebook.delete_note(diary.id, confirmed=True)
        with pytest.raises(NoteNotFoundError):
            notebook.toggle_favorite(diary.id)
        assert notebook.store.get(diary.id).category == Category.SECRET

    def test_lock_leaves_selection_mode(self, notebook, clock):
        diary = _add(notebook, clock, category=Category.SECRET)
        notebook.vault.request_access()
        notebook.vault.submit_password("1234")
        notebook.selection.toggle()
        notebook.selection.toggle_member(diary.id)
        notebook.lock_vault()
        assert not notebook.selection.active
        assert notebook.selection.selected_ids == set()

    def test_lock_commits_open_private_note(self, notebook):
        notebook.vault.request_access()
        notebook.vault.submit_password("1234")
        session = notebook.open_editor()
        session.set_title("kept")
        notebook.lock_vault()
        assert notebook.store.get(session.note_id).title == "kept"


class TestBulkWithOpenEditor:
    def test_move_updates_open_session(self, notebook, scheduler, clock):
        folder = notebook.create_folder("Work")
        note = _add(notebook, clock, category=Category.WORK, folder_id=folder.id)
        session = notebook.open_editor(note.id)
        session.set_title("edited")
        epoch = session.epoch

        notebook.selection.toggle()
        notebook.selection.toggle_member(note.id)
        assert notebook.bulk_move(None) == 1
        assert session.folder_id is None
        assert session.category == Category.PERSONAL
        assert session.epoch == epoch

        scheduler.fire_all()
        stored = notebook.store.get(note.id)
        assert stored.title == "edited"
        assert stored.folder_id is None
        assert stored.category == Category.PERSONAL

    def test_delete_discards_open_session(self, notebook, scheduler, clock):
        note = _add(notebook, clock)
        session = notebook.open_editor(note.id)
        session.set_title("pending")
        notebook.selection.toggle()
        notebook.selection.toggle_member(note.id)
        with pytest.raises(ConfirmationRequired):
            notebook.bulk_delete()
        assert not session.closed

        assert notebook.bulk_delete(confirmed=True) == 1
        assert session.closed
        assert notebook.session is None
        assert scheduler.fire_all() == 0
        assert notebook.store.get(note.id) is None
