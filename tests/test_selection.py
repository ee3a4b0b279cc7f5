"""Tests for multi-select and bulk operations."""
import pytest

from magicnotes.exceptions import ConfirmationRequired, ValidationError
from magicnotes.models.schema import Category, RichNote
from magicnotes.services.selection import SelectionController


@pytest.fixture
def selection(note_store):
    return SelectionController(note_store)


@pytest.fixture
def three_notes(note_store, clock):
    return [
        note_store.create(RichNote(title=f"n{i}", category=Category.WORK,
                                   created_at=clock(), updated_at=clock()))
        for i in range(3)
    ]


class TestSelectionMode:
    def test_toggle_clears_selection(self, selection, three_notes):
        selection.toggle()
        selection.toggle_member(three_notes[0].id)
        assert selection.count == 1
        selection.toggle()
        assert not selection.active
        assert selection.selected_ids == set()
        selection.toggle()
        assert selection.active
        assert selection.count == 0

    def test_toggle_member_ignored_when_inactive(self, selection, three_notes):
        assert selection.toggle_member(three_notes[0].id) is False
        assert selection.selected_ids == set()

    def test_toggle_member_adds_and_removes(self, selection, three_notes):
        selection.toggle()
        note_id = three_notes[0].id
        assert selection.toggle_member(note_id) is True
        assert selection.is_selected(note_id)
        assert selection.toggle_member(note_id) is False
        assert not selection.is_selected(note_id)


class TestBulkDelete:
    def test_requires_confirmation(self, selection, note_store, three_notes):
        selection.toggle()
        selection.toggle_member(three_notes[0].id)
        with pytest.raises(ConfirmationRequired) as exc_info:
            selection.bulk_delete()
        assert exc_info.value.count == 1
        assert len(note_store.list_all()) == 3
        assert selection.active

    def test_deletes_and_exits(self, selection, note_store, memory_store, three_notes):
        selection.toggle()
        for note in three_notes[:2]:
            selection.toggle_member(note.id)
        saves = memory_store.save_count
        assert selection.bulk_delete(confirmed=True) == 2
        assert memory_store.save_count == saves + 1
        assert [n.id for n in note_store.list_all()] == [three_notes[2].id]
        assert not selection.active
        assert selection.count == 0

    def test_empty_selection_is_noop(self, selection):
        selection.toggle()
        assert selection.bulk_delete() == 0


class TestBulkMove:
    def test_move_into_folder_keeps_category(self, selection, note_store, three_notes):
        folder = note_store.create_folder("Projects")
        selection.toggle()
        selection.toggle_member(three_notes[0].id)
        assert selection.bulk_move(folder.id) == 1
        moved = note_store.get(three_notes[0].id)
        assert moved.folder_id == folder.id
        assert moved.category == Category.WORK
        assert not selection.active

    def test_unfile_forces_personal(self, selection, note_store, three_notes):
        folder = note_store.create_folder("Projects")
        selection.toggle()
        for note in three_notes:
            selection.toggle_member(note.id)
        selection.bulk_move(folder.id)

        selection.toggle()
        for note in three_notes:
            selection.toggle_member(note.id)
        assert selection.bulk_move(None) == 3
        for note in note_store.list_all():
            assert note.folder_id is None
            assert note.category == Category.PERSONAL

    def test_unknown_folder(self, selection, note_store, three_notes):
        selection.toggle()
        selection.toggle_member(three_notes[0].id)
        with pytest.raises(ValidationError):
            selection.bulk_move("missing")
        assert note_store.get(three_notes[0].id).folder_id is None
        assert selection.active


class TestSelectablePredicate:
    def test_rejected_note_is_not_added(self, note_store, three_notes):
        blocked = three_notes[1].id
        selection = SelectionController(note_store, is_selectable=lambda note_id: note_id != blocked)
        selection.toggle()
        assert selection.toggle_member(three_notes[0].id) is True
        with pytest.raises(ValidationError):
            selection.toggle_member(blocked)
        assert selection.selected_ids == {three_notes[0].id}
