"""Multi-select sessions and the bulk operations run on them."""
import logging
from typing import Callable, List, Optional, Set

from magicnotes.exceptions import ConfirmationRequired, FolderNotFoundError, ValidationError
from magicnotes.observability import timed_operation
from magicnotes.storage.note_store import NoteStore

logger = logging.getLogger(__name__)


class SelectionController:
    """Tracks which notes are selected and applies bulk delete or move.

    ``selected_ids`` is always empty while selection mode is off.
    """

    def __init__(self, store: NoteStore, is_selectable: Optional[Callable[[str], bool]] = None):
        """Initialize the controller.

        Args:
            store: Note store the bulk operations run against.
            is_selectable: Predicate a note ID must pass to be added, e.g.
                "exists and is not hidden in the locked private area".
        """
        self.store = store
        self._is_selectable = is_selectable
        self.active = False
        self._selected: Set[str] = set()

    @property
    def selected_ids(self) -> Set[str]:
        return set(self._selected)

    @property
    def count(self) -> int:
        return len(self._selected)

    def is_selected(self, note_id: str) -> bool:
        return note_id in self._selected

    def toggle(self) -> bool:
        """Enter or leave selection mode. The selection is always cleared."""
        self.active = not self.active
        self._selected.clear()
        return self.active

    def exit(self) -> None:
        self.active = False
        self._selected.clear()

    def toggle_member(self, note_id: str) -> bool:
        """Add or remove a note. Ignored while selection mode is off.

        Returns:
            Whether the note is selected afterwards.

        Raises:
            ValidationError: If the note may not be selected.
        """
        if not self.active:
            return False
        if note_id in self._selected:
            self._selected.discard(note_id)
            return False
        if self._is_selectable is not None and not self._is_selectable(note_id):
            raise ValidationError(
                f"Note '{note_id}' cannot be selected", field="note_id", value=note_id
            )
        self._selected.add(note_id)
        return True

    def _ordered(self) -> List[str]:
        return sorted(self._selected)

    def bulk_delete(self, confirmed: bool = False) -> int:
        """Delete every selected note, then leave selection mode.

        Raises:
            ConfirmationRequired: If ``confirmed`` is False and notes are selected.
        """
        if not self._selected:
            return 0
        if not confirmed:
            raise ConfirmationRequired(
                "bulk_delete",
                f"Delete {self.count} notes? This cannot be undone.",
                count=self.count,
            )
        with timed_operation("bulk_delete", count=self.count) as op:
            removed = self.store.delete_many(self._ordered())
            op["removed"] = removed
        self.exit()
        return removed

    def bulk_move(self, target_folder_id: Optional[str]) -> int:
        """Move every selected note into a folder, then leave selection mode.

        Moving to ``None`` unfiles the notes and also resets their category
        to personal. Moving into a folder leaves the category alone.

        Raises:
            ValidationError: If the target folder does not exist.
        """
        if not self._selected:
            return 0
        with timed_operation("bulk_move", count=self.count, target=target_folder_id) as op:
            try:
                moved = self.store.move_many(self._ordered(), target_folder_id)
            except FolderNotFoundError as e:
                raise ValidationError(
                    f"Target folder '{target_folder_id}' does not exist",
                    field="folder_id",
                    value=target_folder_id,
                ) from e
            op["moved"] = moved
        self.exit()
        return moved
