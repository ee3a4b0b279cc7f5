"""Application coordinator for MagicNotes.

Owns the active view and search query and wires the store, vault,
selection, editor and AI components together. One editor session is open
at a time.
"""
import logging
from typing import Any, Callable, List, Optional

from magicnotes.ai.client import AIService, OpenRouterAIService
from magicnotes.ai.orchestrator import AIOrchestrator
from magicnotes.editor.notices import Notice, Notifier
from magicnotes.editor.session import EditorSession, Scheduler
from magicnotes.exceptions import (
    ConfirmationRequired,
    FolderNotFoundError,
    NoteNotFoundError,
    ValidationError,
)
from magicnotes.models.schema import Category, Folder, NoteBase, RichNote, utc_now
from magicnotes.observability import timed_operation
from magicnotes.services.selection import SelectionController
from magicnotes.services.vault import Vault
from magicnotes.services.view_filter import ViewKind, ViewSelector, filter_notes
from magicnotes.storage.base import KeyValueStore
from magicnotes.storage.note_store import NoteStore
from magicnotes.storage.sqlite_store import SqliteKeyValueStore

logger = logging.getLogger(__name__)


class NotebookService:
    """Coordinates notes, folders, views and the open editor."""

    def __init__(
        self,
        port: Optional[KeyValueStore] = None,
        ai_service: Optional[AIService] = None,
        scheduler: Optional[Scheduler] = None,
        autosave_delay: Optional[float] = None,
        clock: Callable[..., Any] = utc_now,
    ):
        """Initialize the notebook.

        Args:
            port: Persistence port; a SQLite store from the global config
                  when omitted.
            ai_service: AI backend; the OpenRouter adapter when omitted.
            scheduler: Timer source for editor autosave.
            autosave_delay: Override for the configured autosave delay.
            clock: Time source for note timestamps.
        """
        self.port = port or SqliteKeyValueStore()
        self.store = NoteStore(self.port, clock=clock)
        self.view = ViewSelector.all()
        self.search_query = ""
        self.vault = Vault(self.port, self._switch_view)
        self.selection = SelectionController(self.store, is_selectable=self._is_reachable)
        self.notifier = Notifier()
        self.ai = AIOrchestrator(ai_service or OpenRouterAIService())
        self.session: Optional[EditorSession] = None
        self._scheduler = scheduler
        self._autosave_delay = autosave_delay
        self._clock = clock

    # =========================================================================
    # Views and search
    # =========================================================================

    def _switch_view(self, view: ViewSelector) -> None:
        self.view = view
        logger.debug(f"View switched to {view}")

    def select_view(self, view: ViewSelector) -> None:
        """Show a category, folder or everything.

        Clears the search and leaves selection mode. The private view is
        reached only through the vault.

        Raises:
            ValidationError: If ``view`` is the private view.
            FolderNotFoundError: If the folder does not exist.
        """
        if view.is_private:
            raise ValidationError(
                "The private area is opened through the vault", field="view", value=str(view)
            )
        if view.kind == ViewKind.FOLDER and self.store.get_folder(view.folder_id) is None:
            raise FolderNotFoundError(view.folder_id)
        self._switch_view(view)
        self.search_query = ""
        self.selection.exit()

    def set_search(self, query: str) -> None:
        self.search_query = query or ""

    def _is_reachable(self, note_id: str) -> bool:
        """Whether a note exists and is not hidden in the locked private area."""
        note = self.store.get(note_id)
        return note is not None and (not note.is_secret or self.vault.is_unlocked)

    def visible_notes(self) -> List[NoteBase]:
        """The notes shown for the current view and search, newest first."""
        return filter_notes(
            self.store.list_all(),
            self.view,
            self.search_query,
            vault_unlocked=self.vault.is_unlocked,
        )

    def lock_vault(self) -> None:
        """Lock the private area.

        An open private note is committed and its session closed. Selection
        mode is left, since it may hold private notes.
        """
        if self.session is not None and self.session.category == Category.SECRET:
            self.close_editor()
        self.selection.exit()
        self.vault.lock()

    # =========================================================================
    # Notes
    # =========================================================================

    def _blank_note(self) -> RichNote:
        folder_id = None
        if self.view.kind == ViewKind.FOLDER:
            category = Category.PERSONAL
            folder_id = self.view.folder_id
        elif self.view.kind == ViewKind.CATEGORY:
            category = self.view.category
        elif self.view.is_private and self.vault.is_unlocked:
            category = Category.SECRET
        else:
            category = Category.PERSONAL
        now = self._clock()
        return RichNote(category=category, folder_id=folder_id, created_at=now, updated_at=now)

    def open_editor(self, note_id: Optional[str] = None) -> EditorSession:
        """Open a note for editing, or a new blank note when ``note_id`` is None.

        Any session already open is committed and closed first.

        Raises:
            ValidationError: While in selection mode, or for a private note
                while the vault is locked.
            NoteNotFoundError: If ``note_id`` does not exist.
        """
        if self.selection.active:
            raise ValidationError("Leave selection mode before opening a note")

        if note_id is None:
            note = self.store.create(self._blank_note())
        else:
            note = self.store.get(note_id)
            if note is None:
                raise NoteNotFoundError(note_id)
            if note.is_secret and not self.vault.is_unlocked:
                raise ValidationError("Unlock the private area to open this note", field="note_id")

        self.close_editor()
        self.session = EditorSession(
            self.store,
            note,
            scheduler=self._scheduler,
            autosave_delay=self._autosave_delay,
            notifier=self.notifier,
        )
        logger.info(f"Opened editor for note {note.id}")
        return self.session

    def close_editor(self, commit: bool = True) -> Optional[NoteBase]:
        """Close the open session, committing its draft unless ``commit`` is False."""
        session, self.session = self.session, None
        if session is None or session.closed:
            return None
        if commit:
            return session.done()
        session.close()
        return None

    def toggle_favorite(self, note_id: str) -> NoteBase:
        if not self._is_reachable(note_id):
            raise NoteNotFoundError(note_id)
        note = self.store.get(note_id)
        return self.store.update(note_id, {"is_favorite": not note.is_favorite})

    def delete_note(self, note_id: str, confirmed: bool = False) -> None:
        """Delete a note after confirmation, closing its editor if open.

        Raises:
            ConfirmationRequired: If ``confirmed`` is False.
            NoteNotFoundError: If the note does not exist, or is a private
                note while the vault is locked.
        """
        if not self._is_reachable(note_id):
            raise NoteNotFoundError(note_id)
        if not confirmed:
            raise ConfirmationRequired("delete_note", "Delete this note?")
        with timed_operation("delete_note", note_id=note_id):
            if self.session is not None and self.session.note_id == note_id:
                self.close_editor(commit=False)
            self.store.delete(note_id)

    # =========================================================================
    # Bulk operations
    # =========================================================================

    def _open_session_in_selection(self) -> Optional[EditorSession]:
        session = self.session
        if session is None or session.closed:
            return None
        return session if self.selection.is_selected(session.note_id) else None

    def bulk_delete(self, confirmed: bool = False) -> int:
        """Delete the selected notes, discarding the editor if its note is among them.

        Raises:
            ConfirmationRequired: If ``confirmed`` is False and notes are selected.
        """
        if confirmed and self._open_session_in_selection() is not None:
            self.close_editor(commit=False)
        return self.selection.bulk_delete(confirmed=confirmed)

    def bulk_move(self, target_folder_id: Optional[str]) -> int:
        """Move the selected notes, keeping an open editor's draft in step.

        The open note's session takes the stored folder and category, so its
        next commit does not undo the move.

        Raises:
            ValidationError: If the target folder does not exist.
        """
        session = self._open_session_in_selection()
        moved = self.selection.bulk_move(target_folder_id)
        if session is not None:
            stored = self.store.get(session.note_id)
            if stored is not None:
                session.sync_placement(stored)
        return moved

    # =========================================================================
    # Folders
    # =========================================================================

    def list_folders(self) -> List[Folder]:
        return self.store.list_folders()

    def create_folder(self, name: str, description: str = "") -> Folder:
        """Create a folder and switch the view to it."""
        folder = self.store.create_folder(name, description)
        self._switch_view(ViewSelector.of_folder(folder.id))
        return folder

    def rename_folder(
        self, folder_id: str, name: Optional[str] = None, description: Optional[str] = None
    ) -> Folder:
        return self.store.update_folder(folder_id, name=name, description=description)

    def delete_folder(self, folder_id: str, confirmed: bool = False) -> int:
        """Delete a folder after confirmation. Member notes become unfiled.

        If the folder was the active view, the view resets to "all".

        Returns:
            Number of notes unfiled.
        """
        if self.store.get_folder(folder_id) is None:
            raise FolderNotFoundError(folder_id)
        if not confirmed:
            raise ConfirmationRequired(
                "delete_folder", "Delete this folder? Its notes will be kept without a folder."
            )
        with timed_operation("delete_folder", folder_id=folder_id) as op:
            cleared = self.store.delete_folder(folder_id)
            op["cleared"] = cleared
        if self.view.kind == ViewKind.FOLDER and self.view.folder_id == folder_id:
            self._switch_view(ViewSelector.all())
        return cleared

    # =========================================================================
    # Notices
    # =========================================================================

    def drain_notices(self) -> List[Notice]:
        return self.notifier.drain()
