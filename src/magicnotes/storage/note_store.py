"""The note store: single source of truth for notes and folders."""
import datetime
import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from magicnotes.exceptions import (
    ErrorCode,
    FolderNotFoundError,
    NoteNotFoundError,
    StorageError,
    ValidationError,
)
from magicnotes.models.schema import (
    Category,
    CodeLanguage,
    CodeNote,
    Folder,
    NoteBase,
    RichNote,
    note_from_record,
    note_to_record,
    utc_now,
)
from magicnotes.storage.base import FOLDERS_KEY, NOTES_KEY, KeyValueStore

logger = logging.getLogger(__name__)

AnyNote = Union[RichNote, CodeNote]

# Fields a caller may change through update(); everything else is owned by the store
MUTABLE_FIELDS = frozenset(
    {
        "title",
        "content",
        "category",
        "folder_id",
        "code_language",
        "is_favorite",
        "paper_color",
        "paper_style",
    }
)


def _truncate_ms(value: datetime.datetime) -> datetime.datetime:
    # Timestamps are persisted with millisecond precision
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


class NoteStore:
    """Owns the note and folder collections and their persistence.

    Every mutation is a self-contained read-modify-write on the in-memory
    collection followed by a full re-serialization of the affected
    collection to the persistence port.
    """

    def __init__(
        self,
        port: KeyValueStore,
        clock: Callable[[], datetime.datetime] = utc_now,
    ):
        """Initialize the store and load both collections from ``port``.

        Args:
            port: Persistence port holding the ``notes`` and ``folders`` keys.
            clock: Source of the current time for ``updated_at`` stamps.
        """
        self.port = port
        self._clock = clock
        self._notes: List[AnyNote] = []
        self._folders: List[Folder] = []
        self._load()
        logger.info(
            f"NoteStore loaded {len(self._notes)} notes and {len(self._folders)} folders"
        )

    # =========================================================================
    # Persistence
    # =========================================================================

    def _load_array(self, key: str) -> List[Dict[str, Any]]:
        raw = self.port.load(key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(
                f"Stored '{key}' is not valid JSON",
                key=key,
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e
        if not isinstance(data, list):
            raise StorageError(f"Stored '{key}' is not a JSON array", key=key)
        return data

    def _load(self) -> None:
        try:
            self._folders = [Folder.model_validate(r) for r in self._load_array(FOLDERS_KEY)]
            self._notes = [note_from_record(r) for r in self._load_array(NOTES_KEY)]
        except PydanticValidationError as e:
            raise StorageError(
                "Stored records failed validation",
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e

    def _persist_notes(self) -> None:
        payload = json.dumps([note_to_record(n) for n in self._notes], ensure_ascii=False)
        self.port.save(NOTES_KEY, payload)

    def _persist_folders(self) -> None:
        payload = json.dumps(
            [f.model_dump(mode="json", by_alias=True) for f in self._folders],
            ensure_ascii=False,
        )
        self.port.save(FOLDERS_KEY, payload)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _now(self) -> datetime.datetime:
        return _truncate_ms(self._clock())

    def _next_timestamp(self, previous: datetime.datetime) -> datetime.datetime:
        """Return a timestamp strictly later than ``previous``."""
        now = self._now()
        if now <= previous:
            now = _truncate_ms(previous) + datetime.timedelta(milliseconds=1)
        return now

    def _index_of(self, note_id: str) -> int:
        for i, note in enumerate(self._notes):
            if note.id == note_id:
                return i
        raise NoteNotFoundError(note_id)

    def _check_folder_ref(self, folder_id: Optional[str]) -> None:
        if folder_id is not None and self.get_folder(folder_id) is None:
            raise FolderNotFoundError(folder_id)

    def _apply(self, note: AnyNote, partial: Dict[str, Any]) -> AnyNote:
        """Build the updated note from ``partial`` without touching the store."""
        unknown = set(partial) - MUTABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Cannot update field(s): {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
            )
        if "folder_id" in partial and partial["folder_id"] != note.folder_id:
            self._check_folder_ref(partial["folder_id"])

        data = note.model_dump(exclude={"kind", "code_language"})
        code_language = note.code_language if isinstance(note, CodeNote) else None
        for key, value in partial.items():
            if key == "code_language":
                code_language = value
            else:
                data[key] = value
        data["updated_at"] = self._next_timestamp(note.updated_at)

        try:
            if code_language is None:
                return RichNote(**data)
            return CodeNote(code_language=CodeLanguage(code_language), **data)
        except (PydanticValidationError, ValueError) as e:
            raise ValidationError(
                f"Invalid update for note '{note.id}': {e}",
                code=ErrorCode.NOTE_VALIDATION_FAILED,
            ) from e

    # =========================================================================
    # Notes
    # =========================================================================

    def create(self, note: AnyNote) -> AnyNote:
        """Add a new note to the collection.

        Raises:
            ValidationError: If a note with the same ID already exists.
            FolderNotFoundError: If the note references an unknown folder.
        """
        if any(n.id == note.id for n in self._notes):
            raise ValidationError(f"Note '{note.id}' already exists", field="id", value=note.id)
        self._check_folder_ref(note.folder_id)
        note = note.model_copy(deep=True)
        note.created_at = _truncate_ms(note.created_at)
        if note.updated_at < note.created_at:
            note.updated_at = note.created_at
        else:
            note.updated_at = _truncate_ms(note.updated_at)

        self._notes = [note] + self._notes
        self._persist_notes()
        logger.info(f"Created note: {note.id}")
        return note.model_copy(deep=True)

    def get(self, note_id: str) -> Optional[AnyNote]:
        for note in self._notes:
            if note.id == note_id:
                return note.model_copy(deep=True)
        return None

    def list_all(self) -> List[AnyNote]:
        """Return copies of all notes in storage order."""
        return [n.model_copy(deep=True) for n in self._notes]

    def update(self, note_id: str, partial: Dict[str, Any]) -> AnyNote:
        """Apply ``partial`` to a note and stamp a fresh ``updated_at``.

        ``code_language`` selects the variant: ``None`` makes a rich note,
        a language makes a code note. Content is stored as given.
        """
        index = self._index_of(note_id)
        updated = self._apply(self._notes[index], partial)
        notes = list(self._notes)
        notes[index] = updated
        self._notes = notes
        self._persist_notes()
        logger.debug(f"Updated note {note_id}: {sorted(partial)}")
        return updated.model_copy(deep=True)

    def update_many(self, note_ids: Iterable[str], partial: Dict[str, Any]) -> int:
        """Apply the same ``partial`` to several notes as one atomic update.

        Unknown IDs are skipped. Either every matching note is updated or,
        if any update is invalid, none is.

        Returns:
            Number of notes updated.
        """
        wanted = set(note_ids)
        if not wanted:
            return 0
        notes = list(self._notes)
        count = 0
        for i, note in enumerate(notes):
            if note.id in wanted:
                notes[i] = self._apply(note, partial)
                count += 1
        if count:
            self._notes = notes
            self._persist_notes()
        logger.info(f"Updated {count} notes: {sorted(partial)}")
        return count

    def move_many(self, note_ids: Iterable[str], folder_id: Optional[str]) -> int:
        """File several notes into ``folder_id`` in one atomic update.

        ``None`` unfiles the notes and resets their category to personal.

        Raises:
            FolderNotFoundError: If ``folder_id`` does not exist.
        """
        self._check_folder_ref(folder_id)
        partial: Dict[str, Any] = {"folder_id": folder_id}
        if folder_id is None:
            partial["category"] = Category.PERSONAL
        return self.update_many(note_ids, partial)

    def delete(self, note_id: str) -> None:
        """Remove a note.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        self._index_of(note_id)
        self._notes = [n for n in self._notes if n.id != note_id]
        self._persist_notes()
        logger.info(f"Deleted note: {note_id}")

    def delete_many(self, note_ids: Iterable[str]) -> int:
        """Remove several notes as one atomic update. Unknown IDs are skipped."""
        wanted = set(note_ids)
        remaining = [n for n in self._notes if n.id not in wanted]
        removed = len(self._notes) - len(remaining)
        if removed:
            self._notes = remaining
            self._persist_notes()
        logger.info(f"Deleted {removed} notes")
        return removed

    # =========================================================================
    # Folders
    # =========================================================================

    def create_folder(self, name: str, description: str = "") -> Folder:
        """Create a folder.

        Raises:
            ValidationError: If the name is blank.
        """
        if not name or not name.strip():
            raise ValidationError(
                "Folder name cannot be empty",
                field="name",
                code=ErrorCode.VALIDATION_FAILED,
            )
        folder = Folder(name=name.strip(), description=description.strip(), created_at=self._now())
        self._folders = self._folders + [folder]
        self._persist_folders()
        logger.info(f"Created folder: {folder.id} ({folder.name})")
        return folder.model_copy()

    def get_folder(self, folder_id: str) -> Optional[Folder]:
        for folder in self._folders:
            if folder.id == folder_id:
                return folder.model_copy()
        return None

    def list_folders(self) -> List[Folder]:
        return [f.model_copy() for f in self._folders]

    def update_folder(
        self,
        folder_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Folder:
        """Rename a folder or change its description."""
        if name is not None and not name.strip():
            raise ValidationError("Folder name cannot be empty", field="name")
        folders = list(self._folders)
        for i, folder in enumerate(folders):
            if folder.id == folder_id:
                data = folder.model_dump()
                if name is not None:
                    data["name"] = name.strip()
                if description is not None:
                    data["description"] = description.strip()
                folders[i] = Folder(**data)
                self._folders = folders
                self._persist_folders()
                return folders[i].model_copy()
        raise FolderNotFoundError(folder_id)

    def delete_folder(self, folder_id: str) -> int:
        """Delete a folder and clear ``folder_id`` on its member notes.

        Member notes are kept; they become unfiled.

        Returns:
            Number of notes that were unfiled.

        Raises:
            FolderNotFoundError: If the folder does not exist.
        """
        if self.get_folder(folder_id) is None:
            raise FolderNotFoundError(folder_id)

        notes = list(self._notes)
        cleared = 0
        for i, note in enumerate(notes):
            if note.folder_id == folder_id:
                notes[i] = self._apply(note, {"folder_id": None})
                cleared += 1

        self._folders = [f for f in self._folders if f.id != folder_id]
        self._notes = notes
        self._persist_folders()
        if cleared:
            self._persist_notes()
        logger.info(f"Deleted folder {folder_id}; unfiled {cleared} notes")
        return cleared
