"""Live editing state for one open note.

A session keeps a local draft of the note and commits it back to the store
once edits have been quiet for the autosave delay. Content lives in one of
two buffers, chosen by the mode:

- ``RICH``: a markup document edited through ``DocumentCommand``.
- ``CODE``: a raw text buffer with a caret, tagged with a language.

Switching rich to code flattens the markup to its visible text. Switching
code to rich keeps the text verbatim (escaped, newlines as line breaks);
markup typed as code is never re-parsed.
"""
import asyncio
import logging
import math
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol, Tuple, Union

from magicnotes.config import EDITOR_CHAR_LIMIT, WORDS_PER_MINUTE, config
from magicnotes.editor.document import DocumentCommand, MarkupDocument
from magicnotes.editor.notices import Notifier
from magicnotes.exceptions import (
    ErrorCode,
    FolderNotFoundError,
    MagicNotesError,
    ValidationError,
)
from magicnotes.markup import text_to_markup, to_plain_text
from magicnotes.models.schema import (
    RICH_TEXT,
    Category,
    CodeLanguage,
    CodeNote,
    NoteBase,
    PaperStyle,
)
from magicnotes.observability import timed_operation
from magicnotes.storage.note_store import NoteStore

logger = logging.getLogger(__name__)


class EditorMode(str, Enum):
    RICH = "rich"
    CODE = "code"


_ALLOWED_TRANSITIONS: Dict[EditorMode, set] = {
    EditorMode.RICH: {EditorMode.CODE},
    # CODE -> CODE is a language change with the buffer untouched
    EditorMode.CODE: {EditorMode.RICH, EditorMode.CODE},
}


def can_transition(current: EditorMode, target: EditorMode) -> bool:
    return target in _ALLOWED_TRANSITIONS.get(current, set())


class SaveStatus(str, Enum):
    SAVED = "saved"
    PENDING = "pending"


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything with the ``loop.call_later`` contract."""

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle: ...


class LoopScheduler:
    """Schedules timers on the running asyncio event loop."""

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


LanguageChoice = Union[CodeLanguage, str, None]


class EditorSession:
    """Editing state for one note, with debounced persistence.

    Every draft change restarts a single quiescence timer; when it fires the
    whole draft is committed as one store update. ``done()`` commits at once
    and closes the session. Commit failures become notices and are never
    raised out of the timer.
    """

    def __init__(
        self,
        store: NoteStore,
        note: NoteBase,
        scheduler: Optional[Scheduler] = None,
        autosave_delay: Optional[float] = None,
        notifier: Optional[Notifier] = None,
        document: Optional[DocumentCommand] = None,
    ):
        self.store = store
        self.scheduler = scheduler or LoopScheduler()
        self.autosave_delay = autosave_delay if autosave_delay is not None else config.autosave_delay
        self.notifier = notifier or Notifier()
        self.document = document or MarkupDocument()
        self.epoch = 0
        self.closed = False
        self._timer: Optional[TimerHandle] = None
        self._load(note)

    def _load(self, note: NoteBase) -> None:
        self.note_id = note.id
        self.title = note.title
        self.category = note.category
        self.folder_id = note.folder_id
        self.paper_color = note.paper_color
        self.paper_style = note.paper_style
        self.created_at = note.created_at
        self.save_status = SaveStatus.SAVED
        if isinstance(note, CodeNote):
            self.mode = EditorMode.CODE
            self.code_language: Optional[CodeLanguage] = note.code_language
            self._code = note.content
            self._caret = (len(self._code), len(self._code))
            self.document.load("")
        else:
            self.mode = EditorMode.RICH
            self.code_language = None
            self._code = ""
            self._caret = (0, 0)
            self.document.load(note.content)

    # =========================================================================
    # Derived state
    # =========================================================================

    @property
    def is_code(self) -> bool:
        return self.mode == EditorMode.CODE

    @property
    def content(self) -> str:
        """The buffer as stored: markup in rich mode, raw text in code mode."""
        return self._code if self.is_code else self.document.markup()

    def plain_text(self) -> str:
        return self._code if self.is_code else self.document.text()

    @property
    def char_count(self) -> int:
        return len(self.plain_text())

    @property
    def word_count(self) -> int:
        return len(self.plain_text().split())

    @property
    def reading_time_minutes(self) -> int:
        return math.ceil(self.word_count / WORDS_PER_MINUTE)

    @property
    def char_limit(self) -> int:
        return EDITOR_CHAR_LIMIT

    @property
    def is_over_limit(self) -> bool:
        """Whether the counter should be shown in its warning state."""
        return self.char_count > EDITOR_CHAR_LIMIT

    @property
    def caret(self) -> Tuple[int, int]:
        return self._caret if self.is_code else self.document.selection

    @property
    def has_pending_save(self) -> bool:
        return self._timer is not None

    def stats(self) -> Dict[str, Any]:
        return {
            "chars": self.char_count,
            "words": self.word_count,
            "reading_time_minutes": self.reading_time_minutes,
            "char_limit": self.char_limit,
            "over_limit": self.is_over_limit,
            "save_status": self.save_status.value,
        }

    # =========================================================================
    # Autosave
    # =========================================================================

    def _ensure_open(self) -> None:
        if self.closed:
            raise ValidationError(
                f"Editor session for note '{self.note_id}' is closed",
                code=ErrorCode.VALIDATION_FAILED,
            )

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _touch(self) -> None:
        """Mark the draft dirty and restart the quiescence timer."""
        self.save_status = SaveStatus.PENDING
        self._cancel_timer()
        self._timer = self.scheduler.call_later(self.autosave_delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        if not self.closed:
            self.commit()

    def draft(self) -> Dict[str, Any]:
        """The fields a commit writes, as a store partial."""
        return {
            "title": self.title,
            "content": self.content,
            "category": self.category,
            "folder_id": self.folder_id,
            "paper_color": self.paper_color,
            "paper_style": self.paper_style,
            "code_language": self.code_language,
        }

    def commit(self) -> Optional[NoteBase]:
        """Write the whole draft to the store as one update.

        If the draft's folder was deleted meanwhile, the folder reference is
        cleared and the commit retried. Any other failure becomes a notice.

        Returns:
            The stored note, or None if the commit failed.
        """
        with timed_operation("editor_commit", note_id=self.note_id) as op:
            try:
                try:
                    saved = self.store.update(self.note_id, self.draft())
                except FolderNotFoundError:
                    logger.warning(
                        f"Folder {self.folder_id} vanished; saving note {self.note_id} unfiled"
                    )
                    self.folder_id = None
                    saved = self.store.update(self.note_id, self.draft())
            except MagicNotesError as e:
                logger.error(f"Failed to save note {self.note_id}: {e}")
                self.notifier.from_error(e)
                op["saved"] = False
                return None
            op["saved"] = True
        self.save_status = SaveStatus.SAVED
        return saved

    def done(self) -> Optional[NoteBase]:
        """Commit immediately, cancel the timer and close the session."""
        self._ensure_open()
        self._cancel_timer()
        saved = self.commit()
        self.close()
        return saved

    def close(self) -> None:
        """Discard the session without committing."""
        self._cancel_timer()
        if not self.closed:
            self.closed = True
            self.epoch += 1
            logger.debug(f"Closed editor session for note {self.note_id}")

    def reopen(self, note: NoteBase) -> None:
        """Load ``note`` into this session, invalidating in-flight work."""
        self._cancel_timer()
        self._load(note)
        self.closed = False
        self.epoch += 1

    def sync_placement(self, note: NoteBase) -> None:
        """Adopt folder and category from a note moved outside this session.

        Other draft fields, the timer and the epoch are untouched, so a
        pending commit or an in-flight AI result still lands.
        """
        if note.id != self.note_id:
            raise ValueError(f"Session holds note {self.note_id}, not {note.id}")
        self.folder_id = note.folder_id
        self.category = note.category

    # =========================================================================
    # Draft fields
    # =========================================================================

    def set_title(self, title: str) -> None:
        self._ensure_open()
        self.title = title
        self._touch()

    def set_category(self, category: Union[Category, str]) -> None:
        self._ensure_open()
        try:
            self.category = Category(category)
        except ValueError as e:
            raise ValidationError(f"Unknown category: {category}", field="category", value=category) from e
        self._touch()

    def set_folder(self, folder_id: Optional[str]) -> None:
        self._ensure_open()
        if folder_id is not None and self.store.get_folder(folder_id) is None:
            raise ValidationError(
                f"Folder '{folder_id}' does not exist",
                field="folder_id",
                value=folder_id,
                code=ErrorCode.FOLDER_NOT_FOUND,
            )
        self.folder_id = folder_id
        self._touch()

    def set_paper_color(self, color: str) -> None:
        self._ensure_open()
        self.paper_color = color
        self._touch()

    def set_paper_style(self, style: Union[PaperStyle, str]) -> None:
        self._ensure_open()
        try:
            self.paper_style = PaperStyle(style)
        except ValueError as e:
            raise ValidationError(f"Unknown paper style: {style}", field="paper_style", value=style) from e
        self._touch()

    def set_code_language(self, language: LanguageChoice) -> None:
        """Switch mode or language. ``None`` or ``"rich"`` returns to rich text."""
        self._ensure_open()
        if language is None or language == RICH_TEXT:
            target, new_language = EditorMode.RICH, None
        else:
            try:
                new_language = CodeLanguage(language)
            except ValueError as e:
                raise ValidationError(
                    f"Unknown code language: {language}", field="code_language", value=language
                ) from e
            target = EditorMode.CODE

        if target == self.mode and new_language == self.code_language:
            return
        if not can_transition(self.mode, target):
            return

        if self.mode == EditorMode.RICH and target == EditorMode.CODE:
            self._code = self.document.text()
            self._caret = (len(self._code), len(self._code))
            self.document.load("")
        elif self.mode == EditorMode.CODE and target == EditorMode.RICH:
            self.document.load(text_to_markup(self._code))
            self._code = ""
            self._caret = (0, 0)

        logger.debug(f"Note {self.note_id}: {self.mode.value} -> {target.value} ({new_language})")
        self.mode = target
        self.code_language = new_language
        self._touch()

    def set_content(self, content: str) -> None:
        """Replace the buffer with what the user typed (markup or raw code)."""
        self.replace_content(content)

    # =========================================================================
    # Insertion
    # =========================================================================

    def set_caret(self, start: int, end: Optional[int] = None) -> None:
        end = start if end is None else end
        if self.is_code:
            size = len(self._code)
            start = max(0, min(start, size))
            end = max(0, min(end, size))
            self._caret = (min(start, end), max(start, end))
        else:
            self.document.select(start, end)

    def insert_at_cursor(self, text: str, markup: bool = False) -> None:
        """Insert external text at the caret, replacing any selection.

        In rich mode ``markup=True`` inserts a markup fragment; otherwise the
        text is inserted literally. In code mode the text is spliced into the
        buffer (markup is flattened to its text first) and the caret moves
        after it.
        """
        self._ensure_open()
        if not text:
            return
        if self.is_code:
            if markup:
                text = to_plain_text(text)
            start, end = self._caret
            self._code = self._code[:start] + text + self._code[end:]
            caret = start + len(text)
            self._caret = (caret, caret)
        elif markup:
            self.document.insert_markup(text)
        else:
            self.document.insert_text(text)
        self._touch()

    def append_code(self, text: str) -> None:
        """Append to the end of the code buffer and move the caret there."""
        self._ensure_open()
        if not self.is_code:
            raise ValidationError("append_code requires code mode", field="mode")
        self._code += text
        self._caret = (len(self._code), len(self._code))
        self._touch()

    def replace_content(self, content: str) -> None:
        """Replace the whole buffer. Rich mode expects markup."""
        self._ensure_open()
        if self.is_code:
            self._code = content
            self._caret = (len(content), len(content))
        else:
            self.document.load(content)
        self._touch()

    def toggle_style(self, style: str) -> None:
        """Toggle an inline style on the selection. Ignored in code mode."""
        self._ensure_open()
        if self.is_code:
            return
        try:
            self.document.toggle_style(style)
        except ValueError as e:
            raise ValidationError(str(e), field="style", value=style) from e
        self._touch()

    def set_foreground(self, color: str) -> None:
        """Colour the selection. Ignored in code mode."""
        self._ensure_open()
        if self.is_code:
            return
        self.document.set_foreground(color)
        self._touch()
