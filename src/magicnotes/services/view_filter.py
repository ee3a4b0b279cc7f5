"""Derives the visible, sorted note list for the active view.

Filtering runs in a fixed order:

1. Isolation: the private view shows only secret notes, every other view
   hides them. This is checked first and also holds while searching.
2. Scope (empty query only): a folder view keeps that folder's notes, a
   category view keeps that category, "all" keeps everything.
3. Search (non-empty query): case-insensitive substring match on the title
   or the markup-stripped content. Scope is skipped, so search covers the
   whole isolation set.
4. Sort by ``updated_at``, newest first.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from magicnotes.models.schema import Category, NoteBase

logger = logging.getLogger(__name__)


class ViewKind(str, Enum):
    """What a view selector points at."""

    ALL = "all"
    CATEGORY = "category"
    FOLDER = "folder"
    PRIVATE = "private"


@dataclass(frozen=True)
class ViewSelector:
    """The current filter target.

    Use the constructors rather than building instances directly.
    """

    kind: ViewKind
    category: Optional[Category] = None
    folder_id: Optional[str] = None

    @classmethod
    def all(cls) -> "ViewSelector":
        return cls(ViewKind.ALL)

    @classmethod
    def of_category(cls, category: Category) -> "ViewSelector":
        if category == Category.SECRET:
            # The private area is only reachable through the vault
            return cls.private()
        return cls(ViewKind.CATEGORY, category=Category(category))

    @classmethod
    def of_folder(cls, folder_id: str) -> "ViewSelector":
        return cls(ViewKind.FOLDER, folder_id=folder_id)

    @classmethod
    def private(cls) -> "ViewSelector":
        return cls(ViewKind.PRIVATE)

    @classmethod
    def parse(cls, text: str) -> "ViewSelector":
        """Parse the ``str()`` form: ``all``, ``private``, ``category:<c>``, ``folder:<id>``.

        Raises:
            ValueError: If the text names no valid view.
        """
        text = (text or "all").strip()
        kind, _, arg = text.partition(":")
        kind = kind.lower()
        if kind == ViewKind.ALL.value and not arg:
            return cls.all()
        if kind == ViewKind.PRIVATE.value and not arg:
            return cls.private()
        if kind == ViewKind.CATEGORY.value and arg:
            return cls.of_category(Category(arg.lower()))
        if kind == ViewKind.FOLDER.value and arg:
            return cls.of_folder(arg)
        raise ValueError(f"Unknown view: {text}")

    @property
    def is_private(self) -> bool:
        return self.kind == ViewKind.PRIVATE

    def __str__(self) -> str:
        if self.kind == ViewKind.CATEGORY:
            return f"category:{self.category.value}"
        if self.kind == ViewKind.FOLDER:
            return f"folder:{self.folder_id}"
        return self.kind.value


def _isolated(note: NoteBase, view: ViewSelector) -> bool:
    if view.is_private:
        return note.is_secret
    return not note.is_secret


def _in_scope(note: NoteBase, view: ViewSelector) -> bool:
    if view.kind == ViewKind.FOLDER:
        return note.folder_id == view.folder_id
    if view.kind == ViewKind.CATEGORY:
        return note.category == view.category
    return True


def _matches(note: NoteBase, query: str) -> bool:
    return query in note.title.lower() or query in note.search_text().lower()


def filter_notes(
    notes: Iterable[NoteBase],
    view: ViewSelector,
    query: str = "",
    vault_unlocked: bool = False,
) -> List[NoteBase]:
    """Return the notes visible in ``view`` for ``query``, newest first.

    Args:
        notes: All notes in the store.
        view: The active view selector.
        query: Search text; blank means no search.
        vault_unlocked: Whether the private area is unlocked. A locked
            private view shows nothing.
    """
    if view.is_private and not vault_unlocked:
        return []

    needle = (query or "").strip().lower()
    visible = [n for n in notes if _isolated(n, view)]
    if needle:
        visible = [n for n in visible if _matches(n, needle)]
    else:
        visible = [n for n in visible if _in_scope(n, view)]

    visible.sort(key=lambda n: n.updated_at, reverse=True)
    logger.debug(f"View {view} query={needle!r}: {len(visible)} notes")
    return visible
