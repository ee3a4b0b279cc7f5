"""Rich-text document primitive used by the editor in rich mode.

Positions are offsets into the markup string. A selection is the half-open
range ``[start, end)``; when ``start == end`` it is a plain caret.
"""
import html
import logging
from abc import ABC, abstractmethod
from typing import Tuple

from magicnotes.markup import to_plain_text

logger = logging.getLogger(__name__)

# Inline styles that toggle_style understands, mapped to their tag
STYLE_TAGS = {
    "bold": "b",
    "italic": "i",
    "underline": "u",
    "strikethrough": "s",
}


class DocumentCommand(ABC):
    """Editing commands a rich-text host must provide."""

    @abstractmethod
    def load(self, markup: str) -> None:
        """Replace the whole document and put the caret at the end."""

    @abstractmethod
    def insert_text(self, text: str) -> None:
        """Replace the selection with literal text."""

    @abstractmethod
    def insert_markup(self, markup: str) -> None:
        """Replace the selection with a markup fragment."""

    @abstractmethod
    def set_foreground(self, color: str) -> None:
        """Colour the selected range."""

    @abstractmethod
    def toggle_style(self, style: str) -> None:
        """Apply or remove an inline style on the selected range."""

    @abstractmethod
    def select(self, start: int, end: int) -> None:
        """Move the caret or selection."""

    @property
    @abstractmethod
    def selection(self) -> Tuple[int, int]:
        """Current ``(start, end)`` of the selection."""

    @abstractmethod
    def text(self) -> str:
        """Visible text of the document."""

    @abstractmethod
    def markup(self) -> str:
        """Serialized markup of the document."""


class MarkupDocument(DocumentCommand):
    """A document held as a single markup string."""

    def __init__(self, markup: str = ""):
        self._markup = ""
        self._start = 0
        self._end = 0
        self.load(markup)

    def load(self, markup: str) -> None:
        self._markup = markup or ""
        self._start = self._end = len(self._markup)

    @property
    def selection(self) -> Tuple[int, int]:
        return self._start, self._end

    def select(self, start: int, end: int) -> None:
        size = len(self._markup)
        start = max(0, min(start, size))
        end = max(0, min(end, size))
        self._start, self._end = min(start, end), max(start, end)

    def _replace_selection(self, fragment: str) -> None:
        self._markup = self._markup[: self._start] + fragment + self._markup[self._end :]
        self._start = self._end = self._start + len(fragment)

    def insert_text(self, text: str) -> None:
        self._replace_selection(html.escape(text, quote=False))

    def insert_markup(self, markup: str) -> None:
        self._replace_selection(markup)

    def _wrap_selection(self, open_tag: str, close_tag: str) -> None:
        if self._start == self._end:
            return
        inner = self._markup[self._start : self._end]
        wrapped = f"{open_tag}{inner}{close_tag}"
        self._markup = self._markup[: self._start] + wrapped + self._markup[self._end :]
        self._start += len(open_tag)
        self._end = self._start + len(inner)

    def set_foreground(self, color: str) -> None:
        safe = html.escape(color, quote=True)
        self._wrap_selection(f'<span style="color: {safe}">', "</span>")

    def toggle_style(self, style: str) -> None:
        tag = STYLE_TAGS.get(style)
        if tag is None:
            raise ValueError(f"Unknown style: {style}")
        open_tag, close_tag = f"<{tag}>", f"</{tag}>"
        before = self._markup[: self._start]
        after = self._markup[self._end :]
        if before.endswith(open_tag) and after.startswith(close_tag):
            inner = self._markup[self._start : self._end]
            self._markup = before[: -len(open_tag)] + inner + after[len(close_tag) :]
            self._start -= len(open_tag)
            self._end = self._start + len(inner)
        else:
            self._wrap_selection(open_tag, close_tag)

    def text(self) -> str:
        return to_plain_text(self._markup)

    def markup(self) -> str:
        return self._markup
