"""Conversions between rich-text markup and plain text."""

import html

from bs4 import BeautifulSoup

# Elements that start a new visual line when a rich note is read as text
BLOCK_TAGS = (
    "p", "div", "li", "h1", "h2", "h3", "h4", "h5", "h6",
    "pre", "blockquote", "tr", "table", "ul", "ol",
)


def strip_markup(markup: str) -> str:
    """Return the text content of ``markup`` with every tag removed.

    Tags are dropped without introducing separators, so
    ``"<b>foo</b>bar"`` becomes ``"foobar"``. Used for search matching.
    """
    if not markup:
        return ""
    return BeautifulSoup(markup, "html.parser").get_text()


def to_plain_text(markup: str) -> str:
    """Return the visible text of ``markup`` with line structure kept.

    Line breaks and block elements become newlines. This is the projection
    used for word counts, AI context and switching a note to code mode.
    """
    if not markup:
        return ""
    soup = BeautifulSoup(markup, "html.parser")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for block in soup.find_all(BLOCK_TAGS):
        if block.next_sibling is not None:
            block.insert_after("\n")
    return soup.get_text()


def text_to_markup(text: str) -> str:
    """Render raw text as markup that displays exactly that text.

    Nothing in ``text`` is interpreted as a tag: ``<`` and ``&`` are escaped
    and newlines become ``<br>``.
    """
    if not text:
        return ""
    return html.escape(text, quote=False).replace("\n", "<br>")
