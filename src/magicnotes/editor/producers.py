"""Adapters that feed text from external sources into an editor session.

Speech capture and geolocation are provided by the host environment. Each
producer is a small callable contract; a producer that cannot run raises
``UnsupportedCapability``, which these helpers report as a notice instead of
an error.
"""
import datetime
import html
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional

from magicnotes.editor.notices import Notice, NoticeLevel
from magicnotes.editor.session import EditorSession
from magicnotes.exceptions import UnsupportedCapability

logger = logging.getLogger(__name__)

MAPS_URL = "https://www.google.com/maps?q={lat},{lng}"


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float


# Yields one transcript per completed utterance
SpeechSource = Callable[[], AsyncIterator[str]]
LocationSource = Callable[[], Awaitable[Position]]


def location_markup(position: Position) -> str:
    """Render a position as an inline map link block."""
    link = MAPS_URL.format(lat=position.latitude, lng=position.longitude)
    label = f"{position.latitude:.5f}, {position.longitude:.5f}"
    return (
        '<br/><div style="display:inline-flex; padding:4px 8px; background:#eff6ff; '
        'border-radius:4px; color:#2563eb;">'
        f'<a href="{html.escape(link)}" target="_blank">📍 My location: {label}</a>'
        "</div>&nbsp;"
    )


def location_text(position: Position) -> str:
    return f"Lat: {position.latitude}, Long: {position.longitude}"


def _unsupported(session: EditorSession, error: UnsupportedCapability) -> Notice:
    logger.info(f"Producer unavailable: {error.capability}")
    return session.notifier.from_error(error, level=NoticeLevel.INFO)


async def insert_transcripts(session: EditorSession, source: Optional[SpeechSource]) -> int:
    """Insert each utterance from ``source`` followed by a space.

    Returns:
        Number of utterances inserted.
    """
    count = 0
    try:
        if source is None:
            raise UnsupportedCapability("Speech recognition")
        async for transcript in source():
            # A session closed mid-capture stops taking text
            if session.closed:
                break
            session.insert_at_cursor(transcript + " ")
            count += 1
    except UnsupportedCapability as e:
        _unsupported(session, e)
    return count


async def insert_location(session: EditorSession, source: Optional[LocationSource]) -> bool:
    """Insert the current position: a map link in rich mode, raw text in code mode."""
    epoch = session.epoch
    try:
        if source is None:
            raise UnsupportedCapability("Geolocation")
        position = await source()
    except UnsupportedCapability as e:
        _unsupported(session, e)
        return False
    if session.epoch != epoch or session.closed:
        return False
    if session.is_code:
        session.insert_at_cursor(location_text(position))
    else:
        session.insert_at_cursor(location_markup(position), markup=True)
    return True


def insert_date(session: EditorSession, now: Optional[datetime.datetime] = None) -> str:
    """Insert the current local date and time as text."""
    now = now or datetime.datetime.now()
    text = now.strftime("%A, %d %B %Y %H:%M")
    session.insert_at_cursor(text)
    return text


def insert_symbol(session: EditorSession, symbol: str) -> None:
    session.insert_at_cursor(symbol)
