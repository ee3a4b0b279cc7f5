"""Non-fatal, user-visible messages raised by the editor and AI layers."""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from magicnotes.exceptions import MagicNotesError
from magicnotes.models.schema import utc_now

logger = logging.getLogger(__name__)


class NoticeLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


_LOG_LEVELS = {
    NoticeLevel.INFO: logging.INFO,
    NoticeLevel.WARNING: logging.WARNING,
    NoticeLevel.ERROR: logging.ERROR,
}


@dataclass
class Notice:
    message: str
    level: NoticeLevel = NoticeLevel.INFO
    code: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)

    def __str__(self) -> str:
        return self.message


class Notifier:
    """Collects notices until the caller drains them."""

    def __init__(self):
        self._pending: List[Notice] = []

    def notify(
        self,
        message: str,
        level: NoticeLevel = NoticeLevel.INFO,
        code: Optional[str] = None,
    ) -> Notice:
        notice = Notice(message=message, level=level, code=code)
        self._pending.append(notice)
        logger.log(_LOG_LEVELS[level], f"Notice: {message}")
        return notice

    def from_error(self, error: MagicNotesError, level: NoticeLevel = NoticeLevel.WARNING) -> Notice:
        """Turn a handled error into a notice carrying its code name."""
        return self.notify(error.message, level=level, code=error.code.name)

    @property
    def pending(self) -> List[Notice]:
        return list(self._pending)

    def drain(self) -> List[Notice]:
        """Return and forget every pending notice."""
        notices, self._pending = self._pending, []
        return notices
