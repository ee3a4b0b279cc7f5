"""One-file attachments for custom AI requests.

Images travel as base64 data next to the prompt. Text and source files are
decoded and folded into the prompt text. The size ceiling is checked before
anything is read or decoded.
"""
import asyncio
import base64
import logging
import mimetypes
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from magicnotes.config import ATTACHMENT_MAX_BYTES
from magicnotes.exceptions import AttachmentTooLarge, ErrorCode, ValidationError

logger = logging.getLogger(__name__)

# Files treated as text even when no MIME type is known for them
TEXT_EXTENSIONS = frozenset(
    {
        ".txt", ".md", ".csv", ".log", ".json", ".xml", ".yaml", ".yml",
        ".html", ".css", ".js", ".jsx", ".ts", ".tsx", ".php", ".py",
        ".java", ".c", ".cpp", ".h", ".hpp", ".cs", ".go", ".rs", ".rb",
        ".sql", ".sh", ".ini", ".toml",
    }
)

TEXT_MIME_TYPES = frozenset(
    {"application/json", "application/xml", "application/javascript", "application/sql"}
)


class AttachmentKind(str, Enum):
    IMAGE = "image"
    TEXT = "text"


def classify(name: str, mime_type: Optional[str]) -> AttachmentKind:
    """Decide how an attachment is sent, by MIME type then by extension.

    Raises:
        ValidationError: If the file is neither an image nor text.
    """
    mime_type = mime_type or mimetypes.guess_type(name)[0] or ""
    if mime_type.startswith("image/"):
        return AttachmentKind.IMAGE
    if mime_type.startswith("text/") or mime_type in TEXT_MIME_TYPES:
        return AttachmentKind.TEXT
    if Path(name).suffix.lower() in TEXT_EXTENSIONS:
        return AttachmentKind.TEXT
    raise ValidationError(
        f"Unsupported attachment type for '{name}'",
        field="attachment",
        value=mime_type or name,
        code=ErrorCode.ATTACHMENT_UNSUPPORTED,
    )


@dataclass(frozen=True)
class Attachment:
    """A decoded attachment ready to be sent with a prompt."""

    name: str
    kind: AttachmentKind
    mime_type: str
    text: Optional[str] = None
    base64_data: Optional[str] = None

    @property
    def is_image(self) -> bool:
        return self.kind == AttachmentKind.IMAGE

    @property
    def data_url(self) -> str:
        if not self.is_image:
            raise ValueError("Only image attachments have a data URL")
        return f"data:{self.mime_type};base64,{self.base64_data}"

    def prompt_section(self) -> str:
        """The text block a text attachment contributes to the prompt."""
        return f"[File: {self.name}]\n{self.text or ''}"

    @classmethod
    def from_bytes(
        cls,
        name: str,
        data: bytes,
        mime_type: Optional[str] = None,
        limit: int = ATTACHMENT_MAX_BYTES,
    ) -> "Attachment":
        """Build an attachment from raw file content.

        Raises:
            AttachmentTooLarge: If ``data`` exceeds ``limit`` bytes.
            ValidationError: If the type is not supported.
        """
        if len(data) > limit:
            raise AttachmentTooLarge(name, len(data), limit)
        kind = classify(name, mime_type)
        mime_type = mime_type or mimetypes.guess_type(name)[0] or "text/plain"
        if kind == AttachmentKind.IMAGE:
            return cls(
                name=name,
                kind=kind,
                mime_type=mime_type,
                base64_data=base64.b64encode(data).decode("ascii"),
            )
        return cls(name=name, kind=kind, mime_type=mime_type, text=data.decode("utf-8", errors="replace"))

    @classmethod
    def from_path(
        cls,
        path: Union[str, Path],
        mime_type: Optional[str] = None,
        limit: int = ATTACHMENT_MAX_BYTES,
    ) -> "Attachment":
        """Read an attachment from disk. The size is checked before reading."""
        path = Path(path)
        size = path.stat().st_size
        if size > limit:
            raise AttachmentTooLarge(path.name, size, limit)
        classify(path.name, mime_type)
        attachment = cls.from_bytes(path.name, path.read_bytes(), mime_type=mime_type, limit=limit)
        logger.debug(f"Loaded {attachment.kind.value} attachment {path.name} ({size} bytes)")
        return attachment


async def read_attachment(
    path: Union[str, Path], mime_type: Optional[str] = None
) -> Attachment:
    """Load an attachment off the event loop thread."""
    return await asyncio.to_thread(Attachment.from_path, path, mime_type)
