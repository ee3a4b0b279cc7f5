"""Data models for MagicNotes.

A note is either a ``RichNote`` (content is markup) or a ``CodeNote``
(content is raw source text tagged with a language). The two never mix:
the variant decides how ``content`` is interpreted.
"""

import datetime
import uuid
from datetime import timezone
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from magicnotes.markup import strip_markup, to_plain_text

DEFAULT_PAPER_COLOR = "#ffffff"
RICH_TEXT = "rich"  # language selector meaning "back to rich text"


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def new_id() -> str:
    """Generate a unique note/folder ID."""
    return str(uuid.uuid4())


def to_epoch_ms(value: datetime.datetime) -> int:
    """Convert a datetime to epoch milliseconds (the persisted format)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(round(value.timestamp() * 1000))


def from_epoch_ms(value: Union[int, float]) -> datetime.datetime:
    """Convert epoch milliseconds to a timezone-aware UTC datetime."""
    return datetime.datetime.fromtimestamp(value / 1000, tz=timezone.utc)


class Category(str, Enum):
    """Categories a note can be filed under."""

    PERSONAL = "personal"
    WORK = "work"
    IDEAS = "ideas"
    JOURNAL = "journal"
    SECRET = "secret"  # members of the private area


class PaperStyle(str, Enum):
    """Background style of the editor page."""

    PLAIN = "plain"
    LINED = "lined"
    GRID = "grid"
    DOTTED = "dotted"


class CodeLanguage(str, Enum):
    """Languages available for code notes."""

    HTML = "html"
    CSS = "css"
    JS = "js"
    TS = "ts"
    PHP = "php"
    PY = "py"
    JAVA = "java"
    CPP = "cpp"
    SQL = "sql"
    JSON = "json"

    @property
    def label(self) -> str:
        return _LANGUAGE_LABELS[self]

    @property
    def extension(self) -> str:
        return f".{self.value}"


_LANGUAGE_LABELS = {
    CodeLanguage.HTML: "HTML",
    CodeLanguage.CSS: "CSS",
    CodeLanguage.JS: "JavaScript",
    CodeLanguage.TS: "TypeScript",
    CodeLanguage.PHP: "PHP",
    CodeLanguage.PY: "Python",
    CodeLanguage.JAVA: "Java",
    CodeLanguage.CPP: "C++",
    CodeLanguage.SQL: "SQL",
    CodeLanguage.JSON: "JSON",
}


_MODEL_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    validate_assignment=True,
    extra="forbid",
)


def _coerce_timestamp(value: Any) -> Any:
    # Persisted records carry epoch milliseconds
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return from_epoch_ms(value)
    return value


class Folder(BaseModel):
    """A user-defined folder grouping notes."""

    id: str = Field(default_factory=new_id, description="Unique ID of the folder")
    name: str = Field(..., description="Display name")
    description: str = Field(default="", description="Optional description")
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the folder was created (UTC)"
    )

    model_config = _MODEL_CONFIG

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate that the name is not blank."""
        if not v.strip():
            raise ValueError("Folder name cannot be empty")
        return v

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, v: Any) -> Any:
        return _coerce_timestamp(v)

    @field_serializer("created_at", when_used="json")
    def _dump_created_at(self, v: datetime.datetime) -> int:
        return to_epoch_ms(v)


class NoteBase(BaseModel):
    """Fields shared by both note variants."""

    id: str = Field(default_factory=new_id, description="Unique ID of the note")
    title: str = Field(default="", description="Title of the note")
    content: str = Field(default="", description="Markup or raw code, per variant")
    category: Category = Field(default=Category.PERSONAL)
    folder_id: Optional[str] = Field(default=None, description="Owning folder")
    created_at: datetime.datetime = Field(default_factory=utc_now)
    updated_at: datetime.datetime = Field(default_factory=utc_now)
    is_favorite: bool = Field(default=False)
    paper_color: str = Field(default=DEFAULT_PAPER_COLOR)
    paper_style: PaperStyle = Field(default=PaperStyle.LINED)

    model_config = _MODEL_CONFIG

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _parse_timestamps(cls, v: Any) -> Any:
        return _coerce_timestamp(v)

    @field_serializer("created_at", "updated_at", when_used="json")
    def _dump_timestamps(self, v: datetime.datetime) -> int:
        return to_epoch_ms(v)

    @property
    def is_code(self) -> bool:
        return isinstance(self, CodeNote)

    @property
    def is_secret(self) -> bool:
        return self.category == Category.SECRET

    def plain_text(self) -> str:
        """Visible text of the note. Raw content unless a variant says otherwise."""
        return self.content

    def search_text(self) -> str:
        """Text that search queries are matched against, besides the title."""
        return self.content

    def display_title(self) -> str:
        """Title as shown in lists."""
        return self.title or "Untitled"

    def preview(self, limit: int = 200) -> str:
        text = " ".join(self.plain_text().split())
        if len(text) <= limit:
            return text
        return text[:limit].rstrip() + "..."


class RichNote(NoteBase):
    """A note whose content is rich-text markup."""

    kind: Literal["rich"] = "rich"

    def plain_text(self) -> str:
        return to_plain_text(self.content)

    def search_text(self) -> str:
        return strip_markup(self.content)


class CodeNote(NoteBase):
    """A note whose content is raw source text."""

    kind: Literal["code"] = "code"
    code_language: CodeLanguage

    def display_title(self) -> str:
        if not self.title:
            return "Untitled"
        if self.title.endswith(self.code_language.extension):
            return self.title
        return self.title + self.code_language.extension


Note = Annotated[Union[RichNote, CodeNote], Field(discriminator="kind")]

_note_adapter: TypeAdapter = TypeAdapter(Note)


def note_from_record(record: Dict[str, Any]) -> Union[RichNote, CodeNote]:
    """Build a note from its persisted record.

    Records carry no variant tag; a present ``codeLanguage`` marks a code note.
    """
    data = dict(record)
    data.pop("kind", None)
    data["kind"] = "code" if data.get("codeLanguage") else "rich"
    if data["kind"] == "rich":
        data.pop("codeLanguage", None)
    return _note_adapter.validate_python(data)


def note_to_record(note: NoteBase) -> Dict[str, Any]:
    """Serialize a note to its persisted record (camelCase, epoch ms)."""
    return note.model_dump(mode="json", by_alias=True, exclude={"kind"}, exclude_none=True)


def with_code_language(
    note: NoteBase, code_language: Optional[CodeLanguage], content: Optional[str] = None
) -> Union[RichNote, CodeNote]:
    """Return a copy of ``note`` as the variant selected by ``code_language``.

    ``None`` selects a rich note. ``content`` replaces the content when given;
    callers are responsible for converting it between markup and raw text.
    """
    data = note.model_dump(exclude={"kind", "code_language"})
    if content is not None:
        data["content"] = content
    if code_language is None:
        return RichNote(**data)
    return CodeNote(code_language=code_language, **data)
