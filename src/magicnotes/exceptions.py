"""Custom exceptions for MagicNotes.

Provides a structured exception hierarchy with error codes and
machine-readable error information. Every error is handled at the
component boundary that detects it and turned into a user-visible message.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_VALIDATION_FAILED = 1002

    # Folder errors (2xxx)
    FOLDER_NOT_FOUND = 2001
    FOLDER_NAME_REQUIRED = 2002

    # Vault errors (3xxx)
    PASSWORD_TOO_SHORT = 3001
    WRONG_PASSWORD = 3002
    VAULT_NOT_REQUESTED = 3003

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002

    # Confirmation gates (45xx)
    CONFIRMATION_REQUIRED = 4501

    # AI and attachment errors (5xxx)
    AI_SERVICE_FAILED = 5001
    AI_NOT_CONFIGURED = 5002
    ATTACHMENT_TOO_LARGE = 5101
    ATTACHMENT_UNSUPPORTED = 5102

    # Environment capability errors (6xxx)
    CAPABILITY_UNAVAILABLE = 6001

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001


class MagicNotesError(Exception):
    """Base exception for all MagicNotes errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class ValidationError(MagicNotesError):
    """Raised when input is rejected before any state change."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class NoteNotFoundError(MagicNotesError):
    """Raised when a note cannot be found."""

    def __init__(self, note_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Note with ID '{note_id}' not found",
            code=ErrorCode.NOTE_NOT_FOUND,
            details={"note_id": note_id},
        )
        self.note_id = note_id


class FolderNotFoundError(MagicNotesError):
    """Raised when a folder reference does not resolve."""

    def __init__(self, folder_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Folder with ID '{folder_id}' not found",
            code=ErrorCode.FOLDER_NOT_FOUND,
            details={"folder_id": folder_id},
        )
        self.folder_id = folder_id


class ConfirmationRequired(MagicNotesError):
    """Raised when a destructive operation is attempted without confirmation.

    This is a gate rather than a failure: the caller asks the user and
    repeats the call with confirmation.
    """

    def __init__(self, operation: str, message: Optional[str] = None, count: int = 1):
        super().__init__(
            message or f"'{operation}' requires confirmation",
            code=ErrorCode.CONFIRMATION_REQUIRED,
            details={"operation": operation, "count": count},
        )
        self.operation = operation
        self.count = count


class WrongPassword(MagicNotesError):
    """Raised when the private-area password does not match."""

    def __init__(self, message: str = "Wrong password"):
        super().__init__(message, code=ErrorCode.WRONG_PASSWORD)


class StorageError(MagicNotesError):
    """Raised for storage/persistence errors."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if key:
            details["key"] = key
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.key = key
        self.original_error = original_error


class ExternalServiceError(MagicNotesError):
    """Raised when the AI service fails. Always non-fatal."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.AI_SERVICE_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.original_error = original_error


class UnsupportedCapability(MagicNotesError):
    """Raised when speech capture or geolocation is unavailable."""

    def __init__(self, capability: str, message: Optional[str] = None):
        super().__init__(
            message or f"{capability} is not available in this environment",
            code=ErrorCode.CAPABILITY_UNAVAILABLE,
            details={"capability": capability},
        )
        self.capability = capability


class AttachmentTooLarge(MagicNotesError):
    """Raised when an attachment exceeds the size ceiling."""

    def __init__(self, name: str, size: int, limit: int):
        super().__init__(
            f"Attachment '{name}' is {size} bytes; the maximum is {limit} bytes",
            code=ErrorCode.ATTACHMENT_TOO_LARGE,
            details={"name": name, "size": size, "limit": limit},
        )
        self.name = name
        self.size = size
        self.limit = limit
