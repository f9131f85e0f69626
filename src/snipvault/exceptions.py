"""Custom exceptions for the snippet vault.

Provides a structured exception hierarchy with error codes and
machine-readable error information so callers can tell "not found"
apart from "invalid input" or "disk trouble".
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Snippet errors (1xxx)
    SNIPPET_NOT_FOUND = 1001
    SNIPPET_VALIDATION_FAILED = 1002
    SNIPPET_ID_REQUIRED = 1003
    SNIPPET_TITLE_REQUIRED = 1004
    SNIPPET_FILE_MISSING = 1005

    # Record (on-disk format) errors (2xxx)
    RECORD_MALFORMED = 2001
    RECORD_UNTERMINATED = 2002
    RECORD_METADATA_INVALID = 2003

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003
    STORAGE_LIST_FAILED = 4004

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001


class SnipVaultError(Exception):
    """Base exception for all snippet vault errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
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
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class SnippetNotFoundError(SnipVaultError):
    """Raised when a snippet id is not indexed or its file is gone."""

    def __init__(
        self,
        snippet_id: Optional[str] = None,
        message: Optional[str] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.SNIPPET_NOT_FOUND
    ):
        details: Dict[str, Any] = {}
        if snippet_id is not None:
            details["snippet_id"] = snippet_id
        if path:
            details["path_hint"] = _path_hint(path)

        if message is None:
            if snippet_id is not None:
                message = f"Snippet with ID '{snippet_id}' not found"
            else:
                message = "Snippet file not found"

        super().__init__(message, code=code, details=details)
        self.snippet_id = snippet_id
        self.path = path


class ValidationError(SnipVaultError):
    """Raised when a snippet is missing a required field."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.SNIPPET_VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class RecordError(SnipVaultError):
    """Base class for failures decoding an on-disk snippet record."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.RECORD_MALFORMED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.original_error = original_error


class MalformedRecordError(RecordError):
    """Raised when a record does not open with the metadata start marker."""

    def __init__(self, message: str = "Record does not start with a metadata block"):
        super().__init__(message, code=ErrorCode.RECORD_MALFORMED)


class UnterminatedRecordError(RecordError):
    """Raised when the metadata block is never closed."""

    def __init__(self, message: str = "Metadata block is not terminated"):
        super().__init__(message, code=ErrorCode.RECORD_UNTERMINATED)


class MetadataParseError(RecordError):
    """Raised when the metadata block is not well-formed or mistyped."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message,
            code=ErrorCode.RECORD_METADATA_INVALID,
            original_error=original_error,
        )
        self.field = field
        if field:
            self.details["field"] = field


class StorageError(SnipVaultError):
    """Raised for storage/persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if path:
            # Don't expose full paths in error messages
            details["path_hint"] = _path_hint(path)
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class ConfigError(SnipVaultError):
    """Raised when the configuration file cannot be used."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=ErrorCode.CONFIG_INVALID, details=details)
        self.config_key = config_key
        self.original_error = original_error


def _path_hint(path: str) -> str:
    path = str(path).replace("\\", "/")
    return path.rsplit("/", 1)[-1]
