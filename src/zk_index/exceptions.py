"""Custom exceptions for the note index.

Provides a structured exception hierarchy with error codes and
machine-readable error information for better error handling.
"""
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_VALIDATION_FAILED = 1002
    NOTE_DUPLICATE_PATH = 1003

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003
    FTS_CORRUPTED = 4007

    # Query errors (5xxx)
    QUERY_FAILED = 5001
    QUERY_INVALID = 5002
    QUERY_INVALID_TAG_GROUP = 5003
    QUERY_INVALID_MATCH = 5004
    QUERY_INVALID_LINK_FILTER = 5005
    MENTION_NOT_FOUND = 5101

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001


class ZkIndexError(Exception):
    """Base exception for all index errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.QUERY_FAILED,
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


class NoteNotFoundError(ZkIndexError):
    """Raised when updating or removing a note that is not indexed."""

    def __init__(self, path: str, message: Optional[str] = None):
        super().__init__(
            message or f"Note at '{path}' not found in the index",
            code=ErrorCode.NOTE_NOT_FOUND,
            details={"path": path}
        )
        self.path = path


class DuplicatePathError(ZkIndexError):
    """Raised when adding a note whose path is already indexed."""

    def __init__(self, path: str, existing_id: Optional[int] = None):
        details: Dict[str, Any] = {"path": path}
        if existing_id is not None:
            details["existing_id"] = existing_id
        super().__init__(
            f"A note is already indexed at '{path}'",
            code=ErrorCode.NOTE_DUPLICATE_PATH,
            details=details
        )
        self.path = path
        self.existing_id = existing_id


class InvalidQueryError(ZkIndexError):
    """Raised when filter criteria cannot be compiled or executed."""

    def __init__(
        self,
        message: str,
        argument: Optional[str] = None,
        code: ErrorCode = ErrorCode.QUERY_INVALID
    ):
        details = {}
        if argument is not None:
            details["argument"] = argument[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.argument = argument


class MentionNotFoundError(ZkIndexError):
    """Raised when none of the mentioned note paths resolve to a note."""

    def __init__(self, paths: List[str]):
        super().__init__(
            "Could not find notes at: " + ", ".join(paths),
            code=ErrorCode.MENTION_NOT_FOUND,
            details={"paths": paths[:10]}
        )
        self.paths: List[str] = list(paths)


class StorageError(ZkIndexError):
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
            details["path"] = path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class ConfigurationError(ZkIndexError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key
