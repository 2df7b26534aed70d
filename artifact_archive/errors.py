"""
Centralized error handling module for artifact-archive.

This module defines the exception hierarchy used by the archive pipeline,
error categorization, and utilities for logging failures consistently.

Per-file failures (``CompressionFailure``) are recoverable: the builder logs
them and skips the file. Failures about the integrity of a whole archive
(validation, extraction, write errors) are not, and must reach the caller.
"""

import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Enumeration of error categories for consistent classification."""

    # Filesystem and runtime errors
    NOT_FOUND = "not_found_error"
    PERMISSION = "permission_error"
    IO = "io_error"
    MEMORY = "memory_error"

    # Archive pipeline errors
    COMPRESSION = "compression_error"
    WRITE = "write_error"
    VALIDATION = "validation_error"
    EXTRACTION = "extraction_error"
    ARTIFACT = "artifact_error"
    NETWORK = "network_error"

    # Default
    UNKNOWN = "unknown_error"


@dataclass
class ErrorContext:
    """
    Structured context for error information to facilitate debugging.

    Captures where the error happened and which file or archive it concerns.
    """

    error_type: str
    error_message: str
    category: ErrorCategory = ErrorCategory.UNKNOWN
    timestamp: datetime = field(default_factory=datetime.now)

    path: Optional[str] = None
    reason: Optional[str] = None
    function_name: Optional[str] = None
    line_number: Optional[int] = None
    stacktrace: str = field(default_factory=str)

    component: Optional[str] = None
    operation: Optional[str] = None
    variables: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.stacktrace:
            stack = traceback.format_exc()
            self.stacktrace = "" if stack.startswith("NoneType: None") else stack

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error context to a dictionary for serialization."""
        result = {
            "error_type": self.error_type,
            "error_message": self.error_message,
            "category": self.category.value,
            "timestamp": self.timestamp.isoformat(),
        }

        for field_name in ["path", "reason", "function_name", "line_number",
                           "stacktrace", "component", "operation"]:
            value = getattr(self, field_name)
            if value:
                result[field_name] = value

        if self.variables:
            result["variables"] = self.variables

        return result


class ArchiveError(Exception):
    """Base exception for all archive pipeline errors.

    Args:
        message: Human readable description
        path: The file or archive path the error concerns
        reason: Short machine-friendly reason (e.g. ``hash_mismatch``)
    """

    recoverable = False

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        reason: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        **kwargs
    ):
        super().__init__(message)
        self.path = path
        self.reason = reason

        if context is None:
            tb = traceback.extract_stack()[:-1]
            frame = tb[-1] if tb else None
            self.context = ErrorContext(
                error_type=self.__class__.__name__,
                error_message=message,
                category=self._get_default_category(),
                path=path,
                reason=reason,
                function_name=frame.name if frame else None,
                line_number=frame.lineno if frame else None,
                **kwargs
            )
        else:
            self.context = context
            if self.context.category == ErrorCategory.UNKNOWN:
                self.context.category = self._get_default_category()

    def _get_default_category(self) -> ErrorCategory:
        """Return the default error category for this exception type."""
        return ErrorCategory.UNKNOWN

    def to_dict(self) -> Dict[str, Any]:
        """Convert the exception to a dictionary for serialization."""
        return self.context.to_dict()


class SourceNotFoundError(ArchiveError):
    """The source directory is missing or is not a directory."""

    def _get_default_category(self) -> ErrorCategory:
        return ErrorCategory.NOT_FOUND


class CompressionFailure(ArchiveError):
    """A single file could not be read, compressed or verified.

    The builder skips the file and continues unless running in strict mode.
    """

    recoverable = True

    def _get_default_category(self) -> ErrorCategory:
        return ErrorCategory.COMPRESSION


class ArchiveWriteError(ArchiveError):
    """The output directory or the archive envelope could not be written."""

    def _get_default_category(self) -> ErrorCategory:
        return ErrorCategory.WRITE


class ArchiveValidationError(ArchiveError):
    """Post-build integrity check failed; the archive must not be trusted."""

    def _get_default_category(self) -> ErrorCategory:
        return ErrorCategory.VALIDATION


class ExtractionError(ArchiveError):
    """An archive could not be faithfully reconstructed."""

    def _get_default_category(self) -> ErrorCategory:
        return ErrorCategory.EXTRACTION


class ArtifactError(ArchiveError):
    """A test artifacts file could not be packaged."""

    def _get_default_category(self) -> ErrorCategory:
        return ErrorCategory.ARTIFACT


class UploadError(ArchiveError):
    """An archive could not be delivered to the backend."""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code

    def _get_default_category(self) -> ErrorCategory:
        return ErrorCategory.NETWORK


def is_recoverable(exc: BaseException) -> bool:
    """Return True when ``exc`` only affects one file and the build may continue."""
    return isinstance(exc, ArchiveError) and exc.recoverable


def categorize_exception(exc: BaseException) -> ErrorCategory:
    """
    Categorize an exception into an ErrorCategory based on its type.

    Args:
        exc: The exception to categorize

    Returns:
        An ErrorCategory value
    """
    if isinstance(exc, ArchiveError):
        return exc.context.category

    category_mapping = {
        "FileNotFoundError": ErrorCategory.NOT_FOUND,
        "NotADirectoryError": ErrorCategory.NOT_FOUND,
        "IsADirectoryError": ErrorCategory.IO,
        "PermissionError": ErrorCategory.PERMISSION,
        "OSError": ErrorCategory.IO,
        "MemoryError": ErrorCategory.MEMORY,
        "LZMAError": ErrorCategory.COMPRESSION,
        "error": ErrorCategory.COMPRESSION,  # zlib.error / brotli.error
        "ConnectionError": ErrorCategory.NETWORK,
        "Timeout": ErrorCategory.NETWORK,
        "TimeoutError": ErrorCategory.NETWORK,
    }

    return category_mapping.get(type(exc).__name__, ErrorCategory.UNKNOWN)


def create_error_context(
    exc: BaseException,
    component: Optional[str] = None,
    operation: Optional[str] = None,
    variables: Optional[Dict[str, Any]] = None,
) -> ErrorContext:
    """
    Create an ErrorContext object from an exception.

    Args:
        exc: The exception to create context from
        component: The component where the error occurred
        operation: The specific operation that was being performed
        variables: Dictionary of variables relevant to the error

    Returns:
        An ErrorContext object with details about the error
    """
    tb = traceback.extract_tb(exc.__traceback__)
    frame = tb[-1] if tb else None

    return ErrorContext(
        error_type=type(exc).__name__,
        error_message=str(exc),
        category=categorize_exception(exc),
        path=getattr(exc, "path", None),
        reason=getattr(exc, "reason", None),
        function_name=frame.name if frame else None,
        line_number=frame.lineno if frame else None,
        stacktrace="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        component=component,
        operation=operation,
        variables=variables or {},
    )


def log_exception(
    exc: BaseException,
    log: logging.Logger,
    component: Optional[str] = None,
    operation: Optional[str] = None,
    level: int = logging.ERROR,
    exc_info: bool = False,
) -> ErrorContext:
    """
    Log an exception with consistent formatting and create an ErrorContext.

    Args:
        exc: The exception to log
        log: The logger to use
        component: The component where the error occurred
        operation: The specific operation that was being performed
        level: The logging level to use
        exc_info: Whether to attach the traceback to the log record

    Returns:
        An ErrorContext object with details about the error
    """
    error_context = create_error_context(exc, component=component, operation=operation)

    log_message = f"{error_context.category.value.upper()}: {error_context.error_message}"
    if component:
        log_message = f"[{component}] {log_message}"
    if operation:
        log_message = f"[{operation}] {log_message}"

    log.log(level, log_message, exc_info=exc if exc_info else None)
    return error_context
