"""
Error Handling Module
---------------------
Typed media errors with classification.
No automatic retries - callers decide whether to try again.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Dict, List, Optional
import logging
import traceback


class ErrorCategory(Enum):
    """Categories of errors for handling decisions."""
    NOT_INITIALIZED = auto()  # Operation before initialize() completed
    DEVICE_ERROR = auto()     # Permission or capture hardware failure
    SOURCE_ERROR = auto()     # Bad URL, unreachable or unreadable source
    DECODE_ERROR = auto()     # Malformed media / decoder failure
    RECORDING_ERROR = auto()  # Take could not be written
    SYSTEM_ERROR = auto()     # Internal error


class MediaError(Exception):
    """Base class for all media orchestration errors."""

    category: ErrorCategory = ErrorCategory.SYSTEM_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotInitializedError(MediaError):
    """Raised when a component is used before it was initialized."""
    category = ErrorCategory.NOT_INITIALIZED


class DeviceError(MediaError):
    """Raised when the capture device is unavailable or permission is missing."""
    category = ErrorCategory.DEVICE_ERROR


class SourceError(MediaError):
    """Raised when an audio source cannot be loaded."""
    category = ErrorCategory.SOURCE_ERROR


class DecodeError(MediaError):
    """Raised when a video decoding handle cannot be initialized."""
    category = ErrorCategory.DECODE_ERROR


class RecordingError(MediaError):
    """Raised when a finished take cannot be written to disk."""
    category = ErrorCategory.RECORDING_ERROR


@dataclass
class ErrorRecord:
    """
    Structured error with metadata.

    Used for consistent error reporting.
    """
    category: ErrorCategory
    message: str
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=datetime.now)
    stack_trace: Optional[str] = None

    @classmethod
    def from_exception(cls, exception: Exception) -> "ErrorRecord":
        """Create a record from an exception."""
        if isinstance(exception, MediaError):
            category = exception.category
            details = exception.details
        else:
            category = ErrorCategory.SYSTEM_ERROR
            details = None

        return cls(
            category=category,
            message=str(exception),
            details=details,
            stack_trace="".join(traceback.format_exception(
                type(exception), exception, exception.__traceback__
            )),
        )

    def __repr__(self) -> str:
        return f"ErrorRecord({self.category.name}: {self.message})"


class ErrorHandler:
    """
    Central error handler with logging and user-facing messages.
    """

    def __init__(self, max_history: int = 100):
        self._logger = logging.getLogger("mediakeep.errors")
        self._error_history: List[ErrorRecord] = []
        self._max_history = max_history

    def handle(self, error: Exception) -> str:
        """
        Record an error and return a user-friendly status line.
        """
        record = ErrorRecord.from_exception(error)

        self._log_error(record)

        self._error_history.append(record)
        if len(self._error_history) > self._max_history:
            self._error_history.pop(0)

        return self._get_user_message(record)

    def _log_error(self, record: ErrorRecord) -> None:
        """Log error with appropriate level."""
        level_map = {
            ErrorCategory.NOT_INITIALIZED: logging.WARNING,
            ErrorCategory.SOURCE_ERROR: logging.ERROR,
            ErrorCategory.DECODE_ERROR: logging.ERROR,
            ErrorCategory.RECORDING_ERROR: logging.ERROR,
            ErrorCategory.DEVICE_ERROR: logging.CRITICAL,
            ErrorCategory.SYSTEM_ERROR: logging.CRITICAL,
        }

        level = level_map.get(record.category, logging.ERROR)

        self._logger.log(
            level,
            f"{record.category.name}: {record.message}",
            extra={"details": record.details}
        )

        if record.stack_trace and level >= logging.ERROR:
            self._logger.debug(f"Stack trace:\n{record.stack_trace}")

    def _get_user_message(self, record: ErrorRecord) -> str:
        """Generate user-friendly error message."""
        messages = {
            ErrorCategory.NOT_INITIALIZED: "Media engine is not ready yet.",
            ErrorCategory.DEVICE_ERROR: f"Microphone unavailable: {record.message}",
            ErrorCategory.SOURCE_ERROR: f"Could not load audio: {record.message}",
            ErrorCategory.DECODE_ERROR: f"Could not open video: {record.message}",
            ErrorCategory.RECORDING_ERROR: f"Recording could not be saved: {record.message}",
            ErrorCategory.SYSTEM_ERROR: "Something went wrong internally.",
        }

        return messages.get(record.category, "An error occurred.")

    @property
    def history(self) -> List[ErrorRecord]:
        """Get recorded errors, oldest first."""
        return self._error_history.copy()

    def get_error_stats(self) -> Dict[str, int]:
        """Get error statistics."""
        stats = {}
        for record in self._error_history:
            key = record.category.name
            stats[key] = stats.get(key, 0) + 1
        return stats

    def clear_history(self) -> None:
        """Clear error history."""
        self._error_history.clear()
