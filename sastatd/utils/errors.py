"""Centralized error handling for the sastatd daemon."""

from enum import Enum
from typing import Any, Dict

from sastatd.utils.logging import get_logger

_logger = None


def _get_logger():
    """Get logger with lazy initialisation."""
    global _logger
    if _logger is None:
        _logger = get_logger(__name__)
    return _logger


## Error Categories


class ErrorCategory(Enum):
    """Categories of errors for better handling."""

    PERSISTENCE = "persistence"
    NETWORK = "network"
    FILE_SYSTEM = "file_system"
    CONFIGURATION = "configuration"
    PROCESS = "process"
    UNKNOWN = "unknown"


## Custom Exceptions


class SastatdError(Exception):
    """Base exception for all sastatd errors."""

    category = ErrorCategory.UNKNOWN
    user_message = "An error occurred"

    def __init__(
        self, message: str | None = None, details: Dict[str, Any] | None = None
    ):
        """Initialise SastatdError with optional message and details."""
        self.message = message or self.user_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error details to a dictionary."""
        return {
            "error_type": self.__class__.__name__,
            "category": self.category.value,
            "message": self.message,
            "details": self.details,
        }


## Persistence Errors


class PersistenceError(SastatdError):
    """Base exception for snapshot persistence errors."""

    category = ErrorCategory.PERSISTENCE
    user_message = "A snapshot error occurred"


class CorruptSnapshotError(PersistenceError):
    """Exception for a snapshot file that exists but cannot be parsed."""

    user_message = "Snapshot file is corrupted"


class SnapshotWriteError(PersistenceError):
    """Exception for failures while writing or replacing the snapshot."""

    user_message = "Failed to write snapshot"


## Log Tail Errors


class TailError(SastatdError):
    """Exception for unrecoverable failures following the watched log."""

    category = ErrorCategory.FILE_SYSTEM
    user_message = "Failed to follow log file"


## Network Errors


class NetworkError(SastatdError):
    """Base exception for network-related errors."""

    category = ErrorCategory.NETWORK
    user_message = "A network error occurred"


class ListenError(NetworkError):
    """Exception when the listening socket cannot be created."""

    user_message = "Failed to open listening socket"


## Configuration Errors


class ConfigurationError(SastatdError):
    """Base exception for configuration-related errors."""

    category = ErrorCategory.CONFIGURATION
    user_message = "A configuration error occurred"


class InvalidConfigError(ConfigurationError):
    """Exception for invalid configuration settings."""

    user_message = "Invalid configuration settings"


## Process Errors


class ProcessError(SastatdError):
    """Base exception for process plumbing errors."""

    category = ErrorCategory.PROCESS
    user_message = "A process management error occurred"


class AlreadyRunningError(ProcessError):
    """Exception when another instance holds the pid file lock."""

    user_message = "Another instance is already running"


class PrivilegeError(ProcessError):
    """Exception when switching to the run-as account fails."""

    user_message = "Failed to drop privileges"


## Error Handler


class ErrorHandler:
    """Centralized error handling and logging."""

    @staticmethod
    def handle(
        error: Exception, context: str = "", log_traceback: bool = True
    ) -> Dict[str, Any]:
        """Handle errors with logging and user-friendly message."""
        if isinstance(error, SastatdError):
            _get_logger().error(
                f"{context}: {error.message}",
                extra={"details": error.details},
                exc_info=error if log_traceback and error.__cause__ else None,
            )
            return error.to_dict()
        else:
            _get_logger().error(
                f"{context}: {str(error)}", exc_info=error if log_traceback else None
            )
            return {
                "error_type": "UnknownError",
                "category": ErrorCategory.UNKNOWN.value,
                "message": str(error),
                "details": {"context": context},
            }


def format_error_message(error: Exception) -> str:
    """Format an error message for display."""
    if isinstance(error, SastatdError):
        return error.message
    else:
        return "An unexpected error occurred - check logs for details."
