"""Custom exception classes for the application."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    """Categories of failure surfaced to clients."""

    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    DATA_FORMAT = "data_format"
    STORE_UNAVAILABLE = "store_unavailable"
    REFRESH_FAILED = "refresh_failed"
    PERMISSION_DENIED = "permission_denied"
    UNKNOWN = "unknown"


class AppError(Exception):
    """Base application error class."""

    kind = ErrorKind.UNKNOWN

    def __init__(self, message, status_code=500):
        """Initialize the error."""
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ValidationError(AppError):
    """Raised when user input fails validation."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, message="Validation failed."):
        """Initialize the error."""
        super().__init__(message, 400)


InvalidInputError = ValidationError


class NotFoundError(AppError):
    """Raised when a resource is not found."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, message="Resource not found."):
        """Initialize the error."""
        super().__init__(message, 404)


class DataFormatError(AppError):
    """Raised when a stored record is missing fields or holds bad values."""

    kind = ErrorKind.DATA_FORMAT

    def __init__(self, message="Invalid data format."):
        """Initialize the error."""
        super().__init__(message, 422)


class StoreUnavailableError(AppError):
    """Raised when the remote store cannot be reached or refuses a request."""

    kind = ErrorKind.STORE_UNAVAILABLE

    def __init__(self, message="The group store is unavailable."):
        """Initialize the error."""
        super().__init__(message, 503)


class GroupRefreshError(AppError):
    """Raised when a membership edit succeeded but the group could not be re-read.

    The member list was changed remotely, so the local copy is known to be out
    of date.
    """

    kind = ErrorKind.REFRESH_FAILED

    def __init__(self, message="Joined the group but could not refresh it."):
        """Initialize the error."""
        super().__init__(message, 502)


class PermissionDeniedError(AppError):
    """Raised when location access has not been granted."""

    kind = ErrorKind.PERMISSION_DENIED

    def __init__(self, message="Location permission denied."):
        """Initialize the error."""
        super().__init__(message, 403)


@dataclass(frozen=True)
class SyncError:
    """The last failure recorded by a sync engine."""

    kind: ErrorKind
    operation: str
    message: str
    status_code: int = 500

    @classmethod
    def from_exception(cls, operation: str, error: BaseException) -> SyncError:
        """Build a record from any exception raised during ``operation``."""
        if isinstance(error, AppError):
            return cls(error.kind, operation, error.message, error.status_code)
        return cls(ErrorKind.UNKNOWN, operation, str(error) or repr(error), 500)

    def __str__(self) -> str:
        return self.message
