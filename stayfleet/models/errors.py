"""Typed failures raised by the reservation core.

Callers map each error to a response; nothing here is retried
automatically. ``retryable`` tells the caller whether repeating the same
call (or the same call with different dates) can succeed.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Stable error codes for the calling layer."""

    VALIDATION_FAILED = "validation_failed"
    RESOURCE_UNAVAILABLE = "resource_unavailable"
    TRANSIENT_STORE_ERROR = "transient_store_error"
    NOT_FOUND = "not_found"
    CANNOT_CANCEL = "cannot_cancel"
    UNAUTHORIZED = "unauthorized"
    CIPHER_ERROR = "cipher_error"


class BookingError(Exception):
    """Base class for every failure surfaced by the core."""

    code: ErrorCode = ErrorCode.VALIDATION_FAILED
    retryable: bool = False

    def __init__(self, message: str, **details: object):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, object]:
        """Serialize for the calling layer."""
        return {
            "error_code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
            "details": {key: str(value) for key, value in self.details.items()},
        }


class ValidationError(BookingError):
    """Malformed input, raised before any side effect."""

    code = ErrorCode.VALIDATION_FAILED


class ResourceUnavailable(BookingError):
    """Requested dates overlap an existing reservation."""

    code = ErrorCode.RESOURCE_UNAVAILABLE
    retryable = True


class TransientStoreError(ResourceUnavailable):
    """Lock timeout or deadlock in the store; safe to retry."""

    code = ErrorCode.TRANSIENT_STORE_ERROR


class NotFound(BookingError):
    """Referenced entity does not exist."""

    code = ErrorCode.NOT_FOUND


class CannotCancel(BookingError):
    """Cancellation preconditions are not met."""

    code = ErrorCode.CANNOT_CANCEL


class Unauthorized(BookingError):
    """Actor lacks the required role or ownership."""

    code = ErrorCode.UNAUTHORIZED


class CipherError(BookingError):
    """Field encryption failed (or strict decryption failed)."""

    code = ErrorCode.CIPHER_ERROR
