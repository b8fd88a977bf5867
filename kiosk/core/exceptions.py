"""
Custom exceptions for the kiosk engine.

Provides a hierarchy of typed exceptions carrying a machine-readable
code and the HTTP status the API layer answers with.
"""

from typing import Any, Optional


class KioskError(Exception):
    """Base exception for all kiosk errors."""

    status_code: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error message.
            code: Optional error code for programmatic handling.
            details: Optional additional error details.
        """
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "code": self.code,
            "error": self.message,
            **self.details,
        }


# =============================================================================
# Request Errors
# =============================================================================


class ValidationError(KioskError):
    """Malformed or out-of-range input."""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    default_code = "INVALID_AMOUNT"


class InvalidModeError(ValidationError):
    default_code = "INVALID_MODE"


class MissingSessionError(ValidationError):
    default_code = "MISSING_SESSION"


class NoDocumentError(ValidationError):
    default_code = "NO_DOCUMENT"


class DocumentNotFoundError(ValidationError):
    """Explicit filename does not match any document of the session."""

    default_code = "DOCUMENT_NOT_FOUND"


class NotFoundError(KioskError):
    """Unknown session or token."""

    status_code = 404
    default_code = "NOT_FOUND"


class SessionNotFoundError(NotFoundError):
    default_code = "SESSION_NOT_FOUND"


class ConflictError(KioskError):
    """Session already used."""

    status_code = 400
    default_code = "ALREADY_UPLOADED"


# =============================================================================
# Payment Errors
# =============================================================================


class InsufficientBalanceError(KioskError):
    """Ledger balance does not cover the requested amount."""

    status_code = 400
    default_code = "INSUFFICIENT_BALANCE"

    def __init__(
        self,
        message: str,
        balance: float = 0,
        required: float = 0,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.details["balance"] = balance
        self.details["required"] = required


class DispatchError(KioskError):
    """The print collaborator could not be started."""

    status_code = 502
    default_code = "DISPATCH_FAILED"


# =============================================================================
# Device Errors
# =============================================================================


class DeviceError(KioskError):
    """Base exception for device-related errors."""

    default_code = "DEVICE_ERROR"

    def __init__(
        self,
        message: str,
        device_name: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.device_name = device_name
        if device_name:
            self.details["device"] = device_name


class DeviceConnectionError(DeviceError):
    """Serial device missing, disconnected or failing."""

    default_code = "DEVICE_UNAVAILABLE"


# =============================================================================
# Repository Errors
# =============================================================================


class RepositoryError(KioskError):
    """Base exception for repository errors."""

    default_code = "REPOSITORY_ERROR"


class LedgerPersistenceError(RepositoryError):
    """Ledger state could not be written durably."""

    default_code = "LEDGER_PERSISTENCE_FAILED"
