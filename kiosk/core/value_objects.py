"""
Value Objects for the kiosk engine.

Immutable objects that represent values in the domain.
Value objects are compared by value, not by identity.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Final, Optional, Union


ACCEPTED_COINS: Final[frozenset[int]] = frozenset({1, 5, 10, 20})

Number = Union[int, float]


# =============================================================================
# Enums
# =============================================================================


class PrintMode(str, Enum):
    """Physical action paid for."""

    PRINT = "print"
    COPY = "copy"


class ColorMode(str, Enum):
    COLORED = "colored"
    GRAYSCALE = "grayscale"


class SessionStatus(str, Enum):
    """Upload session lifecycle."""

    PENDING = "pending"
    UPLOADED = "uploaded"


class WarningCode(str, Enum):
    """Coin parser warning codes."""

    NON_NUMERIC = "NON_NUMERIC"
    UNSUPPORTED_COIN = "UNSUPPORTED_COIN"
    INVALID_COMBINATION = "INVALID_COMBINATION"
    INVALID_FRAGMENT = "INVALID_FRAGMENT"


class UploadErrorCode(str, Enum):
    """Reasons a wireless upload is refused."""

    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    INVALID_TOKEN = "INVALID_TOKEN"
    ALREADY_UPLOADED = "ALREADY_UPLOADED"
    UNSUPPORTED_FILE_TYPE = "UNSUPPORTED_FILE_TYPE"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"


# =============================================================================
# Money Value Object
# =============================================================================


@dataclass(frozen=True, order=True)
class Money:
    """
    Immutable value object representing monetary amounts.

    Internally stores amounts in cents to avoid floating-point
    precision issues.

    Attributes:
        cents: Amount in cents.
    """

    cents: int = 0

    def __post_init__(self) -> None:
        """Validate the amount."""
        if self.cents < 0:
            raise ValueError("Amount cannot be negative")

    @classmethod
    def from_amount(cls, amount: Number) -> "Money":
        """
        Create Money from a whole-unit amount.

        Args:
            amount: Amount in currency units (e.g. 7 or 7.5).

        Returns:
            Money instance.
        """
        cents = (Decimal(str(amount)) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP)
        return cls(cents=int(cents))

    @property
    def amount(self) -> Number:
        """Get amount in currency units, as an int when whole."""
        if self.cents % 100 == 0:
            return self.cents // 100
        return self.cents / 100

    def __add__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(cents=self.cents + other.cents)

    def __sub__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(cents=max(0, self.cents - other.cents))

    def __str__(self) -> str:
        return f"{self.cents / 100:.2f}"

    def __repr__(self) -> str:
        return f"Money(cents={self.cents})"


# =============================================================================
# Ledger Snapshot
# =============================================================================


@dataclass(frozen=True)
class LedgerSnapshot:
    """
    Read-only view of the ledger at a point in time.

    Attributes:
        balance: Accumulated, unspent balance.
        earnings: Lifetime settled earnings.
        held: Portion of the balance reserved by in-flight confirmations.
    """

    balance: Money = field(default_factory=Money)
    earnings: Money = field(default_factory=Money)
    held: Money = field(default_factory=Money)

    @property
    def available(self) -> Money:
        """Balance that can still be reserved."""
        return self.balance - self.held

    def to_dict(self) -> dict[str, Any]:
        return {
            "balance": self.balance.amount,
            "earnings": self.earnings.amount,
        }


# =============================================================================
# Coin Decoder Outcomes
# =============================================================================


@dataclass(frozen=True)
class CoinEvent:
    """A validated coin insertion."""

    value: int

    def __post_init__(self) -> None:
        if self.value not in ACCEPTED_COINS:
            raise ValueError(f"Unsupported coin value: {self.value}")


@dataclass(frozen=True)
class ParserWarning:
    """Observability-only decoder warning."""

    code: WarningCode
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code.value, "message": self.message}


# =============================================================================
# Device Status Value Object
# =============================================================================


@dataclass(frozen=True)
class ConnectivityStatus:
    """
    Serial subsystem connectivity at a point in time.

    Attributes:
        connected: Whether the port is open and being read.
        port_identifier: Port path in use, if any.
        last_error: Last transport error message, if any.
    """

    connected: bool = False
    port_identifier: Optional[str] = None
    last_error: Optional[str] = None

    @classmethod
    def disconnected(
        cls,
        error: Optional[str] = None,
        port_identifier: Optional[str] = None,
    ) -> "ConnectivityStatus":
        return cls(connected=False, port_identifier=port_identifier, last_error=error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "connected": self.connected,
            "portIdentifier": self.port_identifier,
            "lastError": self.last_error,
        }


# =============================================================================
# Upload Value Objects
# =============================================================================


@dataclass(frozen=True)
class UploadedDocument:
    """A document stored by a successful wireless upload."""

    document_id: str
    session_id: str
    filename: str
    storage_path: str
    content_type: str
    size_bytes: int
    uploaded_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "documentId": self.document_id,
            "sessionId": self.session_id,
            "filename": self.filename,
            "storagePath": self.storage_path,
            "contentType": self.content_type,
            "sizeBytes": self.size_bytes,
            "uploadedAt": self.uploaded_at,
        }

    def to_response(self) -> dict[str, Any]:
        """Shape returned to the uploading device."""
        return {
            "documentId": self.document_id,
            "sessionId": self.session_id,
            "fileName": self.filename,
            "contentType": self.content_type,
            "sizeBytes": self.size_bytes,
            "uploadedAt": self.uploaded_at,
        }


@dataclass(frozen=True)
class UploadResult:
    """
    Result of a store-upload attempt.

    Attributes:
        success: Whether the document was stored.
        document: The stored document on success.
        error_code: Refusal reason on failure.
        error_message: Human-readable refusal reason.
    """

    success: bool
    document: Optional[UploadedDocument] = None
    error_code: Optional[UploadErrorCode] = None
    error_message: Optional[str] = None

    @classmethod
    def stored(cls, document: UploadedDocument) -> "UploadResult":
        return cls(success=True, document=document)

    @classmethod
    def failed(cls, code: UploadErrorCode, message: str) -> "UploadResult":
        return cls(success=False, error_code=code, error_message=message)

    def to_dict(self) -> dict[str, Any]:
        if self.success and self.document:
            return self.document.to_response()
        return {
            "code": self.error_code.value if self.error_code else "UPLOAD_FAILED",
            "error": self.error_message or "Upload failed.",
        }
