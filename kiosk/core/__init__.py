"""
Core module - Foundation layer with no external dependencies.

Contains:
- Exceptions
- Interfaces (Protocols)
- Value Objects
"""

from .exceptions import (
    KioskError,
    ValidationError,
    InvalidAmountError,
    InvalidModeError,
    MissingSessionError,
    NoDocumentError,
    DocumentNotFoundError,
    NotFoundError,
    SessionNotFoundError,
    ConflictError,
    InsufficientBalanceError,
    DispatchError,
    DeviceError,
    DeviceConnectionError,
    RepositoryError,
    LedgerPersistenceError,
)
from .interfaces import (
    LedgerRecord,
    LedgerStore,
    PrintDispatcher,
    Scheduler,
    TimerHandle,
    EventHandler,
)
from .value_objects import (
    ACCEPTED_COINS,
    Money,
    PrintMode,
    ColorMode,
    SessionStatus,
    WarningCode,
    UploadErrorCode,
    LedgerSnapshot,
    CoinEvent,
    ParserWarning,
    ConnectivityStatus,
    UploadedDocument,
    UploadResult,
)


__all__ = [
    # Exceptions
    "KioskError",
    "ValidationError",
    "InvalidAmountError",
    "InvalidModeError",
    "MissingSessionError",
    "NoDocumentError",
    "DocumentNotFoundError",
    "NotFoundError",
    "SessionNotFoundError",
    "ConflictError",
    "InsufficientBalanceError",
    "DispatchError",
    "DeviceError",
    "DeviceConnectionError",
    "RepositoryError",
    "LedgerPersistenceError",
    # Interfaces
    "LedgerRecord",
    "LedgerStore",
    "PrintDispatcher",
    "Scheduler",
    "TimerHandle",
    "EventHandler",
    # Value Objects
    "ACCEPTED_COINS",
    "Money",
    "PrintMode",
    "ColorMode",
    "SessionStatus",
    "WarningCode",
    "UploadErrorCode",
    "LedgerSnapshot",
    "CoinEvent",
    "ParserWarning",
    "ConnectivityStatus",
    "UploadedDocument",
    "UploadResult",
]
