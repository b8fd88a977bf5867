"""
Application layer - Use cases and services.

Contains:
- Coin intake
- Upload sessions
- Payment confirmation
- Kiosk facade
"""

from .coin_intake import CoinIntakeService
from .kiosk_facade import KioskFacade
from .payment_confirmation import PaymentConfirmationService
from .session_store import IncomingFile, UploadSession, UploadSessionStore


__all__ = [
    "CoinIntakeService",
    "IncomingFile",
    "KioskFacade",
    "PaymentConfirmationService",
    "UploadSession",
    "UploadSessionStore",
]
