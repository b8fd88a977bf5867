"""
Domain layer - Business logic and domain models.

Contains:
- Coin protocol decoder
- Balance ledger
- Payment confirmation phases
- Pricing
"""

from .coin_decoder import (
    CoinProtocolDecoder,
    DecoderPhase,
    LoopScheduler,
)
from .ledger import (
    BalanceLedger,
    Hold,
)
from .payment_state_machine import (
    ConfirmationContext,
    ConfirmationPhase,
    InvalidTransitionError,
)
from .pricing import calculate_job_amount


__all__ = [
    # Coin intake
    "CoinProtocolDecoder",
    "DecoderPhase",
    "LoopScheduler",
    # Ledger
    "BalanceLedger",
    "Hold",
    # Payment State
    "ConfirmationContext",
    "ConfirmationPhase",
    "InvalidTransitionError",
    # Pricing
    "calculate_job_amount",
]
