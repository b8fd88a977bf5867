"""
Payment State Machine - Lifecycle of a single payment confirmation.

Each confirm request walks:

    VALIDATING -> REJECTED
    VALIDATING -> RESERVED -> DISPATCHING -> SETTLED
                                         -> RELEASED   (dispatch failed)
    VALIDATING -> RESERVED -> SETTLED                  (copy, nothing to dispatch)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional

from kiosk.core.value_objects import Money, PrintMode, UploadedDocument
from kiosk.loggers import logger


# =============================================================================
# Confirmation Phases
# =============================================================================


class ConfirmationPhase(Enum):
    """Phases of a payment confirmation."""

    VALIDATING = auto()   # Checking amount, mode, balance and session
    REJECTED = auto()     # Request refused, ledger untouched
    RESERVED = auto()     # Amount held on the ledger
    DISPATCHING = auto()  # Print collaborator invoked
    SETTLED = auto()      # Debit committed and persisted
    RELEASED = auto()     # Hold dropped without a charge


ALLOWED_TRANSITIONS: dict[ConfirmationPhase, frozenset[ConfirmationPhase]] = {
    ConfirmationPhase.VALIDATING: frozenset(
        {ConfirmationPhase.REJECTED, ConfirmationPhase.RESERVED}
    ),
    ConfirmationPhase.RESERVED: frozenset(
        {ConfirmationPhase.DISPATCHING, ConfirmationPhase.SETTLED, ConfirmationPhase.RELEASED}
    ),
    ConfirmationPhase.DISPATCHING: frozenset(
        {ConfirmationPhase.SETTLED, ConfirmationPhase.RELEASED}
    ),
    ConfirmationPhase.REJECTED: frozenset(),
    ConfirmationPhase.SETTLED: frozenset(),
    ConfirmationPhase.RELEASED: frozenset(),
}

TERMINAL_PHASES: frozenset[ConfirmationPhase] = frozenset(
    {ConfirmationPhase.REJECTED, ConfirmationPhase.SETTLED, ConfirmationPhase.RELEASED}
)


class InvalidTransitionError(RuntimeError):
    """A confirmation tried to skip or revisit a phase."""


# =============================================================================
# Confirmation Context
# =============================================================================


@dataclass
class ConfirmationContext:
    """
    Context for one confirm request.

    Holds all state for the request as it moves through its phases.
    """

    amount: Optional[Money] = None
    mode: Optional[PrintMode] = None
    session_id: Optional[str] = None
    document: Optional[UploadedDocument] = None
    phase: ConfirmationPhase = ConfirmationPhase.VALIDATING
    history: list[ConfirmationPhase] = field(
        default_factory=lambda: [ConfirmationPhase.VALIDATING]
    )
    error: Optional[str] = None

    @property
    def is_finished(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def advance(self, phase: ConfirmationPhase) -> None:
        """
        Move to the next phase.

        Raises:
            InvalidTransitionError: If the transition is not allowed.
        """
        if phase not in ALLOWED_TRANSITIONS[self.phase]:
            raise InvalidTransitionError(
                f"Illegal confirmation transition {self.phase.name} -> {phase.name}"
            )
        logger.debug(f"Confirmation {self.phase.name} -> {phase.name}")
        self.phase = phase
        self.history.append(phase)

    def reject(self, reason: str) -> None:
        self.error = reason
        self.advance(ConfirmationPhase.REJECTED)

    def release(self, reason: str) -> None:
        self.error = reason
        self.advance(ConfirmationPhase.RELEASED)
