"""
Payment Confirmation Service - Charges the ledger for a print or copy job.

A confirmation reserves the amount on the ledger, hands the document to
the print dispatcher, and only then commits the debit. When the
dispatch fails the reservation is released and nothing is charged.
"""

import math
from typing import Any, Optional

from kiosk.core.exceptions import (
    DocumentNotFoundError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidModeError,
    KioskError,
    MissingSessionError,
    NoDocumentError,
    SessionNotFoundError,
    ValidationError,
)
from kiosk.core.interfaces import PrintDispatcher
from kiosk.core.value_objects import LedgerSnapshot, Money, PrintMode, UploadedDocument
from kiosk.domain.ledger import BalanceLedger, Hold
from kiosk.domain.payment_state_machine import ConfirmationContext, ConfirmationPhase
from kiosk.loggers import logger

from .session_store import UploadSessionStore


class PaymentConfirmationService:
    """
    Application service for payment confirmation.

    Coordinates the ledger, the upload sessions and the print
    dispatcher for one confirm request at a time per caller.
    """

    def __init__(
        self,
        ledger: BalanceLedger,
        sessions: UploadSessionStore,
        dispatcher: PrintDispatcher,
    ) -> None:
        self._ledger = ledger
        self._sessions = sessions
        self._dispatcher = dispatcher

    async def confirm(
        self,
        amount: Any,
        mode: Any,
        session_id: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Confirm a charge.

        Args:
            amount: Amount to charge; must be a finite number above zero.
            mode: "print" or "copy".
            session_id: Upload session holding the document (print only).
            filename: Document to print; the latest upload when omitted.

        Returns:
            Dictionary with ``ok``, the new ``balance`` and ``earnings``.

        Raises:
            KioskError: Subclass describing why the request was refused.
        """
        context = ConfirmationContext(session_id=session_id)
        try:
            self._validate(context, amount, mode, filename)
        except KioskError as e:
            context.reject(e.message)
            logger.warning(f"Payment confirmation rejected: {e.message}")
            raise

        assert context.amount is not None and context.mode is not None
        try:
            hold = await self._ledger.hold(context.amount)
        except InsufficientBalanceError as e:
            context.reject(e.message)
            logger.warning(f"Payment confirmation rejected: {e.message}")
            raise
        context.advance(ConfirmationPhase.RESERVED)

        snapshot = await self._settle(context, hold)
        logger.info(
            f"Payment confirmed: {context.amount} for {context.mode.value}, "
            f"balance {snapshot.balance}"
        )
        return {"ok": True, **snapshot.to_dict()}

    # =========================================================================
    # Validation
    # =========================================================================

    def _validate(
        self,
        context: ConfirmationContext,
        amount: Any,
        mode: Any,
        filename: Optional[str],
    ) -> None:
        context.amount = self._parse_amount(amount)
        context.mode = self._parse_mode(mode)

        snapshot = self._ledger.snapshot()
        if snapshot.available < context.amount:
            raise InsufficientBalanceError(
                "Insufficient balance",
                balance=snapshot.balance.amount,
                required=context.amount.amount,
            )

        if context.mode is PrintMode.PRINT:
            context.document = self._resolve_document(context.session_id, filename)

    @staticmethod
    def _parse_amount(amount: Any) -> Money:
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            raise InvalidAmountError("Invalid amount")
        if not math.isfinite(amount) or amount <= 0:
            raise InvalidAmountError("Invalid amount")
        money = Money.from_amount(amount)
        if money.cents == 0:
            raise InvalidAmountError("Invalid amount")
        return money

    @staticmethod
    def _parse_mode(mode: Any) -> PrintMode:
        try:
            return PrintMode(mode)
        except ValueError:
            raise InvalidModeError("Invalid mode") from None

    def _resolve_document(
        self,
        session_id: Any,
        filename: Any,
    ) -> UploadedDocument:
        if session_id is not None and not isinstance(session_id, str):
            raise ValidationError("Invalid session id", code="INVALID_SESSION_ID")
        if filename is not None and not isinstance(filename, str):
            raise ValidationError("Invalid filename", code="INVALID_FILENAME")
        if not session_id:
            raise MissingSessionError("Print session is required")

        documents = self._sessions.get_documents(session_id)
        if documents is None:
            raise SessionNotFoundError("Session not found")
        if not documents:
            raise NoDocumentError("No uploaded document found for this session")

        if not filename:
            return documents[-1]
        for document in documents:
            if document.filename == filename:
                return document
        raise DocumentNotFoundError(f'Document "{filename}" not found in session')

    # =========================================================================
    # Settlement
    # =========================================================================

    async def _settle(self, context: ConfirmationContext, hold: Hold) -> LedgerSnapshot:
        assert context.mode is not None
        try:
            if context.document is not None:
                context.advance(ConfirmationPhase.DISPATCHING)
                await self._dispatcher.dispatch(context.document.storage_path)
            snapshot = await self._ledger.commit(hold, context.mode)
        except Exception as e:
            reason = e.message if isinstance(e, KioskError) else str(e)
            failed_in = context.phase.name
            await self._ledger.release(hold)
            context.release(reason)
            logger.error(f"Payment confirmation released during {failed_in}: {reason}")
            raise

        context.advance(ConfirmationPhase.SETTLED)
        return snapshot
