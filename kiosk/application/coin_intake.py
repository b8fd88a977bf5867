"""
Coin Intake Service - From decoded coin events to ledger credits.

The decoder runs synchronously on the event loop and pushes its outcomes
onto a queue; one worker task drains the queue so credits are applied to
the ledger in the order the coins arrived.
"""

import asyncio
from typing import Optional

from kiosk.core.exceptions import KioskError
from kiosk.core.interfaces import Scheduler
from kiosk.core.value_objects import CoinEvent, ParserWarning
from kiosk.domain.coin_decoder import (
    DEFAULT_FRAGMENT_WINDOW_S,
    CoinProtocolDecoder,
    Outcome,
)
from kiosk.domain.ledger import BalanceLedger
from kiosk.loggers import logger
from kiosk.notifier import RealtimeNotifier


class CoinIntakeService:
    """
    Application service for coin intake.

    Feeds serial lines to the decoder and applies its outcomes.
    """

    def __init__(
        self,
        ledger: BalanceLedger,
        notifier: RealtimeNotifier,
        scheduler: Optional[Scheduler] = None,
        fragment_window: float = DEFAULT_FRAGMENT_WINDOW_S,
    ) -> None:
        """
        Initialize the coin intake service.

        Args:
            ledger: Ledger credited for every accepted coin.
            notifier: Realtime notifier for coin and warning events.
            scheduler: Scheduler for the fragment timer.
            fragment_window: Seconds to wait for a two-digit continuation.
        """
        self._ledger = ledger
        self._notifier = notifier
        self._queue: asyncio.Queue[Outcome] = asyncio.Queue()
        self._decoder = CoinProtocolDecoder(
            self._queue.put_nowait,
            scheduler=scheduler,
            fragment_window=fragment_window,
        )
        self._worker: Optional[asyncio.Task] = None

    @property
    def decoder(self) -> CoinProtocolDecoder:
        return self._decoder

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def feed_line(self, raw_line: str) -> None:
        """Decode one serial line. Safe to call from the serial read loop."""
        self._decoder.feed_line(raw_line)

    # =========================================================================
    # Worker
    # =========================================================================

    def start(self) -> None:
        if self.is_running:
            return
        self._worker = asyncio.create_task(self._consume_loop())
        logger.info("Coin intake worker started")

    async def stop(self) -> None:
        """Resolve any pending fragment and stop the worker after draining."""
        self._decoder.flush("shutdown")
        if self._worker is None:
            return
        await self.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Coin intake worker stopped")

    async def join(self) -> None:
        """Wait until every queued outcome has been applied."""
        await self._queue.join()

    async def _consume_loop(self) -> None:
        while True:
            outcome = await self._queue.get()
            try:
                await self._apply(outcome)
            except KioskError as e:
                logger.error(f"Coin outcome {outcome} not applied: {e.message}")
            except Exception as e:
                logger.error(f"Unexpected error applying coin outcome {outcome}: {e}")
            finally:
                self._queue.task_done()

    async def _apply(self, outcome: Outcome) -> None:
        if isinstance(outcome, CoinEvent):
            snapshot = await self._ledger.credit_coin(outcome.value)
            logger.info(f"Coin accepted: {outcome.value}, balance {snapshot.balance}")
            await self._notifier.coin_accepted(outcome.value, snapshot.balance.amount)
        elif isinstance(outcome, ParserWarning):
            logger.warning(f"Coin parser warning {outcome.code.value}: {outcome.message}")
            await self._notifier.parser_warning(outcome.code.value, outcome.message)
