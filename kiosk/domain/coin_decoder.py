"""
Coin Protocol Decoder - Turns serial lines into coin events.

The coin acceptor prints one denomination per line, but two-digit
codes (10, 20) sometimes arrive split over two lines ("1" then "0").
The decoder is a two-state machine over {token, timeout}:

    IDLE --"1"/"2"--> ARMED(prefix)
    ARMED --"0"--> IDLE            (emit prefix+"0")
    ARMED --other--> IDLE          (flush prefix, then handle token)
    ARMED --timeout--> IDLE        (flush prefix)
    ARMED --flush()--> IDLE        (flush prefix, e.g. at shutdown)

Flushing a lone prefix yields a coin when the prefix is a coin value
on its own ("1"), otherwise an INVALID_FRAGMENT warning.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from enum import Enum, auto
from functools import partial
from typing import Callable, Final, Optional, Union

from kiosk.core.interfaces import Scheduler, TimerHandle
from kiosk.core.value_objects import (
    ACCEPTED_COINS,
    CoinEvent,
    ParserWarning,
    WarningCode,
)
from kiosk.loggers import logger


# =============================================================================
# Constants
# =============================================================================

DEFAULT_FRAGMENT_WINDOW_S: Final[float] = 0.140
FRAGMENT_PREFIXES: Final[frozenset[str]] = frozenset({"1", "2"})
NON_DIGITS = re.compile(r"[^0-9]")


Outcome = Union[CoinEvent, ParserWarning]
OutcomeSink = Callable[[Outcome], None]


# =============================================================================
# Scheduling
# =============================================================================


class LoopScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


# =============================================================================
# Decoder State
# =============================================================================


class DecoderPhase(Enum):
    """Phases of the fragment state machine."""

    IDLE = auto()   # No fragment pending
    ARMED = auto()  # Prefix received, waiting for "0" or timeout


@dataclass
class PendingFragment:
    """A prefix waiting for its continuation."""

    prefix: str
    generation: int
    timer: Optional[TimerHandle] = None


class CoinProtocolDecoder:
    """
    State machine decoding coin acceptor lines.

    Outcomes are handed to ``sink`` synchronously and in arrival order.
    All methods must be called from the thread that owns the scheduler.
    """

    def __init__(
        self,
        sink: OutcomeSink,
        scheduler: Optional[Scheduler] = None,
        fragment_window: float = DEFAULT_FRAGMENT_WINDOW_S,
    ) -> None:
        self._sink = sink
        self._scheduler = scheduler or LoopScheduler()
        self._fragment_window = fragment_window
        self._pending: Optional[PendingFragment] = None
        self._generation = 0

    @property
    def phase(self) -> DecoderPhase:
        return DecoderPhase.ARMED if self._pending else DecoderPhase.IDLE

    @property
    def pending_prefix(self) -> Optional[str]:
        return self._pending.prefix if self._pending else None

    # -------------------------------------------------------------------------
    # Inputs
    # -------------------------------------------------------------------------

    def feed_line(self, raw_line: str) -> None:
        """
        Decode one raw line from the device.

        Non-digit characters are stripped; empty tokens are ignored.
        """
        token = NON_DIGITS.sub("", raw_line.strip())
        if not token:
            return
        self.feed_token(token)

    def feed_token(self, token: str) -> None:
        """Apply one token to the state machine."""
        if self._pending is not None:
            if token == "0":
                prefix = self._take_pending()
                self._resolve_combination(prefix + token)
                return
            self._flush("interrupted")

        if token in FRAGMENT_PREFIXES:
            self._arm(token)
            return

        self._classify(token)

    def flush(self, reason: str = "shutdown") -> None:
        """Resolve a pending fragment now, by the same rule as a timeout."""
        if self._pending is not None:
            self._flush(reason)

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def _arm(self, prefix: str) -> None:
        self._generation += 1
        fragment = PendingFragment(prefix=prefix, generation=self._generation)
        self._pending = fragment
        fragment.timer = self._scheduler.call_later(
            self._fragment_window,
            partial(self._on_timeout, fragment.generation),
        )

    def _take_pending(self) -> str:
        fragment = self._pending
        assert fragment is not None
        self._pending = None
        if fragment.timer is not None:
            fragment.timer.cancel()
        return fragment.prefix

    def _on_timeout(self, generation: int) -> None:
        # A stale timer may fire after its fragment was already resolved
        if self._pending is None or self._pending.generation != generation:
            return
        self._flush("timeout")

    def _flush(self, reason: str) -> None:
        prefix = self._take_pending()
        value = int(prefix)
        if value in ACCEPTED_COINS:
            self._emit(CoinEvent(value))
            return
        self._emit(
            ParserWarning(
                WarningCode.INVALID_FRAGMENT,
                f"Ignored fragment '{prefix}' ({reason}).",
            )
        )

    def _resolve_combination(self, digits: str) -> None:
        combined = int(digits)
        if combined in ACCEPTED_COINS:
            self._emit(CoinEvent(combined))
            return
        self._emit(
            ParserWarning(
                WarningCode.INVALID_COMBINATION,
                f"Ignored invalid coin '{combined}'.",
            )
        )

    def _classify(self, token: str) -> None:
        try:
            value = int(token)
        except ValueError:
            self._emit(
                ParserWarning(WarningCode.NON_NUMERIC, f"Ignored serial token '{token}'.")
            )
            return

        if value not in ACCEPTED_COINS:
            self._emit(
                ParserWarning(
                    WarningCode.UNSUPPORTED_COIN,
                    f"Ignored unsupported coin '{value}'.",
                )
            )
            return

        self._emit(CoinEvent(value))

    def _emit(self, outcome: Outcome) -> None:
        try:
            self._sink(outcome)
        except Exception as e:
            logger.error(f"Coin decoder sink error: {e}")
