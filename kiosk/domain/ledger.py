"""
Balance Ledger - Single writer for all monetary state.

Every mutation runs under one asyncio lock and is persisted before it
becomes visible. The new balance is broadcast after the lock is
released, so slow subscribers never delay the next mutation. A failed
write leaves the in-memory state untouched.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from kiosk.core.exceptions import (
    InsufficientBalanceError,
    LedgerPersistenceError,
    RepositoryError,
)
from kiosk.core.interfaces import COIN_STAT_KEYS, LedgerRecord, LedgerStore
from kiosk.core.value_objects import LedgerSnapshot, Money, PrintMode
from kiosk.loggers import logger
from kiosk.notifier import RealtimeNotifier


@dataclass(frozen=True)
class Hold:
    """Reservation of part of the balance for an in-flight charge."""

    hold_id: str
    amount: Money


class BalanceLedger:
    """
    Accumulated balance and lifetime earnings.

    Callers receive ``LedgerSnapshot`` copies; the record itself is never
    exposed. Holds reduce the available balance without touching the
    stored one until they are committed.

    The ledger refuses every mutation until ``init`` has loaded the
    stored record, so an unreadable store can never be overwritten with
    defaults.
    """

    def __init__(
        self,
        store: LedgerStore,
        notifier: Optional[RealtimeNotifier] = None,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._record = LedgerRecord()
        self._holds: dict[str, Hold] = {}
        self._lock = asyncio.Lock()
        self._loaded = False
        self._version = 0
        self._announced_version = 0

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    async def init(self) -> LedgerSnapshot:
        """
        Load state from the store and write back the normalized record.

        Raises:
            LedgerPersistenceError: If the store cannot be read. The ledger
                stays unavailable.
        """
        async with self._lock:
            try:
                record = await self._store.load()
            except RepositoryError as e:
                logger.critical(f"Ledger could not be loaded, refusing to start: {e}")
                raise LedgerPersistenceError(f"Ledger could not be loaded: {e}") from e

            self._record = record
            self._loaded = True
            try:
                await self._store.save(self._record)
            except RepositoryError as e:
                logger.error(f"Ledger write-back after load failed: {e}")
            logger.info(
                f"Ledger loaded: balance {self._record.balance}, "
                f"earnings {self._record.earnings}"
            )
            return self._snapshot()

    async def flush(self) -> None:
        """Persist the current record."""
        async with self._lock:
            if not self._loaded:
                logger.warning("Ledger never loaded, nothing to flush")
                return
            await self._persist(self._record)

    # =========================================================================
    # Reads
    # =========================================================================

    def snapshot(self) -> LedgerSnapshot:
        return self._snapshot()

    @property
    def coin_stats(self) -> dict[str, int]:
        return dict(self._record.coin_stats)

    @property
    def job_stats(self) -> dict[str, int]:
        return dict(self._record.job_stats)

    # =========================================================================
    # Mutations
    # =========================================================================

    async def credit_coin(self, value: int) -> LedgerSnapshot:
        """Add an accepted coin to the balance."""
        amount = Money.from_amount(value)

        def apply(record: LedgerRecord) -> None:
            record.balance = record.balance + amount
            stat = COIN_STAT_KEYS.get(value)
            if stat:
                record.coin_stats[stat] += 1

        async with self._lock:
            snapshot, version = await self._commit(apply, f"credit {amount}")
        await self._announce(snapshot, version)
        return snapshot

    async def reset(self) -> LedgerSnapshot:
        """
        Zero the balance; earnings are untouched.

        Amounts reserved by in-flight confirmations stay on the balance.
        """
        async with self._lock:
            held = self._held_total()

            def apply(record: LedgerRecord) -> None:
                record.balance = held

            snapshot, version = await self._commit(apply, "reset")
        await self._announce(snapshot, version)
        return snapshot

    async def hold(self, amount: Money) -> Hold:
        """
        Reserve ``amount`` of the available balance.

        Raises:
            InsufficientBalanceError: If the available balance is lower.
        """
        async with self._lock:
            self._require_loaded()
            available = self._record.balance - self._held_total()
            if available < amount:
                raise InsufficientBalanceError(
                    "Insufficient balance",
                    balance=self._record.balance.amount,
                    required=amount.amount,
                )
            hold = Hold(hold_id=uuid.uuid4().hex, amount=amount)
            self._holds[hold.hold_id] = hold
            logger.debug(f"Hold {hold.hold_id} placed for {amount}")
            return hold

    async def release(self, hold: Hold) -> None:
        """Drop a reservation without charging it."""
        async with self._lock:
            if self._holds.pop(hold.hold_id, None) is not None:
                logger.info(f"Hold {hold.hold_id} released ({hold.amount})")

    async def commit(self, hold: Hold, mode: PrintMode) -> LedgerSnapshot:
        """
        Settle a reservation: debit the balance and book the earnings.

        The hold is consumed only once the settlement is persisted.
        """
        async with self._lock:
            if hold.hold_id not in self._holds:
                raise KeyError(f"Unknown hold: {hold.hold_id}")

            def apply(record: LedgerRecord) -> None:
                record.balance = record.balance - hold.amount
                record.earnings = record.earnings + hold.amount
                record.job_stats["total"] += 1
                record.job_stats[mode.value] += 1

            snapshot, version = await self._commit(
                apply,
                f"settle {hold.amount} ({mode.value})",
                consumed_hold=hold.hold_id,
            )
        await self._announce(snapshot, version)
        return snapshot

    # =========================================================================
    # Internals
    # =========================================================================

    def _require_loaded(self) -> None:
        if not self._loaded:
            raise LedgerPersistenceError("Ledger is not loaded")

    async def _commit(
        self,
        apply: Callable[[LedgerRecord], None],
        description: str,
        consumed_hold: Optional[str] = None,
    ) -> tuple[LedgerSnapshot, int]:
        # Caller holds self._lock
        self._require_loaded()
        candidate = self._record.copy()
        apply(candidate)
        await self._persist(candidate)

        self._record = candidate
        if consumed_hold is not None:
            self._holds.pop(consumed_hold, None)
        self._version += 1

        snapshot = self._snapshot()
        logger.info(f"Ledger {description}: balance {snapshot.balance}")
        return snapshot, self._version

    async def _announce(self, snapshot: LedgerSnapshot, version: int) -> None:
        # Balance events carry absolute values: once a newer one went out, older ones are dropped
        if self._notifier is None or version <= self._announced_version:
            return
        self._announced_version = version
        await self._notifier.balance(snapshot.balance.amount)

    async def _persist(self, record: LedgerRecord) -> None:
        try:
            await self._store.save(record)
        except RepositoryError as e:
            logger.critical(f"Ledger persistence failed, change discarded: {e}")
            raise LedgerPersistenceError(f"Ledger persistence failed: {e}") from e

    def _held_total(self) -> Money:
        total = Money()
        for hold in self._holds.values():
            total = total + hold.amount
        return total

    def _snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            balance=self._record.balance,
            earnings=self._record.earnings,
            held=self._held_total(),
        )
