"""
Interfaces (Protocols) for the kiosk engine.

Defines contracts for persistence, dispatch and scheduling
collaborators using Python's Protocol for structural subtyping.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from .value_objects import Money


# =============================================================================
# Data Classes
# =============================================================================


COIN_STAT_KEYS: dict[int, str] = {1: "one", 5: "five", 10: "ten", 20: "twenty"}


def _empty_coin_stats() -> dict[str, int]:
    return {name: 0 for name in COIN_STAT_KEYS.values()}


def _empty_job_stats() -> dict[str, int]:
    return {"total": 0, "print": 0, "copy": 0}


@dataclass
class LedgerRecord:
    """Durable ledger record as written to the store."""

    balance: Money = field(default_factory=Money)
    earnings: Money = field(default_factory=Money)
    coin_stats: dict[str, int] = field(default_factory=_empty_coin_stats)
    job_stats: dict[str, int] = field(default_factory=_empty_job_stats)

    def copy(self) -> LedgerRecord:
        return LedgerRecord(
            balance=self.balance,
            earnings=self.earnings,
            coin_stats=dict(self.coin_stats),
            job_stats=dict(self.job_stats),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "balance": self.balance.amount,
            "earnings": self.earnings.amount,
            "coinStats": dict(self.coin_stats),
            "jobStats": dict(self.job_stats),
        }

    @classmethod
    def from_dict(cls, data: Any) -> LedgerRecord:
        """
        Normalize a raw stored record.

        Missing, non-finite or negative values fall back to defaults.
        """
        if not isinstance(data, dict):
            return cls()

        def money(value: Any) -> Money:
            number = _finite_or(value, 0)
            return Money.from_amount(number) if number >= 0 else Money()

        def counters(raw: Any, defaults: dict[str, int]) -> dict[str, int]:
            raw = raw if isinstance(raw, dict) else {}
            return {
                key: int(_finite_or(raw.get(key), default))
                for key, default in defaults.items()
            }

        return cls(
            balance=money(data.get("balance")),
            earnings=money(data.get("earnings")),
            coin_stats=counters(data.get("coinStats"), _empty_coin_stats()),
            job_stats=counters(data.get("jobStats"), _empty_job_stats()),
        )


def _finite_or(value: Any, fallback: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return fallback
    if not math.isfinite(value):
        return fallback
    return value


# =============================================================================
# Repository Interfaces
# =============================================================================


@runtime_checkable
class LedgerStore(Protocol):
    """Protocol for ledger persistence."""

    async def load(self) -> LedgerRecord:
        """Load the record, falling back to defaults on missing/corrupt data."""
        ...

    async def save(self, record: LedgerRecord) -> None:
        """
        Replace the stored record.

        Raises:
            RepositoryError: If the record could not be written.
        """
        ...


# =============================================================================
# Collaborator Interfaces
# =============================================================================


@runtime_checkable
class PrintDispatcher(Protocol):
    """Protocol for the physical print action."""

    async def dispatch(self, document_path: str) -> None:
        """
        Hand a document to the printer.

        Raises:
            DispatchError: If the print job could not be started.
        """
        ...


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


@runtime_checkable
class Scheduler(Protocol):
    """Schedules single-shot callbacks; injectable so timing is testable."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        ...


# =============================================================================
# Event Handler Interface
# =============================================================================


@runtime_checkable
class EventHandler(Protocol):
    """Protocol for realtime event subscribers."""

    async def __call__(self, event: str, data: Any, room: Optional[str]) -> None:
        ...
