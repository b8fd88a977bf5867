"""
Pytest configuration for kiosk engine tests.

Provides in-memory collaborators: a manually driven scheduler, a ledger
store that can be told to fail, and a recording print dispatcher.
"""

import os
import tempfile
from pathlib import Path

# Must be set before kiosk.loggers is imported
os.environ.setdefault(
    "KIOSK_LOG_FILE", str(Path(tempfile.gettempdir()) / "kiosk-tests" / "kiosk.log")
)
os.environ.setdefault("KIOSK_SERIAL_ENABLED", "false")
os.environ.setdefault("KIOSK_PRINT_ENABLED", "false")

import pytest

from kiosk.core.exceptions import DispatchError, RepositoryError
from kiosk.core.interfaces import LedgerRecord
from kiosk.core.value_objects import Money
from kiosk.application.session_store import UploadSessionStore
from kiosk.domain.ledger import BalanceLedger
from kiosk.notifier import RealtimeNotifier


# =============================================================================
# Fakes
# =============================================================================


class FakeTimer:
    def __init__(self, when, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Scheduler whose clock only moves when ``advance`` is called."""

    def __init__(self):
        self.now = 0.0
        self.timers = []

    def call_later(self, delay, callback):
        timer = FakeTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    def advance(self, seconds):
        self.now += seconds
        due = [t for t in self.timers if t.when <= self.now]
        self.timers = [t for t in self.timers if t.when > self.now]
        for timer in sorted(due, key=lambda t: t.when):
            if not timer.cancelled:
                timer.callback()

    @property
    def active(self):
        return [t for t in self.timers if not t.cancelled]


class MemoryLedgerStore:
    """Ledger store kept in memory; ``fail`` makes every save raise, ``fail_load`` every load."""

    def __init__(self, balance=0, earnings=0):
        self.record = LedgerRecord(
            balance=Money.from_amount(balance),
            earnings=Money.from_amount(earnings),
        )
        self.saves = 0
        self.fail = False
        self.fail_load = False

    async def load(self):
        if self.fail_load:
            raise RepositoryError("store unreachable")
        return self.record.copy()

    async def save(self, record):
        if self.fail:
            raise RepositoryError("disk full")
        self.record = record.copy()
        self.saves += 1


class RecordingDispatcher:
    """Print dispatcher that records paths; ``fail`` makes dispatch raise."""

    def __init__(self):
        self.dispatched = []
        self.fail = False

    async def dispatch(self, document_path):
        if self.fail:
            raise DispatchError("Printer offline")
        self.dispatched.append(document_path)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryLedgerStore()


@pytest.fixture
def notifier():
    return RealtimeNotifier()


@pytest.fixture
def events(notifier):
    """Events published on ``notifier`` as (event, data, room) tuples."""
    received = []

    async def handler(event, data, room):
        received.append((event, data, room))

    notifier.register_handler(handler)
    return received


@pytest.fixture
def ledger(store, notifier):
    return BalanceLedger(store, notifier)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def sessions(tmp_path, clock):
    return UploadSessionStore(
        upload_dir=tmp_path / "uploads",
        max_file_size=1024,
        ttl_seconds=600,
        clock=clock,
    )
