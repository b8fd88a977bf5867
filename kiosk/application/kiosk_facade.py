"""
Kiosk Facade - Unified interface for the kiosk engine.

Builds the ledger, upload sessions, coin intake and confirmation
services from settings and exposes the operations the HTTP layer needs.
"""

import asyncio
from typing import Any, Optional

from redis.asyncio import Redis

from kiosk.core.exceptions import SessionNotFoundError
from kiosk.core.interfaces import LedgerStore, PrintDispatcher, Scheduler
from kiosk.core.value_objects import ColorMode, ConnectivityStatus, PrintMode, UploadResult
from kiosk.devices.serial_coin_reader import SerialCoinReader
from kiosk.domain.ledger import BalanceLedger
from kiosk.domain.pricing import calculate_job_amount
from kiosk.infrastructure.ledger_store import JsonFileLedgerStore, RedisLedgerStore
from kiosk.infrastructure.print_dispatcher import CommandPrintDispatcher, NullPrintDispatcher
from kiosk.infrastructure.settings import Settings, get_settings
from kiosk.loggers import logger
from kiosk.notifier import RealtimeNotifier

from .coin_intake import CoinIntakeService
from .payment_confirmation import PaymentConfirmationService
from .session_store import IncomingFile, UploadSessionStore


SESSION_PURGE_INTERVAL_S = 60.0


class KioskFacade:
    """
    Facade for the kiosk engine.

    Every collaborator can be injected; the defaults are built from
    settings.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[LedgerStore] = None,
        dispatcher: Optional[PrintDispatcher] = None,
        notifier: Optional[RealtimeNotifier] = None,
        scheduler: Optional[Scheduler] = None,
        enable_serial: Optional[bool] = None,
    ) -> None:
        """
        Initialize the facade.

        Args:
            settings: Application settings.
            store: Ledger store; chosen by ``settings.ledger.backend`` if omitted.
            dispatcher: Print dispatcher; the configured command if omitted.
            notifier: Realtime notifier.
            scheduler: Scheduler for the coin fragment timer.
            enable_serial: Override ``settings.serial.enabled``.
        """
        self.settings = settings or get_settings()
        self._redis: Optional[Redis] = None

        self.notifier = notifier or RealtimeNotifier(self.settings.services.websocket_url)
        self.ledger = BalanceLedger(store or self._build_store(), self.notifier)
        self.sessions = UploadSessionStore(
            upload_dir=self.settings.upload.upload_dir,
            max_file_size=self.settings.upload.max_file_size,
            allowed_extensions=self.settings.upload.allowed_extensions,
            ttl_seconds=self.settings.upload.session_ttl_seconds,
        )
        self.dispatcher = dispatcher or self._build_dispatcher()
        self.intake = CoinIntakeService(
            self.ledger,
            self.notifier,
            scheduler=scheduler,
            fragment_window=self.settings.serial.fragment_window_ms / 1000,
        )
        self.confirmation = PaymentConfirmationService(
            self.ledger, self.sessions, self.dispatcher
        )
        self.serial_reader = SerialCoinReader(
            self.intake.feed_line,
            port=self.settings.serial.port,
            baudrate=self.settings.serial.baudrate,
        )
        self._serial_enabled = (
            self.settings.serial.enabled if enable_serial is None else enable_serial
        )
        self._purge_task: Optional[asyncio.Task] = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Load the ledger and start coin intake."""
        await self.ledger.init()
        self.intake.start()
        if self._serial_enabled:
            await self.serial_reader.start()
        else:
            logger.info("Serial coin intake disabled by configuration")
        self._purge_task = asyncio.create_task(self._purge_loop())
        logger.info("Kiosk engine started")

    async def shutdown(self) -> None:
        """Stop coin intake and flush the ledger."""
        try:
            if self._purge_task is not None:
                self._purge_task.cancel()
                try:
                    await self._purge_task
                except asyncio.CancelledError:
                    pass
                self._purge_task = None
            await self.serial_reader.stop()
            await self.intake.stop()
            await self.ledger.flush()
            logger.info("Kiosk engine shut down successfully")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")
        finally:
            if self._redis is not None:
                await self._redis.aclose()
                self._redis = None

    async def _purge_loop(self) -> None:
        while True:
            await asyncio.sleep(SESSION_PURGE_INTERVAL_S)
            self.sessions.purge_expired()

    # =========================================================================
    # Balance Operations
    # =========================================================================

    def get_balance(self) -> dict[str, Any]:
        return self.ledger.snapshot().to_dict()

    async def reset_balance(self) -> dict[str, Any]:
        snapshot = await self.ledger.reset()
        return {"ok": True, **snapshot.to_dict()}

    async def confirm_payment(
        self,
        amount: Any,
        mode: Any,
        session_id: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> dict[str, Any]:
        return await self.confirmation.confirm(amount, mode, session_id, filename)

    def quote(self, mode: PrintMode, color_mode: ColorMode, copies: float) -> dict[str, Any]:
        amount = calculate_job_amount(mode, color_mode, copies, self.settings.pricing)
        return {"amount": amount}

    # =========================================================================
    # Session Operations
    # =========================================================================

    def create_session(self, base_url: str) -> dict[str, Any]:
        return self.sessions.create_session(self.settings.server.public_base_url or base_url)

    def get_session(self, session_id: str) -> dict[str, Any]:
        session = self.sessions.try_get_session(session_id)
        if session is None:
            raise SessionNotFoundError("Session not found.")
        return session

    def get_session_by_token(self, token: str) -> dict[str, Any]:
        session = self.sessions.try_get_session_by_token(token)
        if session is None:
            raise SessionNotFoundError("Session not found.")
        return session

    async def upload(self, session_id: str, token: str, file: IncomingFile) -> UploadResult:
        """Store an upload and announce its progress to the session room."""
        await self.notifier.upload_started(session_id, file.filename)
        result = await self.sessions.store_upload(session_id, token, file)
        if result.success and result.document is not None:
            await self.notifier.upload_completed(session_id, result.document.to_dict())
        else:
            logger.warning(
                f"Upload to session {session_id} failed: "
                f"{result.error_code.value if result.error_code else 'unknown'}"
            )
            await self.notifier.upload_failed(session_id)
        return result

    # =========================================================================
    # Device Operations
    # =========================================================================

    def serial_status(self) -> ConnectivityStatus:
        return self.serial_reader.status

    # =========================================================================
    # Builders
    # =========================================================================

    def _build_store(self) -> LedgerStore:
        backend = self.settings.ledger.backend
        if backend == "redis":
            self._redis = Redis(
                host=self.settings.redis.host,
                port=self.settings.redis.port,
                decode_responses=self.settings.redis.decode_responses,
            )
            return RedisLedgerStore(self._redis, self.settings.ledger.redis_key)
        if backend != "json":
            logger.warning(f"Unknown ledger backend {backend!r}, using json")
        return JsonFileLedgerStore(self.settings.ledger.path)

    def _build_dispatcher(self) -> PrintDispatcher:
        if not self.settings.printing.enabled:
            return NullPrintDispatcher()
        return CommandPrintDispatcher(self.settings.printing.command)
