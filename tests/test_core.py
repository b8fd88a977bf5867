"""
Unit tests for core value objects, exceptions, pricing and settings.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from unittest.mock import MagicMock

import pytest

from kiosk.core.exceptions import (
    ConflictError,
    DeviceError,
    DispatchError,
    InsufficientBalanceError,
    KioskError,
    SessionNotFoundError,
    ValidationError,
)
from kiosk.core.value_objects import (
    CoinEvent,
    ColorMode,
    ConnectivityStatus,
    LedgerSnapshot,
    Money,
    PrintMode,
    UploadErrorCode,
    UploadResult,
)
from kiosk.domain.payment_state_machine import (
    ConfirmationContext,
    ConfirmationPhase,
    InvalidTransitionError,
)
from kiosk.domain.pricing import calculate_job_amount
from kiosk.infrastructure.print_dispatcher import CommandPrintDispatcher, NullPrintDispatcher
from kiosk.infrastructure.settings import LoggingSettings, PricingSettings, load_settings
from kiosk.loggers import LokiHandler, build_handlers


# =============================================================================
# Value Objects Tests
# =============================================================================


class TestMoney:
    """Tests for Money value object."""

    def test_money_from_amount(self):
        """Test creating Money from whole units."""
        assert Money.from_amount(7).cents == 700
        assert Money.from_amount(2.5).cents == 250

    def test_amount_is_int_when_whole(self):
        """Test that whole amounts come back as integers."""
        assert Money(cents=1500).amount == 15
        assert isinstance(Money(cents=1500).amount, int)
        assert Money(cents=1550).amount == 15.5

    def test_money_arithmetic(self):
        """Test adding and subtracting Money."""
        assert Money(cents=100) + Money(cents=50) == Money(cents=150)
        assert Money(cents=100) - Money(cents=30) == Money(cents=70)

    def test_money_subtraction_no_negative(self):
        """Test that Money subtraction doesn't go negative."""
        assert (Money(cents=100) - Money(cents=500)).cents == 0

    def test_money_negative_raises(self):
        """Test that negative cents raise."""
        with pytest.raises(ValueError):
            Money(cents=-1)

    def test_money_ordering(self):
        """Test that Money compares by value."""
        assert Money(cents=300) < Money(cents=700)

    def test_money_str(self):
        """Test Money string representation."""
        assert str(Money(cents=5050)) == "50.50"


class TestValueObjects:
    """Tests for the other value objects."""

    def test_coin_event_rejects_unsupported_value(self):
        """Test that only accepted denominations form a coin event."""
        assert CoinEvent(20).value == 20
        with pytest.raises(ValueError):
            CoinEvent(2)

    def test_snapshot_available(self):
        """Test that the available balance excludes holds."""
        snapshot = LedgerSnapshot(balance=Money(cents=1000), held=Money(cents=700))
        assert snapshot.available == Money(cents=300)
        assert snapshot.to_dict() == {"balance": 10, "earnings": 0}

    def test_connectivity_status_to_dict(self):
        """Test the serial status shape."""
        status = ConnectivityStatus.disconnected("gone", "/dev/ttyUSB0")
        assert status.to_dict() == {
            "connected": False,
            "portIdentifier": "/dev/ttyUSB0",
            "lastError": "gone",
        }

    def test_failed_upload_result_to_dict(self):
        """Test the refusal body returned to the phone."""
        result = UploadResult.failed(UploadErrorCode.INVALID_TOKEN, "Invalid upload token.")
        assert result.to_dict() == {"code": "INVALID_TOKEN", "error": "Invalid upload token."}


# =============================================================================
# Exception Tests
# =============================================================================


class TestExceptions:
    """Tests for custom exceptions."""

    def test_kiosk_error_to_dict(self):
        """Test KioskError creation and to_dict."""
        error = KioskError("Test error", code="TEST_001", details={"extra": 1})
        assert error.to_dict() == {"code": "TEST_001", "error": "Test error", "extra": 1}

    def test_status_codes(self):
        """Test the HTTP status of each error family."""
        assert ValidationError("x").status_code == 400
        assert SessionNotFoundError("x").status_code == 404
        assert ConflictError("x").code == "ALREADY_UPLOADED"
        assert DispatchError("x").status_code == 502

    def test_insufficient_balance_echoes_balance(self):
        """Test that the current balance travels with the error."""
        error = InsufficientBalanceError("Insufficient balance", balance=10, required=50)
        assert error.to_dict() == {
            "code": "INSUFFICIENT_BALANCE",
            "error": "Insufficient balance",
            "balance": 10,
            "required": 50,
        }

    def test_device_error_with_device_name(self):
        """Test DeviceError includes device name."""
        error = DeviceError("Connection failed", device_name="coin_acceptor")
        assert error.details["device"] == "coin_acceptor"


# =============================================================================
# Confirmation Phases Tests
# =============================================================================


class TestConfirmationContext:
    """Tests for the confirmation phase machine."""

    def test_settled_path(self):
        """Test the full print path."""
        context = ConfirmationContext()
        for phase in (
            ConfirmationPhase.RESERVED,
            ConfirmationPhase.DISPATCHING,
            ConfirmationPhase.SETTLED,
        ):
            context.advance(phase)
        assert context.is_finished
        assert context.history[0] is ConfirmationPhase.VALIDATING

    def test_reject_records_reason(self):
        """Test that a rejection is terminal and keeps its reason."""
        context = ConfirmationContext()
        context.reject("Invalid amount")
        assert context.phase is ConfirmationPhase.REJECTED
        assert context.error == "Invalid amount"
        with pytest.raises(InvalidTransitionError):
            context.advance(ConfirmationPhase.RESERVED)

    def test_cannot_settle_without_reservation(self):
        """Test that settlement requires a reservation."""
        with pytest.raises(InvalidTransitionError):
            ConfirmationContext().advance(ConfirmationPhase.SETTLED)

    def test_release_after_dispatch(self):
        """Test that a failed dispatch ends in RELEASED."""
        context = ConfirmationContext()
        context.advance(ConfirmationPhase.RESERVED)
        context.advance(ConfirmationPhase.DISPATCHING)
        context.release("Printer offline")
        assert context.phase is ConfirmationPhase.RELEASED


# =============================================================================
# Pricing Tests
# =============================================================================


class TestPricing:
    """Tests for job pricing."""

    @pytest.mark.parametrize(
        "mode, color, copies, expected",
        [
            (PrintMode.PRINT, ColorMode.GRAYSCALE, 1, 5.0),
            (PrintMode.PRINT, ColorMode.COLORED, 2, 14.0),
            (PrintMode.COPY, ColorMode.GRAYSCALE, 3, 9.0),
            (PrintMode.COPY, ColorMode.COLORED, 2.9, 10.0),
            (PrintMode.PRINT, ColorMode.GRAYSCALE, 0, 5.0),
            (PrintMode.PRINT, ColorMode.GRAYSCALE, float("nan"), 5.0),
        ],
    )
    def test_calculate_job_amount(self, mode, color, copies, expected):
        """Test base price, colour surcharge and copy flooring."""
        assert calculate_job_amount(mode, color, copies, PricingSettings()) == expected


# =============================================================================
# Settings Tests
# =============================================================================


class TestSettings:
    """Tests for environment overrides."""

    def test_env_overrides(self, monkeypatch):
        """Test that KIOSK_* variables override defaults."""
        monkeypatch.setenv("KIOSK_SERIAL_PORT", "/dev/ttyACM0")
        monkeypatch.setenv("KIOSK_SERIAL_ENABLED", "no")
        monkeypatch.setenv("KIOSK_LEDGER_BACKEND", "redis")
        monkeypatch.setenv("KIOSK_SESSION_TTL_SECONDS", "60")
        monkeypatch.setenv("KIOSK_PRINT_COMMAND", "lp -d office")

        settings = load_settings()

        assert settings.serial.port == "/dev/ttyACM0"
        assert settings.serial.enabled is False
        assert settings.ledger.backend == "redis"
        assert settings.upload.session_ttl_seconds == 60
        assert settings.printing.command == ("lp", "-d", "office")

    def test_defaults(self, monkeypatch):
        """Test the documented defaults."""
        for name in ("KIOSK_SERIAL_PORT", "KIOSK_LEDGER_BACKEND", "KIOSK_PORT"):
            monkeypatch.delenv(name, raising=False)
        settings = load_settings()

        assert settings.serial.baudrate == 9600
        assert settings.serial.fragment_window_ms == 140
        assert settings.upload.max_file_size == 25 * 1024 * 1024
        assert settings.server.port == 3000
        assert settings.ledger.backend == "json"


# =============================================================================
# Print Dispatcher Tests
# =============================================================================


class TestPrintDispatchers:
    """Tests for the print collaborators."""

    @pytest.mark.asyncio
    async def test_command_dispatch_runs_in_background(self, tmp_path):
        """Test that the command is started with the document appended."""
        marker = tmp_path / "printed.txt"
        script = f"import sys, pathlib; pathlib.Path({str(marker)!r}).write_text(sys.argv[1])"
        dispatcher = CommandPrintDispatcher((sys.executable, "-c", script))

        await dispatcher.dispatch("/uploads/doc.pdf")
        await dispatcher.wait_idle(timeout=10)

        assert marker.read_text() == "/uploads/doc.pdf"

    @pytest.mark.asyncio
    async def test_missing_command_raises(self):
        """Test that a command that cannot start is a DispatchError."""
        dispatcher = CommandPrintDispatcher(("/nonexistent/kiosk-printer",))
        with pytest.raises(DispatchError):
            await dispatcher.dispatch("/uploads/doc.pdf")

    def test_empty_command_rejected(self):
        """Test that an empty command is a configuration error."""
        with pytest.raises(ValueError):
            CommandPrintDispatcher(())

    @pytest.mark.asyncio
    async def test_null_dispatcher_records(self):
        """Test that the disabled dispatcher only records."""
        dispatcher = NullPrintDispatcher()
        await dispatcher.dispatch("/uploads/doc.pdf")
        assert dispatcher.dispatched == ["/uploads/doc.pdf"]


# =============================================================================
# Logging Tests
# =============================================================================


class TestLogging:
    """Tests for the logging handlers."""

    def test_console_only_without_file_or_loki(self):
        """Test that only the console handler is built by default."""
        handlers = build_handlers(LoggingSettings(log_file=None))
        assert len(handlers) == 1
        assert not isinstance(handlers[0], (RotatingFileHandler, LokiHandler))

    def test_file_and_loki_handlers(self, tmp_path):
        """Test that the file and Loki handlers follow the settings."""
        config = LoggingSettings(log_file=str(tmp_path / "logs" / "kiosk.log"), backup_count=7)
        handlers = build_handlers(config, loki_url="http://loki.local/loki/api/v1/push")
        try:
            file_handler = next(h for h in handlers if isinstance(h, RotatingFileHandler))
            assert file_handler.backupCount == 7
            assert (tmp_path / "logs").is_dir()
            assert any(isinstance(h, LokiHandler) for h in handlers)
        finally:
            for handler in handlers:
                handler.close()

    def test_loki_handler_posts_record(self):
        """Test the Loki push payload."""
        handler = LokiHandler("http://loki.local/push", {"app": "coin_kiosk"})
        handler._client = MagicMock()
        record = logging.LogRecord("KIOSK", logging.WARNING, __file__, 1, "coin jam", None, None)

        handler.emit(record)

        url = handler._client.post.call_args.args[0]
        payload = handler._client.post.call_args.kwargs["json"]
        assert url == "http://loki.local/push"
        stream = payload["streams"][0]
        assert stream["stream"] == {"app": "coin_kiosk", "level": "warning"}
        assert stream["values"][0][1] == "coin jam"
