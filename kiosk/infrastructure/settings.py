"""
Application settings.

Frozen dataclass sections aggregated into one ``Settings`` object.
A handful of ``KIOSK_*`` environment variables override the defaults.
"""

import os
from dataclasses import dataclass, field
from typing import Final, Optional


# =============================================================================
# Configuration Classes
# =============================================================================


@dataclass(frozen=True)
class ServerSettings:
    """HTTP server settings."""

    host: str = "0.0.0.0"
    port: int = 3000
    # Used to build upload URLs when the request host is not reachable by phones
    public_base_url: Optional[str] = None


@dataclass(frozen=True)
class SerialPortSettings:
    """Coin acceptor serial port configuration."""

    # None means "first port reported by the OS"
    port: Optional[str] = None
    baudrate: int = 9600
    enabled: bool = True
    fragment_window_ms: int = 140


@dataclass(frozen=True)
class RedisSettings:
    """Redis connection settings."""

    host: str = "localhost"
    port: int = 6379
    decode_responses: bool = True


@dataclass(frozen=True)
class LedgerSettings:
    """Ledger persistence settings."""

    backend: str = "json"  # "json" or "redis"
    path: str = "db.json"
    redis_key: str = "kiosk:ledger"


@dataclass(frozen=True)
class UploadSettings:
    """Wireless upload session settings."""

    upload_dir: str = "uploads"
    max_file_size: int = 25 * 1024 * 1024  # 25 MiB
    session_ttl_seconds: int = 30 * 60
    allowed_extensions: frozenset[str] = frozenset(
        {"pdf", "doc", "docx", "png", "jpg", "jpeg"}
    )


@dataclass(frozen=True)
class PricingSettings:
    """Per-page prices."""

    print_per_page: float = 5
    copy_per_page: float = 3
    color_surcharge: float = 2


@dataclass(frozen=True)
class PrintSettings:
    """Print dispatch settings."""

    # argv prefix, the document path is appended
    command: tuple[str, ...] = ("lp",)
    enabled: bool = True


@dataclass(frozen=True)
class ServiceSettings:
    """External service URLs."""

    loki_url: Optional[str] = None
    websocket_url: Optional[str] = None


@dataclass(frozen=True)
class LoggingSettings:
    """Logging settings."""

    level: str = "DEBUG"
    log_file: Optional[str] = "logs/kiosk.log"
    max_bytes: int = 5 * 1024 * 1024  # 5 MiB
    backup_count: int = 3
    app_label: str = "coin_kiosk"


# =============================================================================
# Main Settings
# =============================================================================


@dataclass
class Settings:
    """
    Main application settings.

    Aggregates all configuration sections.
    """

    server: ServerSettings = field(default_factory=ServerSettings)
    serial: SerialPortSettings = field(default_factory=SerialPortSettings)
    redis: RedisSettings = field(default_factory=RedisSettings)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    upload: UploadSettings = field(default_factory=UploadSettings)
    pricing: PricingSettings = field(default_factory=PricingSettings)
    printing: PrintSettings = field(default_factory=PrintSettings)
    services: ServiceSettings = field(default_factory=ServiceSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


# =============================================================================
# Environment Overrides
# =============================================================================


ENV_PREFIX: Final[str] = "KIOSK_"


def _env(name: str) -> Optional[str]:
    value = os.environ.get(ENV_PREFIX + name)
    return value if value else None


def _env_flag(name: str, default: bool) -> bool:
    value = _env(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    """
    Build settings from defaults and environment overrides.

    Returns:
        Settings instance.
    """
    serial = SerialPortSettings(
        port=_env("SERIAL_PORT"),
        enabled=_env_flag("SERIAL_ENABLED", True),
    )
    ledger = LedgerSettings(
        backend=_env("LEDGER_BACKEND") or LedgerSettings.backend,
        path=_env("LEDGER_PATH") or LedgerSettings.path,
    )
    redis = RedisSettings(
        host=_env("REDIS_HOST") or RedisSettings.host,
        port=int(_env("REDIS_PORT") or RedisSettings.port),
    )
    upload = UploadSettings(
        upload_dir=_env("UPLOAD_DIR") or UploadSettings.upload_dir,
        session_ttl_seconds=int(
            _env("SESSION_TTL_SECONDS") or UploadSettings.session_ttl_seconds
        ),
    )
    server = ServerSettings(
        port=int(_env("PORT") or ServerSettings.port),
        public_base_url=_env("PUBLIC_BASE_URL"),
    )
    printing = PrintSettings(
        command=tuple((_env("PRINT_COMMAND") or "lp").split()),
        enabled=_env_flag("PRINT_ENABLED", True),
    )
    services = ServiceSettings(
        loki_url=_env("LOKI_URL"),
        websocket_url=_env("WS_URL"),
    )
    logging = LoggingSettings(
        level=_env("LOG_LEVEL") or LoggingSettings.level,
        log_file=_env("LOG_FILE") or LoggingSettings.log_file,
    )
    return Settings(
        server=server,
        serial=serial,
        redis=redis,
        ledger=ledger,
        upload=upload,
        printing=printing,
        services=services,
        logging=logging,
    )


# =============================================================================
# Settings Singleton
# =============================================================================


_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns:
        Settings instance.
    """
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
