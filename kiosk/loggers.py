"""
Logging for the kiosk engine.

Every module logs through the shared ``KIOSK`` logger. Its handlers
follow the ``logging`` section of the settings: a coloured console, a
rotating file when ``log_file`` is set, and a Loki push handler when
``services.loki_url`` is set.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final, Optional

import colorlog
import httpx

from kiosk.infrastructure.settings import LoggingSettings, Settings, get_settings


LOGGER_NAME: Final[str] = "KIOSK"
DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"
FILE_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(module)s:%(lineno)d | %(message)s"
CONSOLE_FORMAT: Final[str] = (
    "%(log_color)s%(asctime)s | %(levelname)-8s%(reset)s | "
    "%(module)s:%(lineno)d | %(message)s"
)
LOKI_TIMEOUT: Final[float] = 2.0

LOG_COLORS: Final[dict[str, str]] = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}


class LokiHandler(logging.Handler):
    """Pushes each record as one entry to a Loki push endpoint."""

    def __init__(self, url: str, labels: dict[str, str]) -> None:
        super().__init__()
        self.url = url
        self.labels = dict(labels)
        self._client = httpx.Client(timeout=LOKI_TIMEOUT)

    def payload(self, record: logging.LogRecord) -> dict:
        stream = {**self.labels, "level": record.levelname.lower()}
        timestamp = str(int(record.created * 1_000_000_000))
        return {"streams": [{"stream": stream, "values": [[timestamp, self.format(record)]]}]}

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._client.post(self.url, json=self.payload(record))
        except Exception:
            # Reporting through the logger here would recurse
            self.handleError(record)

    def close(self) -> None:
        self._client.close()
        super().close()


def build_handlers(config: LoggingSettings, loki_url: Optional[str] = None) -> list[logging.Handler]:
    console = colorlog.StreamHandler()
    console.setFormatter(
        colorlog.ColoredFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT, log_colors=LOG_COLORS)
    )
    handlers: list[logging.Handler] = [console]

    if config.log_file:
        Path(config.log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            config.log_file,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        handlers.append(file_handler)

    if loki_url:
        loki = LokiHandler(loki_url, {"app": config.app_label})
        loki.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        handlers.append(loki)

    return handlers


def get_logger(settings: Optional[Settings] = None) -> logging.Logger:
    """
    Configure and return the shared kiosk logger.

    Calling it again replaces the handlers, so settings loaded later
    take effect without duplicating output.
    """
    settings = settings or get_settings()
    instance = logging.getLogger(LOGGER_NAME)
    instance.setLevel(settings.logging.level.upper())

    for handler in list(instance.handlers):
        instance.removeHandler(handler)
        handler.close()
    for handler in build_handlers(settings.logging, settings.services.loki_url):
        instance.addHandler(handler)
    return instance


logger = get_logger()
