"""
Serial Coin Reader.

Reads the line-based output of the coin acceptor and hands every line
to a callback. Transport problems never propagate: the reader records a
``ConnectivityStatus`` and goes inactive.
"""

import asyncio
from typing import Callable, Final, Optional

import serial
import serial_asyncio
from serial.tools import list_ports

from kiosk.core.exceptions import DeviceConnectionError
from kiosk.core.value_objects import ConnectivityStatus
from kiosk.loggers import logger


# =============================================================================
# Serial Configuration
# =============================================================================

SERIAL_BAUDRATE: Final[int] = 9600
LINE_ENCODING: Final[str] = "ascii"

LineCallback = Callable[[str], None]


def discover_port() -> Optional[str]:
    """Return the first serial port reported by the OS, if any."""
    ports = sorted(list_ports.comports(), key=lambda p: p.device)
    if not ports:
        return None
    port = ports[0]
    logger.info(f"Serial port discovered: {port.device} ({port.description})")
    return port.device


class SerialCoinReader:
    """
    Asynchronous line reader for the coin acceptor.

    Attributes:
        port: Configured serial port, or None to auto-discover.
        baudrate: Serial speed.
    """

    DEVICE_NAME = "coin_acceptor"

    def __init__(
        self,
        on_line: LineCallback,
        port: Optional[str] = None,
        baudrate: int = SERIAL_BAUDRATE,
    ) -> None:
        """
        Initialize the reader.

        Args:
            on_line: Called with each decoded line, in arrival order.
            port: Serial port path; discovered when omitted.
            baudrate: Serial speed.
        """
        self.on_line = on_line
        self.port = port
        self.baudrate = baudrate
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._read_task: Optional[asyncio.Task] = None
        self._status = ConnectivityStatus.disconnected()

    @property
    def status(self) -> ConnectivityStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._read_task is not None and not self._read_task.done()

    async def start(self) -> bool:
        """
        Open the port and start reading.

        Returns:
            True if the port was opened.
        """
        if self.is_running:
            logger.warning("Serial coin reader already running")
            return True

        try:
            port = await self._open()
        except DeviceConnectionError as e:
            self._status = ConnectivityStatus.disconnected(e.message, self.port)
            logger.error(f"Coin acceptor unavailable, coin intake disabled: {e.message}")
            return False

        self._status = ConnectivityStatus(connected=True, port_identifier=port)
        self._read_task = asyncio.create_task(self._read_loop(port))
        logger.info(f"Coin acceptor: reading {port} at {self.baudrate} baud")
        return True

    async def stop(self) -> None:
        """Stop reading and close the port."""
        if self._read_task is not None:
            self._read_task.cancel()
            try:
                await self._read_task
            except asyncio.CancelledError:
                pass
            self._read_task = None
        self._close()
        if self._status.connected:
            self._status = ConnectivityStatus.disconnected(
                port_identifier=self._status.port_identifier
            )

    # =========================================================================
    # Internals
    # =========================================================================

    async def _open(self) -> str:
        port = self.port or await asyncio.to_thread(discover_port)
        if not port:
            raise DeviceConnectionError("No serial port found", device_name=self.DEVICE_NAME)
        try:
            self._reader, self._writer = await serial_asyncio.open_serial_connection(
                url=port,
                baudrate=self.baudrate,
            )
        except (serial.SerialException, OSError) as e:
            raise DeviceConnectionError(
                f"Could not open {port}: {e}", device_name=self.DEVICE_NAME
            ) from e
        return port

    async def _read_loop(self, port: str) -> None:
        assert self._reader is not None
        try:
            while True:
                raw = await self._reader.readline()
                if not raw:
                    raise DeviceConnectionError(
                        f"Serial port {port} closed", device_name=self.DEVICE_NAME
                    )
                line = raw.decode(LINE_ENCODING, errors="ignore")
                try:
                    self.on_line(line)
                except Exception as e:
                    logger.error(f"Coin line handler error: {e}")
        except asyncio.CancelledError:
            logger.info("Coin acceptor: read task cancelled")
            raise
        except DeviceConnectionError as e:
            self._set_failed(port, e.message)
        except (serial.SerialException, OSError) as e:
            self._set_failed(port, str(e))

    def _set_failed(self, port: str, message: str) -> None:
        logger.error(f"Coin acceptor disconnected: {message}")
        self._status = ConnectivityStatus.disconnected(message, port)
        self._close()

    def _close(self) -> None:
        if self._writer is not None:
            self._writer.close()
            self._writer = None
        self._reader = None
