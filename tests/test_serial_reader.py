"""
Tests for the serial coin reader.

The serial transport is replaced by an in-memory stream.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import serial

from kiosk.devices.serial_coin_reader import SerialCoinReader, discover_port


def stream_with(data: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return reader


class TestDiscovery:
    """Port auto-discovery."""

    def test_first_port_is_used(self):
        """Test that the first listed port is picked."""
        ports = [
            SimpleNamespace(device="/dev/ttyUSB1", description="b"),
            SimpleNamespace(device="/dev/ttyUSB0", description="a"),
        ]
        with patch("kiosk.devices.serial_coin_reader.list_ports.comports", return_value=ports):
            assert discover_port() == "/dev/ttyUSB0"

    def test_no_ports(self):
        """Test that no ports yields None."""
        with patch("kiosk.devices.serial_coin_reader.list_ports.comports", return_value=[]):
            assert discover_port() is None


class TestSerialCoinReader:
    """Connection handling and line delivery."""

    @pytest.mark.asyncio
    async def test_missing_device_is_not_fatal(self):
        """Test that an absent device leaves the reader inactive."""
        reader = SerialCoinReader(MagicMock())
        with patch("kiosk.devices.serial_coin_reader.list_ports.comports", return_value=[]):
            started = await reader.start()

        assert started is False
        assert reader.status.connected is False
        assert reader.status.last_error == "No serial port found"

    @pytest.mark.asyncio
    async def test_open_failure_is_not_fatal(self):
        """Test that a port that cannot be opened is reported in the status."""
        reader = SerialCoinReader(MagicMock(), port="/dev/ttyUSB0")
        opener = AsyncMock(side_effect=serial.SerialException("port busy"))
        with patch("serial_asyncio.open_serial_connection", new=opener):
            started = await reader.start()

        assert started is False
        status = reader.status.to_dict()
        assert status["connected"] is False
        assert status["portIdentifier"] == "/dev/ttyUSB0"
        assert "port busy" in status["lastError"]

    @pytest.mark.asyncio
    async def test_lines_are_delivered_in_order(self):
        """Test that every line is handed to the callback, then EOF disconnects."""
        lines = []
        reader = SerialCoinReader(lines.append, port="/dev/ttyUSB0")
        writer = MagicMock()
        opener = AsyncMock(return_value=(stream_with(b"5\r\n1\r\n0\r\n"), writer))

        with patch("serial_asyncio.open_serial_connection", new=opener):
            assert await reader.start() is True
            assert reader.status.connected is True
            await asyncio.wait_for(reader._read_task, timeout=1)

        assert lines == ["5\r\n", "1\r\n", "0\r\n"]
        assert reader.status.connected is False
        assert reader.status.last_error == "Serial port /dev/ttyUSB0 closed"
        writer.close.assert_called_once()
        opener.assert_awaited_once_with(url="/dev/ttyUSB0", baudrate=9600)

    @pytest.mark.asyncio
    async def test_callback_error_does_not_stop_reading(self):
        """Test that a failing line handler does not end the read loop."""
        seen = []

        def on_line(line):
            seen.append(line)
            if len(seen) == 1:
                raise ValueError("bad line")

        reader = SerialCoinReader(on_line, port="/dev/ttyUSB0")
        opener = AsyncMock(return_value=(stream_with(b"5\n10\n"), MagicMock()))
        with patch("serial_asyncio.open_serial_connection", new=opener):
            await reader.start()
            await asyncio.wait_for(reader._read_task, timeout=1)

        assert seen == ["5\n", "10\n"]

    @pytest.mark.asyncio
    async def test_stop_cancels_reading(self):
        """Test that stop ends an open connection cleanly."""
        stream = asyncio.StreamReader()
        writer = MagicMock()
        reader = SerialCoinReader(MagicMock(), port="/dev/ttyUSB0")
        with patch("serial_asyncio.open_serial_connection", new=AsyncMock(return_value=(stream, writer))):
            await reader.start()
            await reader.stop()

        assert not reader.is_running
        assert reader.status.connected is False
        assert reader.status.last_error is None
        writer.close.assert_called_once()
