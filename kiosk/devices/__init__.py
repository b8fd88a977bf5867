"""Device drivers."""

from .serial_coin_reader import SerialCoinReader, discover_port


__all__ = ["SerialCoinReader", "discover_port"]
