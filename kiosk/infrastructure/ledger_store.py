"""
Ledger store implementations.

Durable load/save of the ledger record. Missing or corrupt data loads as
a default record; a backend that cannot be read raises RepositoryError
so the stored record is never replaced by defaults. Saving replaces the
whole record in one step so readers never observe a partial write.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path

from redis.asyncio import Redis
from redis.exceptions import RedisError

from kiosk.core.exceptions import RepositoryError
from kiosk.core.interfaces import LedgerRecord
from kiosk.loggers import logger


# =============================================================================
# JSON File Store
# =============================================================================


class JsonFileLedgerStore:
    """
    Ledger record kept in a JSON file.

    Writes go to a temporary file in the same directory which then
    replaces the target atomically.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    async def load(self) -> LedgerRecord:
        return await asyncio.to_thread(self._read)

    async def save(self, record: LedgerRecord) -> None:
        await asyncio.to_thread(self._write, record.to_dict())

    def _read(self) -> LedgerRecord:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info(f"Ledger file {self.path} not found, starting from defaults")
            return LedgerRecord()
        except OSError as e:
            raise RepositoryError(f"Could not read {self.path}: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Ledger file {self.path} is corrupt, starting from defaults: {e}")
            return LedgerRecord()
        return LedgerRecord.from_dict(data)

    def _write(self, data: dict) -> None:
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=directory
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, indent=2)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise RepositoryError(f"Could not write {self.path}: {e}") from e


# =============================================================================
# Redis Store
# =============================================================================


class RedisLedgerStore:
    """
    Ledger record kept as one JSON value under a Redis key.

    A single SET replaces the record, so the write is atomic for readers.
    """

    def __init__(self, redis: Redis, key: str = "kiosk:ledger") -> None:
        """
        Initialize the store.

        Args:
            redis: Redis client instance.
            key: Key holding the serialized record.
        """
        self._redis = redis
        self._key = key

    async def load(self) -> LedgerRecord:
        try:
            raw = await self._redis.get(self._key)
        except (RedisError, ConnectionError) as e:
            raise RepositoryError(f"Redis connection error: {e}") from e

        if not raw:
            return LedgerRecord()
        try:
            return LedgerRecord.from_dict(json.loads(raw))
        except json.JSONDecodeError as e:
            logger.error(f"Redis ledger value is corrupt, starting from defaults: {e}")
            return LedgerRecord()

    async def save(self, record: LedgerRecord) -> None:
        try:
            await self._redis.set(self._key, json.dumps(record.to_dict()))
        except (RedisError, ConnectionError) as e:
            raise RepositoryError(f"Redis connection error: {e}") from e
