"""
Print dispatchers.

The physical print action is an external command (``lp`` by default).
Dispatch only has to start the job; the exit status is collected in the
background and logged.
"""

import asyncio
from typing import Optional, Sequence

from kiosk.core.exceptions import DispatchError
from kiosk.loggers import logger


class CommandPrintDispatcher:
    """Starts a print command with the document path appended."""

    def __init__(self, command: Sequence[str] = ("lp",)) -> None:
        if not command:
            raise ValueError("Print command must not be empty")
        self._command = tuple(command)
        self._jobs: set[asyncio.Task] = set()

    async def dispatch(self, document_path: str) -> None:
        argv = (*self._command, document_path)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Print command {argv[0]!r} could not be started: {e}")
            raise DispatchError(f"Print command could not be started: {e}") from e

        logger.info(f"Print job started (pid {process.pid}): {document_path}")
        task = asyncio.create_task(self._watch(process, document_path))
        self._jobs.add(task)
        task.add_done_callback(self._jobs.discard)

    async def _watch(self, process: asyncio.subprocess.Process, document_path: str) -> None:
        _, stderr = await process.communicate()
        if process.returncode == 0:
            logger.info(f"Print job finished: {document_path}")
        else:
            message = stderr.decode(errors="replace").strip() if stderr else ""
            logger.error(
                f"Print job for {document_path} exited with {process.returncode}: {message}"
            )

    async def wait_idle(self, timeout: Optional[float] = None) -> None:
        """Wait for background print jobs to finish."""
        if self._jobs:
            await asyncio.wait(set(self._jobs), timeout=timeout)


class NullPrintDispatcher:
    """Dispatcher used when printing is disabled; only logs."""

    def __init__(self) -> None:
        self.dispatched: list[str] = []

    async def dispatch(self, document_path: str) -> None:
        logger.warning(f"Printing disabled, skipping dispatch of {document_path}")
        self.dispatched.append(document_path)
