"""
WebSocket hub for kiosk and phone clients.

Every client receives global events. Clients that send
``{"joinSession": "<id>"}`` also receive the upload events of that
session's room.
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Optional

from fastapi import WebSocket, WebSocketDisconnect

from kiosk.loggers import logger
from kiosk.notifier import session_room


@dataclass(eq=False)
class Connection:
    websocket: WebSocket
    rooms: set[str] = field(default_factory=set)


class ConnectionHub:
    """Tracks open WebSocket connections and their rooms."""

    def __init__(self) -> None:
        self._connections: list[Connection] = []
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._connections)

    async def serve(self, websocket: WebSocket) -> None:
        """Accept a client and handle its messages until it disconnects."""
        connection = Connection(websocket)
        # Registered under the lock so no broadcast can miss an accepted client
        async with self._lock:
            await websocket.accept()
            self._connections.append(connection)
        logger.debug(f"WebSocket client connected ({len(self._connections)} open)")

        try:
            while True:
                message = await websocket.receive_text()
                self._handle_message(connection, message)
        except WebSocketDisconnect:
            pass
        finally:
            async with self._lock:
                if connection in self._connections:
                    self._connections.remove(connection)
            logger.debug(f"WebSocket client disconnected ({len(self._connections)} open)")

    def _handle_message(self, connection: Connection, message: str) -> None:
        try:
            payload = json.loads(message)
        except json.JSONDecodeError:
            logger.debug(f"Ignoring non-JSON WebSocket message: {message[:80]!r}")
            return
        if not isinstance(payload, dict):
            return

        session_id = payload.get("joinSession")
        if isinstance(session_id, str) and session_id:
            connection.rooms.add(session_room(session_id))
            logger.debug(f"WebSocket client joined session {session_id}")

    async def broadcast(self, event: str, data: Any = None, room: Optional[str] = None) -> None:
        """
        Send an event to every client, or only to the members of ``room``.

        Clients whose socket fails are dropped.
        """
        message = json.dumps({"event": event, "data": data})
        async with self._lock:
            targets = [c for c in self._connections if room is None or room in c.rooms]

        stale: list[Connection] = []
        for connection in targets:
            try:
                await connection.websocket.send_text(message)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.debug(f"Dropping WebSocket client: {e}")
                stale.append(connection)

        if stale:
            async with self._lock:
                for connection in stale:
                    if connection in self._connections:
                        self._connections.remove(connection)
