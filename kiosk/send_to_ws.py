"""
WebSocket client for forwarding events to an external hub.

Used when the kiosk front-end is served by a separate push server.
"""

import json
from typing import Any, Optional

import websockets
from websockets.exceptions import WebSocketException

from kiosk.loggers import logger


async def send_to_ws(
    event: str,
    data: Any = None,
    ws_url: Optional[str] = None,
    room: Optional[str] = None,
) -> bool:
    """
    Send an event to the WebSocket hub.

    Args:
        event: The event name/type to send.
        data: Event payload (any JSON-serializable value).
        ws_url: WebSocket URL to connect to.
        room: Optional room the event is scoped to.

    Returns:
        True if the message was sent successfully, False otherwise.

    Example:
        await send_to_ws(
            event="coinAccepted",
            data={"value": 10, "balance": 25},
            ws_url="ws://localhost:8005/ws",
        )
    """
    if not ws_url:
        return False

    message = {"event": event, "data": data}
    if room:
        message["room"] = room

    try:
        async with websockets.connect(ws_url) as ws:
            await ws.send(json.dumps(message))
            logger.debug(f"WebSocket message sent: {event}")
            return True
    except (WebSocketException, OSError) as e:
        logger.warning(f"WebSocket connection error: {e}")
        return False
