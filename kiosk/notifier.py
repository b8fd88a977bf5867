"""
Realtime notifier for the kiosk engine.

Publish-subscribe fan-out of ledger and session state changes to the
push layer: in-process subscribers (the WebSocket hub) and, optionally,
an external WebSocket hub.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from kiosk.loggers import logger
from kiosk.send_to_ws import send_to_ws


Subscriber = Callable[[str, Any, Optional[str]], Awaitable[None]]


class EventType(str, Enum):
    """
    Events pushed to kiosk and phone clients.

    Names are the wire names the front-end listens for.
    """

    BALANCE = "balance"
    COIN_ACCEPTED = "coinAccepted"
    COIN_PARSER_WARNING = "coinParserWarning"
    UPLOAD_STARTED = "UploadStarted"
    UPLOAD_COMPLETED = "UploadCompleted"
    UPLOAD_FAILED = "UploadFailed"


def session_room(session_id: str) -> str:
    """Room that upload events for a session are scoped to."""
    return f"session:{session_id}"


class RealtimeNotifier:
    """
    Broadcasts events to registered subscribers.

    Subscriber failures are logged and never reach the publisher.

    Attributes:
        forward_url: External WebSocket hub to mirror events to, if any.
    """

    def __init__(self, forward_url: Optional[str] = None) -> None:
        self.forward_url = forward_url
        self._subscribers: list[Subscriber] = []

    def register_handler(self, handler: Subscriber) -> None:
        if handler not in self._subscribers:
            self._subscribers.append(handler)

    def unregister_handler(self, handler: Subscriber) -> None:
        try:
            self._subscribers.remove(handler)
        except ValueError:
            pass

    async def publish(
        self,
        event_type: Union[EventType, str],
        data: Any = None,
        room: Optional[str] = None,
    ) -> None:
        """
        Publish an event to every subscriber.

        Args:
            event_type: The type of event to publish.
            data: Event payload.
            room: Restrict delivery to clients that joined this room.
        """
        event = event_type.value if isinstance(event_type, EventType) else event_type
        handlers = list(self._subscribers)

        results = await asyncio.gather(
            *(handler(event, data, room) for handler in handlers),
            return_exceptions=True,
        )
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                logger.error(f"Realtime subscriber {handler!r} failed on {event}: {result}")

        if self.forward_url:
            await send_to_ws(event, data, ws_url=self.forward_url, room=room)

    # =========================================================================
    # Typed helpers
    # =========================================================================

    async def balance(self, balance: Union[int, float]) -> None:
        await self.publish(EventType.BALANCE, balance)

    async def coin_accepted(self, value: int, balance: Union[int, float]) -> None:
        await self.publish(EventType.COIN_ACCEPTED, {"value": value, "balance": balance})

    async def parser_warning(self, code: str, message: str) -> None:
        await self.publish(
            EventType.COIN_PARSER_WARNING, {"code": code, "message": message}
        )

    async def upload_started(self, session_id: str, filename: str) -> None:
        await self.publish(EventType.UPLOAD_STARTED, filename, room=session_room(session_id))

    async def upload_completed(self, session_id: str, document: dict[str, Any]) -> None:
        await self.publish(EventType.UPLOAD_COMPLETED, document, room=session_room(session_id))

    async def upload_failed(self, session_id: str) -> None:
        await self.publish(EventType.UPLOAD_FAILED, None, room=session_room(session_id))
