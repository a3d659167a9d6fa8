import asyncio
from typing import Dict

from flowbot.services.workflow.errors import SessionCancelledError


class SessionCancellations:
    """
    One cancellation event per running session.

    Pacing waits on the event instead of sleeping, so dropping a session
    wakes any pending execution before it reaches its next send.
    """

    def __init__(self):
        self._events: Dict[str, asyncio.Event] = {}

    def event_for(self, session_id: str) -> asyncio.Event:
        if session_id not in self._events:
            self._events[session_id] = asyncio.Event()
        return self._events[session_id]

    def cancel(self, session_id: str) -> None:
        event = self._events.pop(session_id, None)
        if event is not None:
            event.set()

    def discard(self, session_id: str) -> None:
        self._events.pop(session_id, None)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._events

    async def pause(self, session_id: str, event: asyncio.Event, seconds: float) -> None:
        """Wait for ``seconds`` unless the session is cancelled first."""
        if not event.is_set() and seconds > 0:
            try:
                await asyncio.wait_for(event.wait(), timeout=seconds)
            except asyncio.TimeoutError:
                pass
        if event.is_set():
            raise SessionCancelledError(session_id)
