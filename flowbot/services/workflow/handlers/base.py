from abc import ABC, abstractmethod
from typing import Optional

from flowbot.crud.base import SessionStore
from flowbot.logging import setup_logger
from flowbot.schemas import InboundMessage, SessionRecord, SessionStatus
from flowbot.services.workflow.cancellation import SessionCancellations


class BaseHandler(ABC):
    """Base class for inbound message handlers"""

    def __init__(self, sessions: SessionStore, cancellations: SessionCancellations):
        self.sessions = sessions
        self.cancellations = cancellations
        self.logger = setup_logger(__name__)

    @abstractmethod
    async def handle(
        self, message: InboundMessage, session: Optional[SessionRecord] = None
    ) -> bool:
        """Handle an inbound message, returning whether it was consumed"""
        pass

    async def fail_session(self, session_id: str, reason: str) -> None:
        self.logger.error(f"Session {session_id} failed: {reason}")
        await self.sessions.set_status(session_id, SessionStatus.ERROR)
        self.cancellations.discard(session_id)
