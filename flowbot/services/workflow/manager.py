import asyncio
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from flowbot.config import settings
from flowbot.crud.base import DefinitionStore, SessionStore
from flowbot.logging import setup_logger, log_exception
from flowbot.schemas import InboundMessage, SessionRecord, SessionStatus
from flowbot.services.messaging.client import MessagingClient
from flowbot.services.workflow.cancellation import SessionCancellations
from flowbot.services.workflow.handlers.executor import NodeExecutor
from flowbot.services.workflow.handlers.response import ResponseInterpreter
from flowbot.services.workflow.handlers.trigger import TriggerMatcher

QueueItem = Tuple[InboundMessage, asyncio.Future]


class WorkflowManager:
    """
    Entry point for inbound messages.

    Messages are queued per conversation and drained by one processor task
    per conversation, so a conversation's session is never read and written
    by two messages at once while different conversations run concurrently.
    """

    def __init__(
        self,
        client: MessagingClient,
        definitions: DefinitionStore,
        sessions: SessionStore,
        max_hops: Optional[int] = None,
        pacing_delay: Optional[float] = None,
        gallery_delay: Optional[float] = None,
        idle_timeout: Optional[timedelta] = None,
    ):
        self.logger = setup_logger(__name__)
        self.sessions = sessions
        self.cancellations = SessionCancellations()
        self.idle_timeout = (
            idle_timeout
            if idle_timeout is not None
            else timedelta(minutes=settings.SESSION_IDLE_TIMEOUT_MINUTES)
        )

        self.executor = NodeExecutor(
            client,
            sessions,
            self.cancellations,
            max_hops=max_hops,
            pacing_delay=pacing_delay,
            gallery_delay=gallery_delay,
        )
        self.trigger_matcher = TriggerMatcher(
            sessions, self.cancellations, definitions, self.executor
        )
        self.response_interpreter = ResponseInterpreter(
            sessions, self.cancellations, definitions, self.executor
        )

        self.conversation_queues: Dict[str, asyncio.Queue] = {}
        self.conversation_tasks: Dict[str, asyncio.Task] = {}

    async def process_message(self, message: InboundMessage) -> bool:
        """
        Queue an inbound message and wait for it to be processed.

        Returns True if a workflow consumed the message, False if the caller
        should treat it as ordinary chat.
        """
        conversation_id = message.conversation_id
        future = asyncio.get_running_loop().create_future()

        queue = self._get_message_queue(conversation_id)
        queue.put_nowait((message, future))

        task = self.conversation_tasks.get(conversation_id)
        if task is None or task.done():
            self.logger.debug(f"Starting message processor for {conversation_id}")
            self.conversation_tasks[conversation_id] = asyncio.create_task(
                self._message_processor(conversation_id)
            )

        return await future

    async def _message_processor(self, conversation_id: str) -> None:
        """Drain the conversation's queue one message at a time."""
        queue = self._get_message_queue(conversation_id)
        while True:
            try:
                message, future = queue.get_nowait()
            except asyncio.QueueEmpty:
                break

            consumed = False
            try:
                consumed = await self.handle_inbound(message)
            except asyncio.CancelledError:
                future.cancel()
                raise
            except Exception as e:
                log_exception(
                    self.logger,
                    f"Error processing message for {conversation_id}: {message.text[:20]!r}",
                    e,
                )
            finally:
                queue.task_done()

            if not future.done():
                future.set_result(consumed)

        # Nothing awaits between the empty check and here
        self.conversation_queues.pop(conversation_id, None)
        self.conversation_tasks.pop(conversation_id, None)

    async def handle_inbound(self, message: InboundMessage) -> bool:
        """
        Route one message: resume the active session if the reply fits it,
        otherwise look for a trigger keyword.

        Callers must serialize calls per conversation; ``process_message``
        does.
        """
        session = await self.sessions.find_active_by_conversation(message.conversation_id)

        if session is not None and self._is_idle(session):
            self.logger.info(f"Dropping idle session {session.id} for {message.conversation_id}")
            await self.sessions.set_status(session.id, SessionStatus.DROPPED)
            self.cancellations.cancel(session.id)
            session = None

        if session is not None and await self.response_interpreter.handle(message, session):
            return True

        return await self.trigger_matcher.handle(message, session)

    async def cancel_conversation(self, conversation_id: str) -> List[str]:
        """
        Drop the conversation's active session immediately, e.g. when an
        agent takes over. A node waiting on its pacing delay will not send.
        """
        dropped = await self.sessions.drop_active_for_conversation(conversation_id)
        for session_id in dropped:
            self.cancellations.cancel(session_id)
        return dropped

    async def shutdown(self) -> None:
        tasks = list(self.conversation_tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        for queue in self.conversation_queues.values():
            while not queue.empty():
                _, future = queue.get_nowait()
                future.cancel()
        self.conversation_queues.clear()
        self.conversation_tasks.clear()
        self.logger.info("Workflow manager stopped")

    def _is_idle(self, session: SessionRecord) -> bool:
        if not self.idle_timeout or session.updated_at is None:
            return False
        return datetime.utcnow() - session.updated_at > self.idle_timeout

    def _get_message_queue(self, conversation_id: str) -> asyncio.Queue:
        if conversation_id not in self.conversation_queues:
            self.conversation_queues[conversation_id] = asyncio.Queue()
        return self.conversation_queues[conversation_id]
