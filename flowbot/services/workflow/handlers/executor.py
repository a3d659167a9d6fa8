import asyncio
from enum import Enum
from typing import Optional

from flowbot.config import settings
from flowbot.crud.base import SessionStore
from flowbot.logging import setup_logger, log_exception
from flowbot.schemas import SessionRecord, SessionStatus
from flowbot.services.messaging.client import MessagingClient
from flowbot.services.messaging.messages import (
    ImageContent,
    InteractiveContent,
    OutboundContent,
    TextContent,
)
from flowbot.services.workflow.cancellation import SessionCancellations
from flowbot.services.workflow.errors import (
    MessageSendError,
    NodeResolutionError,
    SessionCancelledError,
)
from flowbot.services.workflow.graph import (
    BaseNode,
    ButtonNode,
    GalleryNode,
    ImageNode,
    ListNode,
    MessageNode,
    StartNode,
    WorkflowDefinition,
)

BUTTON_TITLE_LIMIT = 20
LIST_TITLE_LIMIT = 24
LIST_DESCRIPTION_LIMIT = 72
# Cloud API accepts at most three quick-reply buttons per message
MAX_REPLY_BUTTONS = 3

DEFAULT_BUTTON_BODY = "Please select:"
DEFAULT_LIST_BODY = "Select an option"
DEFAULT_CTA_BODY = "Click below:"


class ExecutionOutcome(str, Enum):
    HALTED = "halted"
    COMPLETED = "completed"
    STALLED = "stalled"
    CANCELLED = "cancelled"
    ERROR = "error"


class NodeExecutor:
    """
    Runs a session forward from a node.

    Each node's side effect is sent through the messaging client, then the
    unconditioned outgoing edge is followed until a node that waits for a
    reply is reached or the graph runs out of edges. The walk is bounded by
    ``max_hops`` so that cyclic graphs end in ``error``.
    """

    def __init__(
        self,
        client: MessagingClient,
        sessions: SessionStore,
        cancellations: SessionCancellations,
        max_hops: Optional[int] = None,
        pacing_delay: Optional[float] = None,
        gallery_delay: Optional[float] = None,
    ):
        self.client = client
        self.sessions = sessions
        self.cancellations = cancellations
        self.max_hops = max_hops if max_hops is not None else settings.WORKFLOW_MAX_HOPS
        self.pacing_delay = (
            pacing_delay if pacing_delay is not None else settings.WORKFLOW_PACING_DELAY
        )
        self.gallery_delay = (
            gallery_delay if gallery_delay is not None else settings.WORKFLOW_GALLERY_DELAY
        )
        self.logger = setup_logger(__name__)

    async def run(
        self, definition: WorkflowDefinition, session: SessionRecord, node_id: str
    ) -> ExecutionOutcome:
        """
        Execute ``node_id`` and auto-advance from it.

        The session's ``current_node_id`` must already point at ``node_id``.
        Send failures leave the session active at the failing node; structural
        problems and hop exhaustion move it to ``error``.
        """
        cancel_event = self.cancellations.event_for(session.id)
        try:
            for _ in range(self.max_hops):
                node = definition.get_node(node_id)
                if node is None:
                    raise NodeResolutionError(
                        session.id, f"node {node_id} not found in workflow {definition.id}"
                    )

                self.logger.info(
                    f"Processing node {node.type} ({node.id}) for session {session.id}"
                )
                await self.cancellations.pause(session.id, cancel_event, self.pacing_delay)

                if await self._execute(definition, session, node, cancel_event):
                    return ExecutionOutcome.HALTED

                next_node_id = definition.next_node_id(node.id)
                if next_node_id is None:
                    await self.sessions.set_status(session.id, SessionStatus.COMPLETED)
                    self.logger.info(f"Workflow {definition.name} completed for session {session.id}")
                    return ExecutionOutcome.COMPLETED

                if not await self.sessions.set_current_node(session.id, next_node_id):
                    self.logger.warning(f"Session {session.id} is no longer active, stopping")
                    return ExecutionOutcome.CANCELLED
                node_id = next_node_id

            self.logger.error(
                f"Session {session.id} exceeded {self.max_hops} hops in workflow {definition.id}"
            )
            await self.sessions.set_status(session.id, SessionStatus.ERROR)
            return ExecutionOutcome.ERROR

        except NodeResolutionError as e:
            self.logger.error(str(e))
            await self.sessions.set_status(session.id, SessionStatus.ERROR)
            return ExecutionOutcome.ERROR
        except MessageSendError as e:
            log_exception(self.logger, f"Session {session.id} stalled at node {node_id}", e)
            return ExecutionOutcome.STALLED
        except SessionCancelledError:
            self.logger.info(f"Session {session.id} was dropped before node {node_id} finished")
            return ExecutionOutcome.CANCELLED
        finally:
            self.cancellations.discard(session.id)

    async def _execute(
        self,
        definition: WorkflowDefinition,
        session: SessionRecord,
        node: BaseNode,
        cancel_event: asyncio.Event,
    ) -> bool:
        """Perform the node's side effect. Returns True if the session halts."""
        if isinstance(node, MessageNode):
            await self._send(definition, session, TextContent(text=node.content))
            return False

        if isinstance(node, ImageNode):
            if not node.image_url:
                self.logger.warning(f"Image node {node.id} has no image URL")
                if node.content:
                    await self._send(definition, session, TextContent(text=node.content))
                return False
            await self._send(
                definition, session, ImageContent(link=node.image_url, caption=node.content)
            )
            return False

        if isinstance(node, GalleryNode):
            for url in node.image_urls:
                await self._send(definition, session, ImageContent(link=url))
                await self.cancellations.pause(session.id, cancel_event, self.gallery_delay)
            if node.content:
                await self._send(definition, session, TextContent(text=node.content))
            return False

        if isinstance(node, ButtonNode):
            return await self._execute_buttons(definition, session, node)

        if isinstance(node, ListNode):
            rows = [
                {
                    "id": f"opt_{i}",
                    "title": item.title[:LIST_TITLE_LIMIT],
                    "description": (item.description or "")[:LIST_DESCRIPTION_LIMIT],
                }
                for i, item in enumerate(node.items)
            ]
            await self._send(
                definition,
                session,
                InteractiveContent.list_menu(node.label or DEFAULT_LIST_BODY, rows),
            )
            return True

        if not isinstance(node, StartNode):
            self.logger.warning(f"Unknown node type {node.type!r} ({node.id}), skipping")
        return False

    async def _execute_buttons(
        self, definition: WorkflowDefinition, session: SessionRecord, node: ButtonNode
    ) -> bool:
        buttons = node.buttons

        if len(buttons) == 1 and buttons[0].is_call_to_action and buttons[0].value:
            button = buttons[0]
            url = f"tel:{button.value}" if button.is_phone else button.value
            cta = InteractiveContent.call_to_action(
                node.label or DEFAULT_CTA_BODY, button.text[:BUTTON_TITLE_LIMIT], url
            )
            if await self.client.send(definition.tenant_id, session.conversation_id, cta):
                return False
            self.logger.warning(
                f"Native CTA failed for node {node.id}, falling back to inline text"
            )

        body = node.label or DEFAULT_BUTTON_BODY
        replies = []
        for i, button in enumerate(buttons):
            if button.is_call_to_action:
                icon = "🔗" if button.is_url else "📞"
                if button.value:
                    body += f"\n\n{icon} {button.text}: {button.value}"
                else:
                    self.logger.warning(f"{button.type} button {button.text!r} on node {node.id} has no value")
                    body += f"\n\n{icon} {button.text}"
            else:
                replies.append((f"btn_{i}", button.text[:BUTTON_TITLE_LIMIT]))

        if not replies:
            await self._send(definition, session, TextContent(text=body))
            return False

        if len(replies) > MAX_REPLY_BUTTONS:
            content = InteractiveContent.list_menu(
                body,
                [{"id": reply_id, "title": title, "description": ""} for reply_id, title in replies],
            )
        else:
            content = InteractiveContent.reply_buttons(body, replies)
        await self._send(definition, session, content)
        return True

    async def _send(
        self,
        definition: WorkflowDefinition,
        session: SessionRecord,
        content: OutboundContent,
    ) -> None:
        self.logger.debug(f"Session {session.id} sending {content.type}: {content.preview()[:50]}")
        if not await self.client.send(definition.tenant_id, session.conversation_id, content):
            raise MessageSendError(session.conversation_id, content.type)
