from typing import List, Optional

from flowbot.crud.base import DefinitionStore, SessionStore
from flowbot.schemas import InboundMessage, SessionRecord, SessionStatus
from flowbot.services.workflow.cancellation import SessionCancellations
from flowbot.services.workflow.errors import WorkflowGraphError
from flowbot.services.workflow.graph import (
    ButtonNode,
    ListNode,
    handle_for,
    normalize_text,
)
from flowbot.services.workflow.handlers.base import BaseHandler
from flowbot.services.workflow.handlers.executor import (
    BUTTON_TITLE_LIMIT,
    LIST_TITLE_LIMIT,
    NodeExecutor,
)


def match_choice(
    labels: List[str], message: InboundMessage, id_prefix: str, title_limit: int
) -> Optional[int]:
    """
    Index of the option the contact picked, or None.

    Text must equal a label ignoring case. A tapped option also carries its
    reply id (``btn_2``) with the truncated title the channel displayed; that
    pair is accepted too so long labels still resolve.
    """
    text = normalize_text(message.text)
    if not text:
        return None

    for i, label in enumerate(labels):
        if normalize_text(label) == text:
            return i

    reply_id = message.reply_id or ""
    if reply_id.startswith(id_prefix) and reply_id[len(id_prefix):].isdecimal():
        index = int(reply_id[len(id_prefix):])
        if index < len(labels) and normalize_text(labels[index][:title_limit]) == text:
            return index
    return None


class ResponseInterpreter(BaseHandler):
    """Resumes a halted session from the contact's reply"""

    def __init__(
        self,
        sessions: SessionStore,
        cancellations: SessionCancellations,
        definitions: DefinitionStore,
        executor: NodeExecutor,
    ):
        super().__init__(sessions, cancellations)
        self.definitions = definitions
        self.executor = executor

    async def handle(
        self, message: InboundMessage, session: Optional[SessionRecord] = None
    ) -> bool:
        if session is None:
            return False

        try:
            definition = await self.definitions.get(session.workflow_id)
        except WorkflowGraphError as e:
            await self.fail_session(session.id, e.reason)
            return False
        if definition is None:
            await self.fail_session(session.id, f"workflow {session.workflow_id} not found")
            return False

        node = definition.get_node(session.current_node_id)
        if node is None:
            await self.fail_session(
                session.id, f"node {session.current_node_id} not found in workflow {definition.id}"
            )
            return False

        self.logger.info(f"Handling response for {node.type} node {node.id} (session {session.id})")

        if isinstance(node, ButtonNode):
            index = match_choice(
                [b.text for b in node.buttons], message, "btn_", BUTTON_TITLE_LIMIT
            )
            if index is None:
                self.logger.info(
                    f"No button match for {message.text!r}. Buttons: {[b.text for b in node.buttons]}"
                )
                return False
            next_node_id = definition.next_node_id(
                node.id, handle_for(index)
            ) or definition.next_node_id(node.id)

        elif isinstance(node, ListNode):
            index = match_choice(
                [item.title for item in node.items], message, "opt_", LIST_TITLE_LIMIT
            )
            if index is None:
                self.logger.info(
                    f"No list item match for {message.text!r}. Items: {[i.title for i in node.items]}"
                )
                return False
            next_node_id = definition.next_node_id(node.id, handle_for(index))

        else:
            # Only reachable when an earlier send failed before the session halted
            next_node_id = definition.next_node_id(node.id)

        if next_node_id is None:
            await self.sessions.set_status(session.id, SessionStatus.COMPLETED)
            return True

        if not await self.sessions.set_current_node(session.id, next_node_id):
            self.logger.warning(f"Session {session.id} is no longer active")
            return False
        await self.executor.run(definition, session, next_node_id)
        return True
