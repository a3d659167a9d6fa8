from typing import Optional

from flowbot.crud.base import DefinitionStore, SessionStore
from flowbot.schemas import InboundMessage, SessionRecord
from flowbot.services.workflow.cancellation import SessionCancellations
from flowbot.services.workflow.graph import WorkflowDefinition, normalize_text
from flowbot.services.workflow.handlers.base import BaseHandler
from flowbot.services.workflow.handlers.executor import NodeExecutor


class TriggerMatcher(BaseHandler):
    """Starts a workflow when inbound text equals one of its trigger keywords"""

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

    async def match(self, tenant_id: str, text: str) -> Optional[WorkflowDefinition]:
        """Return the first active definition whose keywords contain ``text`` exactly"""
        normalized = normalize_text(text)
        if not normalized:
            return None

        definitions = await self.definitions.list_active(tenant_id)
        self.logger.debug(
            f"Checking {len(definitions)} workflows for tenant {tenant_id} against {normalized!r}"
        )
        for definition in definitions:
            if definition.is_triggered_by(normalized):
                self.logger.info(
                    f"Matched workflow {definition.name!r} with keywords {sorted(definition.trigger_keywords)}"
                )
                return definition
        return None

    async def handle(
        self, message: InboundMessage, session: Optional[SessionRecord] = None
    ) -> bool:
        definition = await self.match(message.tenant_id, message.text)
        if definition is None:
            self.logger.info(f"No workflow matches text from {message.conversation_id}")
            return False

        for dropped_id in await self.sessions.drop_active_for_conversation(
            message.conversation_id
        ):
            self.cancellations.cancel(dropped_id)

        first_node_id = definition.next_node_id(definition.start_node.id)
        if first_node_id is None:
            self.logger.warning(f"Start node of workflow {definition.id} is not connected")
            return True

        self.logger.info(
            f"Starting workflow {definition.name!r} for conversation {message.conversation_id}"
        )
        new_session = await self.sessions.create(
            definition.id, message.conversation_id, first_node_id
        )
        await self.executor.run(definition, new_session, first_node_id)
        return True
