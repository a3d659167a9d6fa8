from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from flowbot.logging import setup_logger
from flowbot.schemas import SessionRecord, SessionStatus
from flowbot.services.workflow.graph import WorkflowDefinition


class DefinitionStore(ABC):
    """Read access to workflow definitions"""

    def __init__(self):
        self.logger = setup_logger(__name__)

    @abstractmethod
    async def list_active(self, tenant_id: str) -> List[WorkflowDefinition]:
        """
        Return the tenant's active definitions, most recently updated first.

        Definitions whose graph fails validation are left out.
        """

    @abstractmethod
    async def get(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        """
        Return one definition regardless of its active flag.

        Raises:
            WorkflowGraphError: the stored graph is not valid
        """


class SessionStore(ABC):
    """
    Persistence for workflow sessions.

    Mutations only ever apply to ``active`` sessions; the update methods
    return False when the session is already terminal or does not exist.
    """

    def __init__(self):
        self.logger = setup_logger(__name__)

    @abstractmethod
    async def create(
        self,
        workflow_id: str,
        conversation_id: str,
        current_node_id: str,
        state: Optional[Dict[str, Any]] = None,
    ) -> SessionRecord:
        pass

    @abstractmethod
    async def get(self, session_id: str) -> Optional[SessionRecord]:
        pass

    @abstractmethod
    async def find_active_by_conversation(
        self, conversation_id: str
    ) -> Optional[SessionRecord]:
        pass

    @abstractmethod
    async def set_status(self, session_id: str, status: SessionStatus) -> bool:
        """Move an active session to a terminal status"""

    @abstractmethod
    async def set_current_node(self, session_id: str, node_id: str) -> bool:
        pass

    @abstractmethod
    async def drop_active_for_conversation(self, conversation_id: str) -> List[str]:
        """Mark every active session of the conversation dropped, returning their ids"""
