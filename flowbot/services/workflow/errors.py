class WorkflowError(Exception):
    """Base class for workflow engine errors"""


class WorkflowGraphError(WorkflowError):
    """A stored definition could not be loaded as a valid graph"""

    def __init__(self, workflow_id: str, reason: str):
        self.workflow_id = workflow_id
        self.reason = reason
        super().__init__(f"Invalid workflow {workflow_id}: {reason}")


class NodeResolutionError(WorkflowError):
    """The session points at a workflow or node that no longer exists"""

    def __init__(self, session_id: str, reason: str):
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"Session {session_id}: {reason}")


class MessageSendError(WorkflowError):
    """The messaging channel rejected or failed an outbound send"""

    def __init__(self, conversation_id: str, content_type: str):
        self.conversation_id = conversation_id
        self.content_type = content_type
        super().__init__(f"Failed to send {content_type} to {conversation_id}")


class SessionCancelledError(WorkflowError):
    """The session was dropped while one of its nodes was pending"""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} was cancelled")
