from flowbot.models.workflow import Workflow, WorkflowSession

__all__ = ["Workflow", "WorkflowSession"]
