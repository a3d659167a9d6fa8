from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    DROPPED = "dropped"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.ACTIVE


class SessionRecord(BaseModel):
    id: str
    workflow_id: str
    conversation_id: str
    current_node_id: Optional[str] = None
    status: SessionStatus = SessionStatus.ACTIVE
    state: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InboundMessage(BaseModel):
    """A message received from a contact, reduced to what the engine reads"""

    tenant_id: str
    conversation_id: str
    message_type: str = "text"
    text: str = ""
    # Id of the tapped interactive option, e.g. "btn_1" or "opt_2"
    reply_id: Optional[str] = None
    message_id: Optional[str] = None
