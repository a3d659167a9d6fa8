from sqlalchemy import Column, String, ForeignKey, DateTime, Boolean, JSON, Text, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from flowbot.db import Base
import uuid


class Workflow(Base):
    """
    Vendor-authored automation graph, stored as the editor saves it.
    """

    __tablename__ = "workflows"

    id = Column(
        String(36), primary_key=True, index=True, default=lambda: str(uuid.uuid4())
    )
    vendor_id = Column(String(64), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Comma-separated list, e.g. "hi,hello"
    trigger_keyword = Column(String(255), nullable=False)

    nodes = Column(JSON, nullable=False, default=list)
    edges = Column(JSON, nullable=False, default=list)

    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    sessions = relationship(
        "WorkflowSession", back_populates="workflow", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Workflow id={self.id} name={self.name!r}>"


class WorkflowSession(Base):
    """
    A conversation's execution pointer through a workflow graph
    """

    __tablename__ = "workflow_sessions"
    __table_args__ = (Index("ix_workflow_sessions_conv_status", "conversation_id", "status"),)

    id = Column(
        String(36), primary_key=True, index=True, default=lambda: str(uuid.uuid4())
    )
    workflow_id = Column(
        String(36), ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False
    )
    conversation_id = Column(String(64), nullable=False)
    current_node_id = Column(String(255), nullable=True)

    # active | completed | dropped | error
    status = Column(String(16), nullable=False, default="active")
    state = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    workflow = relationship("Workflow", back_populates="sessions")

    def __repr__(self):
        return f"<WorkflowSession id={self.id} status={self.status}>"
