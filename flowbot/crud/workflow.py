from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import sessionmaker

from flowbot.crud.base import DefinitionStore, SessionStore
from flowbot.models.workflow import Workflow, WorkflowSession
from flowbot.schemas import SessionRecord, SessionStatus
from flowbot.services.workflow.errors import WorkflowGraphError
from flowbot.services.workflow.graph import WorkflowDefinition


class SQLDefinitionStore(DefinitionStore):
    """Definition store backed by the ``workflows`` table"""

    def __init__(self, session_factory: sessionmaker):
        super().__init__()
        self.session_factory = session_factory

    async def list_active(self, tenant_id: str) -> List[WorkflowDefinition]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Workflow)
                .where(Workflow.vendor_id == tenant_id, Workflow.is_active.is_(True))
                .order_by(Workflow.updated_at.desc(), Workflow.id)
            )
            records = result.scalars().all()

        definitions = []
        for record in records:
            try:
                definitions.append(WorkflowDefinition.from_record(record))
            except WorkflowGraphError as e:
                self.logger.error(f"Skipping workflow {record.id} ({record.name}): {e.reason}")
        return definitions

    async def get(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        async with self.session_factory() as db:
            record = await db.get(Workflow, workflow_id)
        if record is None:
            return None
        return WorkflowDefinition.from_record(record)


class SQLSessionStore(SessionStore):
    """Session store backed by the ``workflow_sessions`` table"""

    def __init__(self, session_factory: sessionmaker):
        super().__init__()
        self.session_factory = session_factory

    async def create(
        self,
        workflow_id: str,
        conversation_id: str,
        current_node_id: str,
        state: Optional[Dict[str, Any]] = None,
    ) -> SessionRecord:
        row = WorkflowSession(
            workflow_id=workflow_id,
            conversation_id=conversation_id,
            current_node_id=current_node_id,
            status=SessionStatus.ACTIVE.value,
            state=state or {},
        )
        async with self.session_factory() as db:
            db.add(row)
            await db.commit()
            await db.refresh(row)
        self.logger.info(
            f"Created session {row.id} for {conversation_id} on workflow {workflow_id}"
        )
        return SessionRecord.model_validate(row)

    async def get(self, session_id: str) -> Optional[SessionRecord]:
        async with self.session_factory() as db:
            row = await db.get(WorkflowSession, session_id)
        return SessionRecord.model_validate(row) if row else None

    async def find_active_by_conversation(
        self, conversation_id: str
    ) -> Optional[SessionRecord]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(WorkflowSession)
                .where(
                    WorkflowSession.conversation_id == conversation_id,
                    WorkflowSession.status == SessionStatus.ACTIVE.value,
                )
                .order_by(WorkflowSession.created_at.desc())
                .limit(1)
            )
            row = result.scalars().first()
        return SessionRecord.model_validate(row) if row else None

    async def set_status(self, session_id: str, status: SessionStatus) -> bool:
        status = SessionStatus(status)
        if not status.is_terminal:
            self.logger.warning(f"Refused to set session {session_id} back to {status.value}")
            return False

        changed = await self._update_active(session_id, status=status.value)
        if changed:
            self.logger.info(f"Session {session_id}: active -> {status.value}")
        else:
            self.logger.warning(
                f"Ignored status change to {status.value} for non-active session {session_id}"
            )
        return changed

    async def set_current_node(self, session_id: str, node_id: str) -> bool:
        changed = await self._update_active(session_id, current_node_id=node_id)
        if changed:
            self.logger.debug(f"Session {session_id} moved to node {node_id}")
        return changed

    async def drop_active_for_conversation(self, conversation_id: str) -> List[str]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(WorkflowSession.id).where(
                    WorkflowSession.conversation_id == conversation_id,
                    WorkflowSession.status == SessionStatus.ACTIVE.value,
                )
            )
            session_ids = list(result.scalars().all())
            if session_ids:
                await db.execute(
                    update(WorkflowSession)
                    .where(
                        WorkflowSession.id.in_(session_ids),
                        WorkflowSession.status == SessionStatus.ACTIVE.value,
                    )
                    .values(status=SessionStatus.DROPPED.value, updated_at=datetime.utcnow())
                )
                await db.commit()

        if session_ids:
            self.logger.info(
                f"Dropped {len(session_ids)} active session(s) for {conversation_id}"
            )
        return session_ids

    async def _update_active(self, session_id: str, **values: Any) -> bool:
        async with self.session_factory() as db:
            result = await db.execute(
                update(WorkflowSession)
                .where(
                    WorkflowSession.id == session_id,
                    WorkflowSession.status == SessionStatus.ACTIVE.value,
                )
                .values(updated_at=datetime.utcnow(), **values)
            )
            await db.commit()
        return result.rowcount > 0
