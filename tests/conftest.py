from typing import Optional

import pytest
import pytest_asyncio

from flowbot.crud.workflow import SQLDefinitionStore, SQLSessionStore
from flowbot.db import Base, build_engine, build_session_factory
from flowbot.models.workflow import Workflow
from flowbot.schemas import InboundMessage
from flowbot.services.workflow.manager import WorkflowManager
from workflow_utils import CONVERSATION, TENANT, RecordingClient


@pytest_asyncio.fixture
async def engine(tmp_path):
    db_engine = build_engine(str(tmp_path / "flowbot-test.db"))
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield db_engine
    await db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def definitions(session_factory):
    return SQLDefinitionStore(session_factory)


@pytest.fixture
def sessions(session_factory):
    return SQLSessionStore(session_factory)


@pytest.fixture
def messaging_client():
    return RecordingClient()


@pytest_asyncio.fixture
async def manager(messaging_client, definitions, sessions):
    workflow_manager = WorkflowManager(
        client=messaging_client,
        definitions=definitions,
        sessions=sessions,
        max_hops=20,
        pacing_delay=0,
        gallery_delay=0,
    )
    yield workflow_manager
    await workflow_manager.shutdown()


@pytest.fixture
def save_workflow(session_factory):
    """Insert a workflow row and return its id"""

    async def _save(
        nodes,
        edges,
        trigger_keyword: str = "hi,hello",
        name: str = "Welcome flow",
        vendor_id: str = TENANT,
        is_active: bool = True,
        updated_at=None,
    ) -> str:
        row = Workflow(
            vendor_id=vendor_id,
            name=name,
            trigger_keyword=trigger_keyword,
            nodes=nodes,
            edges=edges,
            is_active=is_active,
        )
        if updated_at is not None:
            row.updated_at = updated_at
        async with session_factory() as db:
            db.add(row)
            await db.commit()
            await db.refresh(row)
        return row.id

    return _save


@pytest.fixture
def inbound():
    def _inbound(
        text: str,
        conversation_id: str = CONVERSATION,
        reply_id: Optional[str] = None,
        message_type: str = "text",
    ) -> InboundMessage:
        return InboundMessage(
            tenant_id=TENANT,
            conversation_id=conversation_id,
            message_type=message_type,
            text=text,
            reply_id=reply_id,
        )

    return _inbound
