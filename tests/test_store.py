from datetime import datetime, timedelta

import pytest

from flowbot.schemas import SessionStatus
from flowbot.services.workflow.errors import WorkflowGraphError
from workflow_utils import CONVERSATION, TENANT, node, welcome_graph


@pytest.mark.asyncio
async def test_list_active_orders_most_recent_first(definitions, save_workflow):
    now = datetime.utcnow()
    older = await save_workflow(*welcome_graph(), name="older", updated_at=now - timedelta(days=1))
    newer = await save_workflow(*welcome_graph(), name="newer", updated_at=now)
    await save_workflow(*welcome_graph(), name="inactive", is_active=False)
    await save_workflow(*welcome_graph(), name="other tenant", vendor_id="someone-else")

    active = await definitions.list_active(TENANT)

    assert [d.id for d in active] == [newer, older]


@pytest.mark.asyncio
async def test_list_active_skips_invalid_graphs(definitions, save_workflow):
    valid = await save_workflow(*welcome_graph())
    await save_workflow([node("m", "message", content="no start")], [], name="broken")

    active = await definitions.list_active(TENANT)

    assert [d.id for d in active] == [valid]


@pytest.mark.asyncio
async def test_get_loads_inactive_and_raises_on_invalid(definitions, save_workflow):
    inactive = await save_workflow(*welcome_graph(), is_active=False)
    broken = await save_workflow([node("m", "message")], [])

    definition = await definitions.get(inactive)
    assert definition is not None and not definition.is_active
    assert await definitions.get("does-not-exist") is None
    with pytest.raises(WorkflowGraphError):
        await definitions.get(broken)


@pytest.mark.asyncio
async def test_session_lifecycle(sessions, save_workflow):
    workflow_id = await save_workflow(*welcome_graph())
    session = await sessions.create(workflow_id, CONVERSATION, "welcome")

    assert session.status == SessionStatus.ACTIVE
    assert session.state == {}
    found = await sessions.find_active_by_conversation(CONVERSATION)
    assert found.id == session.id

    assert await sessions.set_current_node(session.id, "ask")
    assert (await sessions.get(session.id)).current_node_id == "ask"

    assert await sessions.set_status(session.id, SessionStatus.COMPLETED)
    assert await sessions.find_active_by_conversation(CONVERSATION) is None


@pytest.mark.asyncio
async def test_active_session_cannot_be_set_to_active(sessions, save_workflow):
    workflow_id = await save_workflow(*welcome_graph())
    session = await sessions.create(workflow_id, CONVERSATION, "welcome")

    assert not SessionStatus.ACTIVE.is_terminal
    assert not await sessions.set_status(session.id, SessionStatus.ACTIVE)
    assert (await sessions.get(session.id)).status == SessionStatus.ACTIVE


@pytest.mark.asyncio
async def test_terminal_sessions_never_change(sessions, save_workflow):
    workflow_id = await save_workflow(*welcome_graph())
    session = await sessions.create(workflow_id, CONVERSATION, "welcome")
    await sessions.set_status(session.id, SessionStatus.ERROR)

    assert not await sessions.set_status(session.id, SessionStatus.COMPLETED)
    assert not await sessions.set_status(session.id, SessionStatus.ACTIVE)
    assert not await sessions.set_current_node(session.id, "ask")

    stored = await sessions.get(session.id)
    assert stored.status == SessionStatus.ERROR
    assert stored.current_node_id == "welcome"


@pytest.mark.asyncio
async def test_drop_active_for_conversation(sessions, save_workflow):
    workflow_id = await save_workflow(*welcome_graph())
    first = await sessions.create(workflow_id, CONVERSATION, "welcome")
    other = await sessions.create(workflow_id, "another-contact", "welcome")

    dropped = await sessions.drop_active_for_conversation(CONVERSATION)

    assert dropped == [first.id]
    assert (await sessions.get(first.id)).status == SessionStatus.DROPPED
    assert (await sessions.get(other.id)).status == SessionStatus.ACTIVE
    assert await sessions.drop_active_for_conversation(CONVERSATION) == []
