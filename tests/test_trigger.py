from datetime import datetime, timedelta

import pytest

from flowbot.schemas import SessionStatus
from workflow_utils import CONVERSATION, TENANT, edge, node, welcome_graph


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["hi", "HI", "  Hello  ", "hElLo\n"])
async def test_keyword_variants_start_the_workflow(manager, save_workflow, sessions, inbound, text):
    await save_workflow(*welcome_graph(), trigger_keyword="hi, Hello")

    assert await manager.handle_inbound(inbound(text))
    assert await sessions.find_active_by_conversation(CONVERSATION) is not None


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["hi there", "h", "hello!", "oh hi", "", "   "])
async def test_partial_keywords_do_not_match(manager, save_workflow, sessions, messaging_client, inbound, text):
    await save_workflow(*welcome_graph(), trigger_keyword="hi,hello")

    assert not await manager.handle_inbound(inbound(text))
    assert await sessions.find_active_by_conversation(CONVERSATION) is None
    assert messaging_client.sent == []


@pytest.mark.asyncio
async def test_trigger_sends_until_first_halting_node(manager, save_workflow, sessions, messaging_client, inbound):
    await save_workflow(*welcome_graph())

    assert await manager.handle_inbound(inbound("hi"))

    tenant_id, conversation_id, welcome = messaging_client.sent[0]
    assert (tenant_id, conversation_id) == (TENANT, CONVERSATION)
    assert welcome.text == "Welcome"
    prompt = messaging_client.contents[1]
    assert prompt.subtype == "button"
    assert [b["reply"]["title"] for b in prompt.action["buttons"]] == ["Yes", "No"]
    assert len(messaging_client.sent) == 2

    session = await sessions.find_active_by_conversation(CONVERSATION)
    assert session.current_node_id == "ask"


@pytest.mark.asyncio
async def test_mixed_case_keyword_behaves_like_lowercase(manager, save_workflow, sessions, messaging_client, inbound):
    await save_workflow(*welcome_graph())

    await manager.handle_inbound(inbound("   HELLO  "))

    assert messaging_client.bodies() == ["Welcome", "Please select:"]
    session = await sessions.find_active_by_conversation(CONVERSATION)
    assert session.current_node_id == "ask"


@pytest.mark.asyncio
async def test_new_trigger_drops_the_previous_session(manager, save_workflow, sessions, inbound):
    await save_workflow(*welcome_graph())

    await manager.handle_inbound(inbound("hi"))
    first = await sessions.find_active_by_conversation(CONVERSATION)
    await manager.handle_inbound(inbound("hello"))
    second = await sessions.find_active_by_conversation(CONVERSATION)

    assert second.id != first.id
    assert (await sessions.get(first.id)).status == SessionStatus.DROPPED
    assert second.status == SessionStatus.ACTIVE


@pytest.mark.asyncio
async def test_unconnected_start_consumes_without_session(manager, save_workflow, sessions, messaging_client, inbound):
    await save_workflow([node("start", "start"), node("orphan", "message", content="x")], [])

    assert await manager.handle_inbound(inbound("hi"))
    assert await sessions.find_active_by_conversation(CONVERSATION) is None
    assert messaging_client.sent == []


@pytest.mark.asyncio
async def test_unconnected_start_still_drops_previous_session(manager, save_workflow, sessions, inbound):
    await save_workflow(*welcome_graph(), trigger_keyword="hi")
    await save_workflow([node("start", "start")], [], trigger_keyword="stop")

    await manager.handle_inbound(inbound("hi"))
    first = await sessions.find_active_by_conversation(CONVERSATION)
    assert await manager.handle_inbound(inbound("stop"))

    assert (await sessions.get(first.id)).status == SessionStatus.DROPPED
    assert await sessions.find_active_by_conversation(CONVERSATION) is None


@pytest.mark.asyncio
async def test_most_recently_updated_workflow_wins(manager, save_workflow, messaging_client, inbound):
    now = datetime.utcnow()
    old_nodes = [node("start", "start"), node("m", "message", content="old")]
    new_nodes = [node("start", "start"), node("m", "message", content="new")]
    await save_workflow(old_nodes, [edge("start", "m")], updated_at=now - timedelta(hours=1))
    await save_workflow(new_nodes, [edge("start", "m")], updated_at=now)

    await manager.handle_inbound(inbound("hi"))

    assert messaging_client.bodies() == ["new"]


@pytest.mark.asyncio
async def test_workflows_of_other_tenants_are_ignored(manager, save_workflow, inbound):
    await save_workflow(*welcome_graph(), vendor_id="another-business")

    assert not await manager.handle_inbound(inbound("hi"))
