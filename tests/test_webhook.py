import pytest
from fastapi.testclient import TestClient

from flowbot.api.webhook import extract_messages, get_workflow_manager
from flowbot.config import settings
from flowbot.main import app
from workflow_utils import CONVERSATION, TENANT


class FakeManager:
    """Consumes messages whose text is a known keyword"""

    def __init__(self, keywords=("hi",)):
        self.keywords = keywords
        self.received = []

    async def process_message(self, message):
        self.received.append(message)
        return message.text in self.keywords


def webhook_payload(*messages, phone_number_id=TENANT):
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "waba-1",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {
                                "display_phone_number": "15550009999",
                                "phone_number_id": phone_number_id,
                            },
                            "messages": list(messages),
                        },
                    }
                ],
            }
        ],
    }


def text_message(body, message_id="wamid.text"):
    return {"from": CONVERSATION, "id": message_id, "type": "text", "text": {"body": body}}


@pytest.fixture
def fake_manager():
    manager = FakeManager()
    app.dependency_overrides[get_workflow_manager] = lambda: manager
    yield manager
    app.dependency_overrides.clear()


@pytest.fixture
def client(fake_manager):
    return TestClient(app)


def test_verification_echoes_challenge(client):
    response = client.get(
        "/webhook",
        params={
            "hub.mode": "subscribe",
            "hub.verify_token": settings.WHATSAPP_VERIFY_TOKEN,
            "hub.challenge": "12345",
        },
    )

    assert response.status_code == 200
    assert response.text == "12345"


def test_verification_rejects_wrong_token(client):
    response = client.get(
        "/webhook",
        params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "12345"},
    )

    assert response.status_code == 403


def test_post_reports_which_messages_were_consumed(client, fake_manager):
    payload = webhook_payload(text_message("hi", "wamid.1"), text_message("thanks", "wamid.2"))

    response = client.post("/webhook", json=payload)

    assert response.status_code == 200
    assert response.json() == {
        "status": "success",
        "handled": {"wamid.1": True, "wamid.2": False},
    }
    assert [m.tenant_id for m in fake_manager.received] == [TENANT, TENANT]


def test_post_rejects_foreign_objects(client, fake_manager):
    response = client.post("/webhook", json={"object": "page", "entry": []})

    assert response.json()["status"] == "error"
    assert fake_manager.received == []


def test_post_rejects_invalid_json(client):
    response = client.post(
        "/webhook", content=b"not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400


def test_status_updates_are_not_dispatched(client, fake_manager):
    payload = webhook_payload()
    value = payload["entry"][0]["changes"][0]["value"]
    del value["messages"]
    value["statuses"] = [{"id": "wamid.1", "status": "delivered"}]

    response = client.post("/webhook", json=payload)

    assert response.json() == {"status": "success", "message": "Non-message event processed"}
    assert fake_manager.received == []


def test_extract_button_reply():
    message = {
        "from": CONVERSATION,
        "id": "wamid.btn",
        "type": "interactive",
        "interactive": {"type": "button_reply", "button_reply": {"id": "btn_1", "title": "No"}},
    }

    (inbound,) = extract_messages(webhook_payload(message))

    assert inbound.message_type == "interactive"
    assert (inbound.text, inbound.reply_id) == ("No", "btn_1")
    assert inbound.conversation_id == CONVERSATION


def test_extract_list_reply():
    message = {
        "from": CONVERSATION,
        "id": "wamid.list",
        "type": "interactive",
        "interactive": {
            "type": "list_reply",
            "list_reply": {"id": "opt_2", "title": "Option 2", "description": ""},
        },
    }

    (inbound,) = extract_messages(webhook_payload(message))

    assert (inbound.text, inbound.reply_id) == ("Option 2", "opt_2")


def test_extract_template_button():
    message = {
        "from": CONVERSATION,
        "id": "wamid.tpl",
        "type": "button",
        "button": {"text": "Start", "payload": "start-flow"},
    }

    (inbound,) = extract_messages(webhook_payload(message))

    assert (inbound.text, inbound.reply_id) == ("Start", "start-flow")


def test_extract_skips_unsupported_types_and_missing_metadata():
    sticker = {"from": CONVERSATION, "id": "wamid.s", "type": "sticker", "sticker": {}}

    assert extract_messages(webhook_payload(sticker)) == []
    assert extract_messages(webhook_payload(text_message("hi"), phone_number_id=None)) == []
