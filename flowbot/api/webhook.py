from typing import Any, Dict, List, Optional, Tuple

from fastapi import Request, Response
from flowbot.config import settings
from flowbot.logging import setup_logger, log_exception
from flowbot.schemas import InboundMessage
from flowbot.services.workflow.manager import WorkflowManager

logger = setup_logger(__name__)


def get_workflow_manager(request: Request) -> WorkflowManager:
    return request.app.state.workflow_manager


async def verify_webhook(
    hub_mode: str, hub_verify_token: str, hub_challenge: str
) -> Response:
    """
    Verify webhook request from WhatsApp API
    """
    if hub_mode == "subscribe" and hub_verify_token == settings.WHATSAPP_VERIFY_TOKEN:
        logger.info(f"Verified webhook with mode: {hub_mode}")
        return Response(content=hub_challenge, media_type="text/plain")

    logger.error("Webhook verification failed")
    return Response(content="Invalid verification token", status_code=403)


async def handle_message(
    data: Dict[Any, Any], workflow_manager: WorkflowManager
) -> Dict[str, Any]:
    """
    Process incoming WhatsApp message webhook.

    Each message is offered to the workflow engine; ``handled`` lists, per
    message id, whether a workflow consumed it. Messages it did not consume
    belong to ordinary chat handling.
    """
    if data.get("object") != "whatsapp_business_account":
        logger.error(f"Invalid object in webhook data: {data.get('object')}")
        return {"status": "error", "message": "Invalid object"}

    messages = extract_messages(data)
    if not messages:
        return {"status": "success", "message": "Non-message event processed"}

    handled = {}
    for message in messages:
        try:
            consumed = await workflow_manager.process_message(message)
        except Exception as e:
            log_exception(logger, f"Error processing message from {message.conversation_id}", e)
            consumed = False
        if not consumed:
            logger.info(f"Message from {message.conversation_id} left for chat handling")
        handled[message.message_id or message.conversation_id] = consumed

    return {"status": "success", "handled": handled}


def extract_messages(data: Dict[Any, Any]) -> List[InboundMessage]:
    """
    Extract inbound messages from a webhook payload.
    Status updates and unsupported message types are skipped.
    """
    inbound = []
    for entry in data.get("entry", []):
        for change in entry.get("changes", []):
            value = change.get("value", {})
            if value.get("messaging_product") != "whatsapp":
                continue

            tenant_id = value.get("metadata", {}).get("phone_number_id")
            if not tenant_id:
                logger.error("Webhook change without phone_number_id metadata")
                continue

            for message in value.get("messages", []):
                parsed = parse_message(tenant_id, message)
                if parsed is not None:
                    inbound.append(parsed)
    return inbound


def parse_message(tenant_id: str, message: Dict[str, Any]) -> Optional[InboundMessage]:
    sender_id = message.get("from")
    message_type = message.get("type", "unknown")
    if not sender_id:
        logger.error(f"Message without sender: {message.get('id')}")
        return None

    reply_id = None
    if message_type == "text":
        text = message.get("text", {}).get("body", "")
    elif message_type == "interactive":
        text, reply_id = extract_interactive_reply(message)
    elif message_type == "button":
        button = message.get("button", {})
        text, reply_id = button.get("text", ""), button.get("payload")
    else:
        logger.info(f"Unprocessed message type: {message_type}")
        return None

    return InboundMessage(
        tenant_id=tenant_id,
        conversation_id=sender_id,
        message_type=message_type,
        text=text,
        reply_id=reply_id,
        message_id=message.get("id"),
    )


def extract_interactive_reply(message: Dict[str, Any]) -> Tuple[str, Optional[str]]:
    """Extract the (title, id) pair from button and list replies"""
    interactive = message.get("interactive", {})

    for key in ("button_reply", "list_reply"):
        if key in interactive:
            reply = interactive[key]
            return reply.get("title", ""), reply.get("id")

    logger.error(f"Unknown interactive format: {interactive}")
    return "", None
