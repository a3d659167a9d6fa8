"""
WhatsApp messaging client for delivering workflow output.

This module provides the single egress point used by the workflow engine.
Delivery problems are logged here and reported to the caller as a failed
send rather than raised.
"""

from __future__ import annotations
import httpx
from typing import Any, Dict, Optional
from flowbot.config import settings
from flowbot.logging import setup_logger
from flowbot.services.messaging.messages import OutboundContent


class MessagingClient:
    """
    Base class for messaging clients.

    Implementations deliver one piece of content to one conversation of one
    tenant and report whether the channel accepted it.
    """

    def __init__(self):
        self.logger = setup_logger(__name__)

    async def send(
        self, tenant_id: str, conversation_id: str, content: OutboundContent
    ) -> bool:
        """
        Send content to a conversation.

        Args:
            tenant_id: The business account the message is sent from
            conversation_id: The conversation (contact) to send to
            content: Text, image or interactive content

        Returns:
            True if the channel accepted the message
        """
        raise NotImplementedError("Subclasses must implement this method")


class WhatsApp(MessagingClient):
    """
    WhatsApp Cloud API client.

    The tenant id is the business phone number id that received the inbound
    message, and the conversation id is the contact's WhatsApp id.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        api_version: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 15.0,
    ):
        super().__init__()
        self.token = token if token is not None else settings.WHATSAPP_TOKEN
        self.api_version = api_version or settings.WHATSAPP_API_VERSION
        self.base_url = f"https://graph.facebook.com/{self.api_version}"
        self.headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.token}",
        }
        self.transport = transport
        self.timeout = timeout

    def url_for(self, tenant_id: str) -> str:
        return f"{self.base_url}/{tenant_id}/messages"

    def build_payload(
        self,
        conversation_id: str,
        content: OutboundContent,
        recipient_type: str = "individual",
    ) -> Dict[str, Any]:
        return {
            "messaging_product": "whatsapp",
            "recipient_type": recipient_type,
            "to": conversation_id,
            **content.to_payload(),
        }

    async def send(
        self, tenant_id: str, conversation_id: str, content: OutboundContent
    ) -> bool:
        """Send one message through the Cloud API."""
        payload = self.build_payload(conversation_id, content)

        try:
            async with httpx.AsyncClient(
                transport=self.transport, timeout=self.timeout
            ) as client:
                response = await client.post(
                    self.url_for(tenant_id), headers=self.headers, json=payload
                )
        except httpx.HTTPError as e:
            self.logger.error(
                f"Exception sending {content.type} to {conversation_id}: {str(e)}"
            )
            return False

        if response.status_code != 200:
            self._handle_api_error(_json_or_empty(response), conversation_id, content.type)
            return False

        message_ids = [m.get("id") for m in _json_or_empty(response).get("messages", [])]
        self.logger.info(
            f"Sent {content.type} to {conversation_id} ({', '.join(filter(None, message_ids)) or 'no id'})"
        )
        return True

    def _handle_api_error(
        self,
        response_data: Dict[str, Any],
        conversation_id: str,
        content_type: str = "message",
    ) -> None:
        """Log a Cloud API error response."""
        error_info = response_data.get("error", {})
        error_code = error_info.get("code")
        error_message = error_info.get("message", "Unknown error")

        if error_code == 131030:
            # Test numbers must be allow-listed in the Meta developer portal
            self.logger.error(
                f"WhatsApp API Error {error_code}: recipient {conversation_id} not in allowed list"
            )
        else:
            self.logger.error(
                f"Failed to send {content_type} to {conversation_id}: {error_message} (Code: {error_code})"
            )


def _json_or_empty(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
