"""
WhatsApp messaging for the workflow engine.

Outbound content models and the client that delivers them through the
WhatsApp Cloud API.
"""

from flowbot.services.messaging.client import MessagingClient, WhatsApp
from flowbot.services.messaging.messages import (
    ImageContent,
    InteractiveContent,
    OutboundContent,
    TextContent,
)

__all__ = [
    "MessagingClient",
    "WhatsApp",
    "ImageContent",
    "InteractiveContent",
    "OutboundContent",
    "TextContent",
]
