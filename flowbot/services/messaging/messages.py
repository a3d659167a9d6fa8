"""
Outbound message content.

Every side effect of a workflow node is one of these three shapes; the
messaging client wraps them into a full Cloud API request.
"""

from typing import Any, Dict, List, Literal, Optional, Tuple, Union
from pydantic import BaseModel, Field

LIST_BUTTON_TEXT = "Menu"
LIST_SECTION_TITLE = "Options"


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str
    preview_url: bool = True

    def to_payload(self) -> Dict[str, Any]:
        return {
            "type": "text",
            "text": {"preview_url": self.preview_url, "body": self.text},
        }

    def preview(self) -> str:
        return self.text


class ImageContent(BaseModel):
    type: Literal["image"] = "image"
    link: str
    caption: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        image = {"link": self.link}
        if self.caption:
            image["caption"] = self.caption
        return {"type": "image", "image": image}

    def preview(self) -> str:
        return self.caption or "[Image]"


class InteractiveContent(BaseModel):
    type: Literal["interactive"] = "interactive"
    subtype: Literal["button", "list", "cta_url"]
    body: str
    action: Dict[str, Any] = Field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "type": "interactive",
            "interactive": {
                "type": self.subtype,
                "body": {"text": self.body},
                "action": self.action,
            },
        }

    def preview(self) -> str:
        return self.body or "[Interactive Message]"

    @classmethod
    def reply_buttons(
        cls, body: str, buttons: List[Tuple[str, str]]
    ) -> "InteractiveContent":
        """Quick-reply buttons from (id, title) pairs"""
        return cls(
            subtype="button",
            body=body,
            action={
                "buttons": [
                    {"type": "reply", "reply": {"id": btn_id, "title": title}}
                    for btn_id, title in buttons
                ]
            },
        )

    @classmethod
    def list_menu(
        cls,
        body: str,
        rows: List[Dict[str, str]],
        button_text: str = LIST_BUTTON_TEXT,
        section_title: str = LIST_SECTION_TITLE,
    ) -> "InteractiveContent":
        """Single-section list; each row is {id, title, description}"""
        return cls(
            subtype="list",
            body=body,
            action={
                "button": button_text,
                "sections": [{"title": section_title, "rows": rows}],
            },
        )

    @classmethod
    def call_to_action(cls, body: str, display_text: str, url: str) -> "InteractiveContent":
        return cls(
            subtype="cta_url",
            body=body,
            action={
                "name": "cta_url",
                "parameters": {"display_text": display_text, "url": url},
            },
        )


OutboundContent = Union[TextContent, ImageContent, InteractiveContent]
