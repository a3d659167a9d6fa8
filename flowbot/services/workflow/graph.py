"""
Workflow graph model.

Definitions are stored as the editor saves them (a JSON list of nodes and
a JSON list of edges). They are parsed here once per load into typed node
models and an edge index so that the engine never has to scan edge lists
or guess at optional fields.
"""

from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Literal, Optional, Tuple, Type

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    field_validator,
)

from flowbot.services.workflow.errors import WorkflowGraphError

EdgeKey = Tuple[str, Optional[str]]

URL_BUTTON = "url"
PHONE_BUTTONS = ("phone", "phone_number")
REPLY_BUTTON = "reply"


def normalize_text(text: Optional[str]) -> str:
    """Trim and lowercase inbound text for keyword and label comparison"""
    return (text or "").strip().lower()


def parse_trigger_keywords(raw: Optional[str]) -> FrozenSet[str]:
    """Split a comma-separated trigger field into normalized keywords"""
    if not raw:
        return frozenset()
    return frozenset(k for k in (normalize_text(part) for part in raw.split(",")) if k)


def handle_for(index: int) -> str:
    return f"handle-{index}"


class ButtonOption(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str = REPLY_BUTTON
    text: str
    value: Optional[str] = None

    @property
    def is_url(self) -> bool:
        return self.type == URL_BUTTON

    @property
    def is_phone(self) -> bool:
        return self.type in PHONE_BUTTONS

    @property
    def is_call_to_action(self) -> bool:
        return self.is_url or self.is_phone


class ListItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str
    description: Optional[str] = None


class BaseNode(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    id: str
    type: str


class StartNode(BaseNode):
    type: Literal["start"] = "start"


class MessageNode(BaseNode):
    type: Literal["message"] = "message"
    content: str = ""


class ImageNode(BaseNode):
    type: Literal["image"] = "image"
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    content: Optional[str] = None


class GalleryNode(BaseNode):
    type: Literal["gallery"] = "gallery"
    image_urls: List[str] = Field(default_factory=list, alias="imageUrls")
    content: Optional[str] = None


class ButtonNode(BaseNode):
    type: Literal["button"] = "button"
    buttons: List[ButtonOption] = Field(default_factory=list)
    label: Optional[str] = None


class ListNode(BaseNode):
    type: Literal["list"] = "list"
    items: List[ListItem] = Field(default_factory=list)
    label: Optional[str] = None


class PassThroughNode(BaseNode):
    """A node type this engine does not know; it is skipped at runtime"""


NODE_TYPES: Dict[str, Type[BaseNode]] = {
    "start": StartNode,
    "message": MessageNode,
    "image": ImageNode,
    "gallery": GalleryNode,
    "button": ButtonNode,
    "list": ListNode,
}


class Edge(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    source: str
    target: str
    handle: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("sourceHandle", "handle")
    )

    @field_validator("handle", mode="before")
    @classmethod
    def _blank_handle_is_unset(cls, value: Any) -> Any:
        if value in ("", None):
            return None
        return value


def parse_node(raw: Dict[str, Any], workflow_id: str = "?") -> BaseNode:
    """Build the typed node for one persisted ``{id, type, data}`` entry."""
    if not isinstance(raw, dict) or not raw.get("id"):
        raise WorkflowGraphError(workflow_id, f"malformed node entry: {raw!r}")

    node_type = raw.get("type") or ""
    data = raw.get("data") or {}
    if not isinstance(data, dict):
        raise WorkflowGraphError(workflow_id, f"node {raw['id']} has non-object data")

    node_cls = NODE_TYPES.get(node_type, PassThroughNode)
    try:
        return node_cls.model_validate({**data, "id": raw["id"], "type": node_type})
    except ValidationError as e:
        raise WorkflowGraphError(
            workflow_id, f"node {raw['id']} ({node_type}): {e.errors()[0]['msg']}"
        ) from e


class WorkflowDefinition(BaseModel):
    """A loaded, validated workflow graph with its edge index"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    tenant_id: str
    name: str
    trigger_keywords: FrozenSet[str] = frozenset()
    nodes: Dict[str, BaseNode] = Field(default_factory=dict)
    edges: List[Edge] = Field(default_factory=list)
    is_active: bool = True
    updated_at: Optional[datetime] = None

    _edge_index: Dict[EdgeKey, Edge] = PrivateAttr(default_factory=dict)
    _start_node_id: Optional[str] = PrivateAttr(default=None)

    def model_post_init(self, __context: Any) -> None:
        starts = [n.id for n in self.nodes.values() if isinstance(n, StartNode)]
        if len(starts) != 1:
            raise WorkflowGraphError(
                self.id, f"expected exactly one start node, found {len(starts)}"
            )
        self._start_node_id = starts[0]

        # First edge wins when the editor saved duplicates
        for edge in self.edges:
            self._edge_index.setdefault((edge.source, edge.handle), edge)

    @classmethod
    def from_payload(
        cls,
        *,
        id: str,
        tenant_id: str,
        name: str,
        trigger_keyword: Optional[str],
        nodes: Optional[List[Dict[str, Any]]],
        edges: Optional[List[Dict[str, Any]]],
        is_active: bool = True,
        updated_at: Optional[datetime] = None,
    ) -> "WorkflowDefinition":
        parsed: Dict[str, BaseNode] = {}
        for raw in nodes or []:
            node = parse_node(raw, id)
            if node.id in parsed:
                raise WorkflowGraphError(id, f"duplicate node id {node.id}")
            parsed[node.id] = node

        try:
            parsed_edges = [Edge.model_validate(e) for e in edges or []]
        except ValidationError as e:
            raise WorkflowGraphError(id, f"malformed edge: {e.errors()[0]['msg']}") from e

        return cls(
            id=id,
            tenant_id=tenant_id,
            name=name,
            trigger_keywords=parse_trigger_keywords(trigger_keyword),
            nodes=parsed,
            edges=parsed_edges,
            is_active=bool(is_active),
            updated_at=updated_at,
        )

    @classmethod
    def from_record(cls, record: Any) -> "WorkflowDefinition":
        """Load from a ``Workflow`` ORM row"""
        return cls.from_payload(
            id=record.id,
            tenant_id=record.vendor_id,
            name=record.name,
            trigger_keyword=record.trigger_keyword,
            nodes=record.nodes,
            edges=record.edges,
            is_active=record.is_active,
            updated_at=record.updated_at,
        )

    @property
    def start_node(self) -> StartNode:
        return self.nodes[self._start_node_id]

    def get_node(self, node_id: Optional[str]) -> Optional[BaseNode]:
        if node_id is None:
            return None
        return self.nodes.get(node_id)

    def edge_from(self, source: str, handle: Optional[str] = None) -> Optional[Edge]:
        return self._edge_index.get((source, handle))

    def next_node_id(self, source: str, handle: Optional[str] = None) -> Optional[str]:
        edge = self.edge_from(source, handle)
        return edge.target if edge else None

    def is_triggered_by(self, normalized_text: str) -> bool:
        return bool(normalized_text) and normalized_text in self.trigger_keywords
