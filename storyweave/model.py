"""Canvas data model: nodes, connections and per-kind defaults."""

import json
import uuid
from dataclasses import dataclass, field, asdict, fields
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple


class NodeKind(str, Enum):
    """Kinds of nodes that can be placed on the canvas."""
    TEXT = "text"
    CHARACTER = "character"
    EVENT = "event"
    LOCATION = "location"
    FOLDER = "folder"
    LIST = "list"
    IMAGE = "image"
    TABLE = "table"
    RELATIONSHIP_CANVAS = "relationship-canvas"
    LINE = "line"
    COMPACT_TEXT = "compact-text"


class ConnectionKind(str, Enum):
    """Kinds of links between nodes."""
    SEQUENCE = "sequence-link"
    RELATIONSHIP = "relationship-link"


# Kinds a list container accepts as children
CONTAINABLE_KINDS = frozenset({
    NodeKind.FOLDER, NodeKind.CHARACTER, NodeKind.LOCATION, NodeKind.EVENT,
})

# Kinds that accept a dragged node into their nested canvas
NESTED_DROP_KINDS = frozenset({NodeKind.FOLDER, NodeKind.CHARACTER})

# Kinds that own a linked sub-canvas
NAVIGABLE_KINDS = frozenset({
    NodeKind.FOLDER, NodeKind.CHARACTER, NodeKind.EVENT,
    NodeKind.LOCATION, NodeKind.RELATIONSHIP_CANVAS,
})

DEFAULT_SIZES: Dict[NodeKind, Tuple[float, float]] = {
    NodeKind.TEXT: (300, 139),
    NodeKind.CHARACTER: (320, 72),
    NodeKind.EVENT: (220, 280),
    NodeKind.LOCATION: (320, 72),
    NodeKind.FOLDER: (240, 140),
    NodeKind.LIST: (320, 240),
    NodeKind.IMAGE: (300, 200),
    NodeKind.TABLE: (280, 200),
    NodeKind.RELATIONSHIP_CANVAS: (600, 400),
    NodeKind.LINE: (200, 80),
    NodeKind.COMPACT_TEXT: (240, 44),
}

DEFAULT_TEXT: Dict[NodeKind, str] = {
    NodeKind.TEXT: "New Text",
    NodeKind.CHARACTER: "New Character",
    NodeKind.EVENT: "New Event",
    NodeKind.LOCATION: "New Location",
    NodeKind.FOLDER: "New Folder",
    NodeKind.LIST: "New List",
    NodeKind.IMAGE: "New Image",
    NodeKind.TABLE: "New Table",
    NodeKind.RELATIONSHIP_CANVAS: "Relationships",
    NodeKind.LINE: "",
    NodeKind.COMPACT_TEXT: "",
}

DEFAULT_TABLE_ROWS = ["Name", "Age", "Role", "Height", "Job"]

# A tool click places the new node's corner up and left of the pointer
CREATE_OFFSET_X = 100
CREATE_OFFSET_Y = 60


def new_id(prefix: str = "node") -> str:
    """Generate a unique id with a readable prefix."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def linked_canvas_id_for(kind: NodeKind) -> str:
    return new_id(f"{kind.value}-canvas")


@dataclass
class Node:
    """A placeable canvas entity."""
    id: str
    kind: NodeKind = NodeKind.TEXT
    x: float = 0.0
    y: float = 0.0
    width: float = 300.0
    height: float = 139.0
    text: str = ""
    content: str = ""
    parent_id: Optional[str] = None
    child_ids: Optional[List[str]] = None
    z_index: int = 0
    color: Optional[str] = None
    linked_canvas_id: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.kind = NodeKind(self.kind)
        if self.kind == NodeKind.LIST and self.child_ids is None:
            self.child_ids = []

    @property
    def is_container(self) -> bool:
        return self.kind == NodeKind.LIST

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Node":
        # Filter to only known fields to handle schema evolution
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class Connection:
    """A directed link between two node ids. Endpoints may be stale."""
    id: str
    from_id: str
    to_id: str
    kind: ConnectionKind = ConnectionKind.SEQUENCE

    def __post_init__(self):
        self.kind = ConnectionKind(self.kind)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "from": self.from_id,
            "to": self.to_id,
            "kind": self.kind.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Connection":
        return cls(
            id=data["id"],
            from_id=data["from"],
            to_id=data["to"],
            kind=data.get("kind") or ConnectionKind.SEQUENCE,
        )


def default_attributes(kind: NodeKind, width: float, height: float) -> Dict[str, Any]:
    """Kind-specific payload for a freshly created node."""
    if kind == NodeKind.TABLE:
        return {
            "columns": ["Field", "Value"],
            "rows": [[label, ""] for label in DEFAULT_TABLE_ROWS],
            "column_widths": [50.0, 50.0],
        }
    if kind == NodeKind.IMAGE:
        return {"original_width": width, "original_height": height}
    if kind == NodeKind.LINE:
        mid_y = height / 2
        return {"vertices": [[0.0, mid_y], [width / 2, mid_y], [width, mid_y]]}
    return {}


def make_node(kind: NodeKind, x: float, y: float, z_index: int = 0,
              node_id: Optional[str] = None) -> Node:
    """Create a node of ``kind`` with its default size, text and payload."""
    kind = NodeKind(kind)
    width, height = DEFAULT_SIZES[kind]
    return Node(
        id=node_id or new_id(kind.value),
        kind=kind,
        x=max(0.0, x),
        y=max(0.0, y),
        width=width,
        height=height,
        text=DEFAULT_TEXT[kind],
        z_index=z_index,
        linked_canvas_id=linked_canvas_id_for(kind) if kind == NodeKind.FOLDER else None,
        attributes=default_attributes(kind, width, height),
    )


def node_for_tool_click(kind: NodeKind, canvas_x: float, canvas_y: float,
                        z_index: int = 0) -> Node:
    """Create a node for a creation-tool click at a canvas coordinate."""
    return make_node(kind, canvas_x - CREATE_OFFSET_X, canvas_y - CREATE_OFFSET_Y, z_index)


def nodes_to_json(nodes: List[Node]) -> str:
    return json.dumps([n.to_dict() for n in nodes])


def nodes_from_json(data: Optional[str]) -> List[Node]:
    if not data:
        return []
    try:
        return [Node.from_dict(d) for d in json.loads(data)]
    except (json.JSONDecodeError, TypeError, ValueError, KeyError):
        return []


def connections_from_json(data: Optional[str]) -> List[Connection]:
    if not data:
        return []
    try:
        return [Connection.from_dict(d) for d in json.loads(data)]
    except (json.JSONDecodeError, TypeError, ValueError, KeyError):
        return []
