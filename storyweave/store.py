"""Canonical node/connection collection with selection and derived indices."""

import logging
from contextlib import contextmanager
from copy import deepcopy
from typing import Optional, List, Dict, Callable, Iterable, Iterator, Tuple

from storyweave.model import Node, Connection, ConnectionKind, NodeKind, new_id

logger = logging.getLogger(__name__)


class SelectionSet:
    """Set of selected node ids with a synchronized primary id."""

    def __init__(self):
        self._ids: Dict[str, None] = {}
        self.primary: Optional[str] = None

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._ids))

    @property
    def ids(self) -> List[str]:
        return list(self._ids)

    def _sync_primary(self):
        if len(self._ids) == 1:
            self.primary = next(iter(self._ids))
        elif self.primary not in self._ids:
            self.primary = None

    def set(self, ids: Iterable[str], primary: Optional[str] = None):
        self._ids = dict.fromkeys(ids)
        if primary is not None and primary in self._ids:
            self.primary = primary
        self._sync_primary()

    def add(self, node_id: str):
        self._ids[node_id] = None
        self._sync_primary()

    def discard(self, node_id: str):
        self._ids.pop(node_id, None)
        self._sync_primary()

    def toggle(self, node_id: str):
        if node_id in self._ids:
            self.discard(node_id)
        else:
            self.add(node_id)

    def clear(self):
        self._ids.clear()
        self.primary = None

    def retain(self, valid_ids: Iterable[str]):
        """Drop ids that no longer exist in the store."""
        valid = set(valid_ids)
        self._ids = {i: None for i in self._ids if i in valid}
        self._sync_primary()


class NodeStore:
    """The single mutable source of truth for one editing session.

    Nodes keep insertion order, which doubles as the stacking order for nodes
    that share a ``z_index``.
    """

    def __init__(self, nodes: Optional[List[Node]] = None,
                 connections: Optional[List[Connection]] = None):
        self._nodes: Dict[str, Node] = {}
        self.connections: List[Connection] = []
        self.selection = SelectionSet()
        self._batch_depth = 0
        self._dirty = False

        # Callbacks
        self.on_changed: Optional[Callable[[], None]] = None

        if nodes or connections:
            self.replace(nodes or [], connections or [])

    # ==================== Queries ====================

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, node_id: Optional[str]) -> Optional[Node]:
        if node_id is None:
            return None
        return self._nodes.get(node_id)

    def require(self, node_id: str) -> Node:
        """Get a node or raise KeyError."""
        try:
            return self._nodes[node_id]
        except KeyError:
            raise KeyError(f"Unknown node id: {node_id}") from None

    @property
    def nodes(self) -> List[Node]:
        return list(self._nodes.values())

    def render_order(self) -> List[Node]:
        """Nodes bottom to top: by z_index, children above their container."""
        order = {node_id: i for i, node_id in enumerate(self._nodes)}
        return sorted(
            self._nodes.values(),
            key=lambda n: (n.z_index, 1 if n.parent_id else 0, order[n.id]),
        )

    def children_of(self, container_id: str) -> List[Node]:
        """Children of a container in child_ids order; stale ids are skipped."""
        container = self._nodes.get(container_id)
        if not container or not container.child_ids:
            return []
        return [self._nodes[c] for c in container.child_ids if c in self._nodes]

    def containers(self) -> List[Node]:
        return [n for n in self._nodes.values() if n.kind == NodeKind.LIST]

    def selected_nodes(self) -> List[Node]:
        return [self._nodes[i] for i in self.selection if i in self._nodes]

    def next_z_index(self) -> int:
        return max((n.z_index for n in self._nodes.values()), default=0) + 1

    # ==================== Connections ====================

    def find_connection(self, from_id: str, to_id: str) -> Optional[Connection]:
        for conn in self.connections:
            if conn.from_id == from_id and conn.to_id == to_id:
                return conn
        return None

    def live_connections(self) -> List[Connection]:
        """Connections whose endpoints both exist; stale ones are skipped."""
        return [c for c in self.connections
                if c.from_id in self._nodes and c.to_id in self._nodes]

    def connections_for(self, node_id: str) -> List[Connection]:
        return [c for c in self.connections if node_id in (c.from_id, c.to_id)]

    def add_connection(self, from_id: str, to_id: str,
                       kind: ConnectionKind = ConnectionKind.SEQUENCE) -> Connection:
        conn = Connection(id=new_id("conn"), from_id=from_id, to_id=to_id, kind=kind)
        self.connections.append(conn)
        self._changed()
        return conn

    def remove_connection(self, connection_id: str):
        self.connections = [c for c in self.connections if c.id != connection_id]
        self._changed()

    # ==================== Mutations ====================

    def add_node(self, node: Node) -> Node:
        if node.id in self._nodes:
            raise ValueError(f"Duplicate node id: {node.id}")
        self._nodes[node.id] = node
        self._changed()
        return node

    def remove_node(self, node_id: str) -> Optional[Node]:
        """Remove a node; containment links to it are cleaned up.

        Connections touching the node are left alone, callers decide whether
        to drop them.
        """
        node = self._nodes.pop(node_id, None)
        if node is None:
            return None
        if node.parent_id:
            parent = self._nodes.get(node.parent_id)
            if parent and parent.child_ids:
                parent.child_ids = [c for c in parent.child_ids if c != node_id]
        for child_id in node.child_ids or []:
            child = self._nodes.get(child_id)
            if child and child.parent_id == node_id:
                child.parent_id = None
        self.selection.discard(node_id)
        self._changed()
        return node

    def move_node(self, node_id: str, x: float, y: float):
        node = self.require(node_id)
        node.x = max(0.0, x)
        node.y = max(0.0, y)
        self._changed()

    def resize_node(self, node_id: str, width: float, height: float):
        node = self.require(node_id)
        node.width = width
        node.height = height
        self._changed()

    def select(self, ids: Iterable[str], primary: Optional[str] = None):
        self.selection.set([i for i in ids if i in self._nodes], primary)
        self._changed()

    def toggle_selected(self, node_id: str):
        self.selection.toggle(node_id)
        self._changed()

    def clear_selection(self):
        if len(self.selection):
            self.selection.clear()
            self._changed()

    def touch(self):
        """Signal an in-place edit made directly on a node object."""
        self._changed()

    def replace(self, nodes: List[Node], connections: List[Connection]):
        """Swap in a full state in one step; selection keeps surviving ids."""
        with self.batch():
            self._nodes = {n.id: n for n in nodes}
            self.connections = list(connections)
            self.selection.retain(self._nodes)
            self._changed()

    def snapshot(self) -> Tuple[List[Node], List[Connection]]:
        """Independent deep copy of the current nodes and connections."""
        return deepcopy(self.nodes), deepcopy(self.connections)

    # ==================== Notification ====================

    @contextmanager
    def batch(self):
        """Group mutations so observers see a single change."""
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._dirty:
                self._dirty = False
                self._notify()

    def _changed(self):
        if self._batch_depth:
            self._dirty = True
        else:
            self._notify()

    def _notify(self):
        if self.on_changed:
            self.on_changed()
