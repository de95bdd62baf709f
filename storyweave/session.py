"""Editing session: the store, its history and every committing command."""

import logging
from dataclasses import dataclass
from typing import Optional, List, Dict, Any, Callable, Tuple

from storyweave.bridge import (
    PersistenceBridge, Navigator, CanvasTransfer, Confirmer, Scheduler,
    save_best_effort,
)
from storyweave.containment import (
    enter_container, leave_container, layout_children, refit_container,
    repair_containment,
)
from storyweave.geometry import Viewport, bounding_rect, Rect
from storyweave.model import (
    Node, Connection, NodeKind, ConnectionKind, NAVIGABLE_KINDS,
    new_id, node_for_tool_click, linked_canvas_id_for,
)
from storyweave.resize import compact_text_height
from storyweave.settings import SettingsStore
from storyweave.store import NodeStore
from storyweave.undo import HistoryManager, MAX_HISTORY

logger = logging.getLogger(__name__)

PASTE_OFFSET = 20
TEMPLATE_GAP = 100
BLUR_GRACE_MS = 150


@dataclass
class PendingTextEdit:
    """A text change waiting for its quiet period to elapse."""
    node_id: str
    field: str
    value: str
    handle: Any = None
    blurred: bool = False


@dataclass
class PendingNestedMove:
    """A drop onto a folder/character waiting for the user's answer."""
    node_id: str
    target_id: str
    drop_x: float
    drop_y: float


class CanvasSession:
    """One editing session over a single canvas.

    Every command mutates the store, then records a history entry, then
    notifies the persistence bridge, all in the same call.
    """

    def __init__(self, bridge: PersistenceBridge,
                 settings: Optional[SettingsStore] = None,
                 navigator: Optional[Navigator] = None,
                 transfer: Optional[CanvasTransfer] = None,
                 confirmer: Optional[Confirmer] = None,
                 scheduler: Optional[Scheduler] = None,
                 max_history: int = MAX_HISTORY):
        self.bridge = bridge
        self.settings = settings or SettingsStore()
        self.navigator = navigator
        self.transfer = transfer
        self.confirmer = confirmer
        self.scheduler = scheduler

        self.store = NodeStore()
        self.history = HistoryManager(max_history)
        self.history.on_restore = self._restore
        self.viewport = Viewport()

        self._pending_text: Dict[Tuple[str, str], PendingTextEdit] = {}
        self.pending_nested_move: Optional[PendingNestedMove] = None

        # Callbacks
        self.on_committed: Optional[Callable[[str], None]] = None

    # ==================== Lifecycle ====================

    def load(self):
        """Seed the store and the first history entry from the bridge."""
        nodes, connections = self.bridge.load()
        repair_containment(nodes)
        self.store.replace(nodes, connections)
        self.store.clear_selection()
        self.history.reset(self.store.nodes, self.store.connections)
        logger.info(f"Loaded canvas with {len(nodes)} nodes and {len(connections)} connections")

    def commit(self, description: str = "") -> bool:
        """Record the current store state and hand it to the bridge."""
        if self.history.is_restoring:
            return False
        if not self.history.commit(self.store.nodes, self.store.connections, description):
            return False
        nodes, connections = self.store.snapshot()
        save_best_effort(self.bridge, nodes, connections)
        if self.on_committed:
            self.on_committed(description)
        return True

    def _restore(self, nodes: List[Node], connections: List[Connection]):
        self.store.replace(nodes, connections)

    def undo(self) -> bool:
        self.flush_text_edits()
        if not self.history.undo():
            return False
        nodes, connections = self.store.snapshot()
        save_best_effort(self.bridge, nodes, connections)
        return True

    def redo(self) -> bool:
        self.flush_text_edits()
        if not self.history.redo():
            return False
        nodes, connections = self.store.snapshot()
        save_best_effort(self.bridge, nodes, connections)
        return True

    # ==================== Node Commands ====================

    def create_node(self, kind: NodeKind, canvas_x: float, canvas_y: float) -> Node:
        """Create a node for a tool click and select it in one step."""
        node = node_for_tool_click(kind, canvas_x, canvas_y, self.store.next_z_index())
        with self.store.batch():
            self.store.add_node(node)
            self.store.select([node.id])
        self.commit(f"Create {node.kind.value} node")
        return node

    def delete_nodes(self, node_ids: List[str]) -> int:
        """Delete nodes and the connections touching them."""
        doomed = [i for i in node_ids if i in self.store]
        if not doomed:
            return 0
        doomed_set = set(doomed)
        with self.store.batch():
            touched_containers = set()
            for node_id in doomed:
                node = self.store.get(node_id)
                if node and node.parent_id and node.parent_id not in doomed_set:
                    touched_containers.add(node.parent_id)
                self.store.remove_node(node_id)
            self.store.connections = [
                c for c in self.store.connections
                if c.from_id not in doomed_set and c.to_id not in doomed_set
            ]
            for container_id in touched_containers:
                if container_id in self.store:
                    refit_container(self.store, container_id)
        self.commit("Delete" if len(doomed) == 1 else f"Delete {len(doomed)} nodes")
        return len(doomed)

    def delete_selection(self) -> int:
        return self.delete_nodes(self.store.selection.ids)

    def move_nodes(self, positions: Dict[str, Tuple[float, float]],
                   description: str = "Move") -> bool:
        """Commit new positions, clamped to the positive quadrant.

        A moved list re-lays out its children, so they always follow it.
        """
        with self.store.batch():
            for node_id, (x, y) in positions.items():
                if node_id in self.store:
                    self.store.move_node(node_id, x, y)
            for node_id in positions:
                node = self.store.get(node_id)
                if node is not None and node.kind == NodeKind.LIST:
                    layout_children(self.store, node_id)
        return self.commit(description)

    def add_to_container(self, node_id: str, container_id: str) -> bool:
        if not enter_container(self.store, node_id, container_id):
            return False
        return self.commit("Add to list")

    def remove_from_container(self, node_id: str, x: Optional[float] = None,
                              y: Optional[float] = None) -> bool:
        if not leave_container(self.store, node_id, x, y):
            return False
        return self.commit("Remove from list")

    # ==================== Connections ====================

    def toggle_connection(self, from_id: str, to_id: str,
                          kind: ConnectionKind = ConnectionKind.SEQUENCE) -> Optional[Connection]:
        """Create the link if absent, delete it if present."""
        if from_id == to_id:
            return None
        existing = self.store.find_connection(from_id, to_id)
        if existing:
            self.store.remove_connection(existing.id)
            self.commit("Disconnect")
            return None
        conn = self.store.add_connection(from_id, to_id, kind)
        self.commit("Connect")
        return conn

    # ==================== Clipboard ====================

    def _copy_payload(self, node_ids: List[str]) -> Optional[Dict[str, Any]]:
        picked: Dict[str, Node] = {}
        for node_id in node_ids:
            node = self.store.get(node_id)
            if node is None:
                continue
            picked[node.id] = node
            for child in self.store.children_of(node.id):
                picked[child.id] = child
        if not picked:
            return None
        ordered = [n for n in self.store.nodes if n.id in picked]
        return {
            "nodes": [n.to_dict() for n in ordered],
            "connections": [
                c.to_dict() for c in self.store.connections
                if c.from_id in picked and c.to_id in picked
            ],
        }

    def copy_selection(self) -> bool:
        payload = self._copy_payload(self.store.selection.ids)
        if payload is None:
            return False
        self.settings.clipboard = payload
        return True

    def cut_selection(self) -> bool:
        if not self.copy_selection():
            return False
        self.delete_selection()
        return True

    def paste(self) -> List[Node]:
        payload = self.settings.clipboard
        if not payload or not payload.get("nodes"):
            return []
        pasted = self._insert_copies(payload["nodes"], payload.get("connections", []),
                                     PASTE_OFFSET, PASTE_OFFSET)
        self.commit("Paste")
        return pasted

    def duplicate_selection(self) -> List[Node]:
        """Copy and paste the selection without touching the clipboard."""
        payload = self._copy_payload(self.store.selection.ids)
        if payload is None:
            return []
        duplicated = self._insert_copies(payload["nodes"], payload["connections"],
                                         PASTE_OFFSET, PASTE_OFFSET)
        self.commit("Duplicate")
        return duplicated

    def apply_template(self, nodes: List[Node], connections: List[Connection]) -> List[Node]:
        """Insert a template's nodes to the right of the existing content."""
        if not nodes:
            return []
        template_box = bounding_rect(Rect(n.x, n.y, n.width, n.height) for n in nodes)
        existing_box = bounding_rect(
            Rect(n.x, n.y, n.width, n.height) for n in self.store.nodes
        )
        target_x = existing_box.right + TEMPLATE_GAP if existing_box else TEMPLATE_GAP
        target_y = existing_box.y if existing_box else TEMPLATE_GAP
        inserted = self._insert_copies(
            [n.to_dict() for n in nodes], [c.to_dict() for c in connections],
            target_x - template_box.x, target_y - template_box.y,
        )
        self.commit("Apply template")
        return inserted

    def _insert_copies(self, node_dicts: List[Dict[str, Any]],
                       connection_dicts: List[Dict[str, Any]],
                       dx: float, dy: float) -> List[Node]:
        """Insert copies with fresh ids; returns the top-level copies."""
        id_map = {d["id"]: new_id(d.get("kind") or "node") for d in node_dicts}
        z_base = self.store.next_z_index()
        copies: List[Node] = []
        for offset, data in enumerate(node_dicts):
            node = Node.from_dict(data)
            node.id = id_map[data["id"]]
            node.x = max(0.0, node.x + dx)
            node.y = max(0.0, node.y + dy)
            node.z_index = z_base + offset
            node.parent_id = id_map.get(node.parent_id) if node.parent_id else None
            if node.child_ids is not None:
                node.child_ids = [id_map[c] for c in node.child_ids if c in id_map]
            if node.linked_canvas_id:
                node.linked_canvas_id = linked_canvas_id_for(node.kind)
            copies.append(node)

        with self.store.batch():
            for node in copies:
                self.store.add_node(node)
            for data in connection_dicts:
                conn = Connection.from_dict(data)
                if conn.from_id in id_map and conn.to_id in id_map:
                    self.store.connections.append(Connection(
                        id=new_id("conn"), from_id=id_map[conn.from_id],
                        to_id=id_map[conn.to_id], kind=conn.kind,
                    ))
            for node in copies:
                if node.kind == NodeKind.LIST:
                    refit_container(self.store, node.id)
            top_level = [n for n in copies if not n.parent_id]
            self.store.select([n.id for n in top_level])
        return top_level

    # ==================== Nested Canvases ====================

    def open_linked_canvas(self, node_id: str) -> Optional[str]:
        """Navigate into a node's sub-canvas, allocating its id on first use."""
        node = self.store.require(node_id)
        if node.kind not in NAVIGABLE_KINDS:
            return None
        if not node.linked_canvas_id:
            node.linked_canvas_id = linked_canvas_id_for(node.kind)
            self.store.touch()
            self.commit("Link canvas")
        if self.navigator:
            self.navigator.navigate_to_canvas(node.linked_canvas_id, node.text or node.kind.value)
        return node.linked_canvas_id

    def request_nested_move(self, node_id: str, target_id: str, drop_x: float, drop_y: float):
        """Ask for confirmation before moving a node into ``target``'s canvas."""
        node = self.store.require(node_id)
        target = self.store.require(target_id)
        self.pending_nested_move = PendingNestedMove(node_id, target_id, drop_x, drop_y)
        if self.confirmer is None or self.transfer is None:
            self.resolve_nested_move(False)
            return
        self.confirmer.request_move_confirmation(node, target, self.resolve_nested_move)

    def resolve_nested_move(self, accepted: bool) -> bool:
        """Finish a pending nested move; a refusal commits a plain move."""
        pending = self.pending_nested_move
        self.pending_nested_move = None
        if pending is None or pending.node_id not in self.store:
            return False
        if not accepted or pending.target_id not in self.store or self.transfer is None:
            return self.move_nodes({pending.node_id: (pending.drop_x, pending.drop_y)})
        return self.move_to_nested_canvas(pending.node_id, pending.target_id)

    def move_to_nested_canvas(self, node_id: str, target_id: str) -> bool:
        """Hand a node (and a list's children) over to the target's sub-canvas."""
        node = self.store.require(node_id)
        target = self.store.require(target_id)
        moving = [node] + self.store.children_of(node.id)
        moving_ids = {n.id for n in moving}
        carried = [c for c in self.store.connections
                   if c.from_id in moving_ids and c.to_id in moving_ids]

        if not target.linked_canvas_id:
            target.linked_canvas_id = linked_canvas_id_for(target.kind)

        copies = [Node.from_dict(n.to_dict()) for n in moving]
        copies[0].parent_id = None
        self.transfer.move_to_canvas(
            target.linked_canvas_id, copies,
            [Connection.from_dict(c.to_dict()) for c in carried],
        )
        logger.info(f"Moved {len(copies)} node(s) into canvas {target.linked_canvas_id}")

        with self.store.batch():
            # Children go with their list, so detach them from the store first
            for child in moving[1:]:
                self.store.remove_node(child.id)
            if node.parent_id:
                leave_container(self.store, node.id)
            self.store.remove_node(node.id)
            self.store.connections = [
                c for c in self.store.connections
                if c.from_id not in moving_ids and c.to_id not in moving_ids
            ]
        return self.commit("Move to nested canvas")

    # ==================== Text Editing ====================

    def edit_text(self, node_id: str, value: str, field: str = "text"):
        """Buffer a text change; it commits after a quiet period."""
        if field not in ("text", "content"):
            raise ValueError(f"Not a text field: {field}")
        key = (node_id, field)
        pending = self._pending_text.get(key)
        if pending is None:
            pending = PendingTextEdit(node_id, field, value)
            self._pending_text[key] = pending
        pending.value = value
        delay = BLUR_GRACE_MS if pending.blurred else self.settings.text_commit_delay_ms
        self._schedule_text_commit(key, delay)

    def blur_text(self, node_id: str):
        """Focus left the editor; commit after the grace delay."""
        for key, pending in list(self._pending_text.items()):
            if pending.node_id == node_id:
                pending.blurred = True
                self._schedule_text_commit(key, BLUR_GRACE_MS)

    def flush_text_edits(self):
        """Commit every buffered edit right now."""
        for key in list(self._pending_text):
            pending = self._pending_text.get(key)
            if pending and pending.handle is not None and self.scheduler:
                self.scheduler.cancel(pending.handle)
            self._commit_text(key)

    @property
    def has_pending_text(self) -> bool:
        return bool(self._pending_text)

    def _schedule_text_commit(self, key: Tuple[str, str], delay_ms: int):
        pending = self._pending_text[key]
        if pending.handle is not None and self.scheduler:
            self.scheduler.cancel(pending.handle)
            pending.handle = None
        if self.scheduler is None or delay_ms <= 0:
            self._commit_text(key)
            return
        pending.handle = self.scheduler.schedule(delay_ms, lambda: self._commit_text(key))

    def _commit_text(self, key: Tuple[str, str]):
        pending = self._pending_text.pop(key, None)
        if pending is None:
            return
        node = self.store.get(pending.node_id)
        if node is None:
            logger.debug(f"Dropping text edit for deleted node {pending.node_id}")
            return
        if getattr(node, pending.field) == pending.value:
            return
        setattr(node, pending.field, pending.value)
        if node.kind == NodeKind.COMPACT_TEXT:
            node.height = compact_text_height(node.content or node.text, node.width)
        self.store.touch()
        self.commit("Edit text")
