"""List containers: membership rules and auto-layout.

Containment is exactly one level deep. Only list nodes accept children and
lists are never containable, so nesting cannot form chains or cycles.
"""

import logging
from typing import List, Optional, Tuple

from storyweave.model import Node, NodeKind, CONTAINABLE_KINDS
from storyweave.resize import LIST_MIN_WIDTH, LIST_MAX_WIDTH, LIST_MAX_HEIGHT, list_min_height
from storyweave.store import NodeStore

logger = logging.getLogger(__name__)

HEADER_HEIGHT = 40
SPACING = 15
EMPTY_HEIGHT = 120
DEFAULT_ROW_HEIGHT = 140
ROW_HEIGHTS = {
    NodeKind.CHARACTER: 72,
    NodeKind.LOCATION: 72,
}


def row_height(kind: NodeKind) -> float:
    return ROW_HEIGHTS.get(kind, DEFAULT_ROW_HEIGHT)


def container_size(container: Node, children: List[Node]) -> Tuple[float, float]:
    """Size of a list holding ``children``; the user's width is kept."""
    if children:
        required = HEADER_HEIGHT + SPACING + sum(row_height(c.kind) + SPACING for c in children)
    else:
        required = EMPTY_HEIGHT
    width = min(LIST_MAX_WIDTH, max(LIST_MIN_WIDTH, container.width))
    height = min(LIST_MAX_HEIGHT, max(list_min_height(len(children)), required))
    return width, height


def can_enter(container: Optional[Node], node: Optional[Node]) -> bool:
    """Whether ``node`` may be dropped into ``container``."""
    if container is None or node is None:
        return False
    return (
        container.kind == NodeKind.LIST
        and node.id != container.id
        and node.kind in CONTAINABLE_KINDS
        and node.parent_id is None
    )


def layout_children(store: NodeStore, container_id: str):
    """Stack children in a single column under the container header."""
    container = store.require(container_id)
    cursor_y = container.y + HEADER_HEIGHT + SPACING
    for child in store.children_of(container_id):
        child.x = container.x + SPACING
        child.y = cursor_y
        cursor_y += row_height(child.kind) + SPACING
    store.touch()


def refit_container(store: NodeStore, container_id: str):
    """Recompute a container's size from its children and lay them out."""
    container = store.require(container_id)
    container.width, container.height = container_size(container, store.children_of(container_id))
    layout_children(store, container_id)


def enter_container(store: NodeStore, node_id: str, container_id: str) -> bool:
    """Reparent a free node into a list container."""
    node = store.require(node_id)
    container = store.require(container_id)
    if not can_enter(container, node):
        return False
    with store.batch():
        if node_id not in container.child_ids:
            container.child_ids.append(node_id)
        node.parent_id = container_id
        refit_container(store, container_id)
    logger.debug(f"Node {node_id} entered container {container_id}")
    return True


def leave_container(store: NodeStore, node_id: str,
                    x: Optional[float] = None, y: Optional[float] = None) -> bool:
    """Detach a node from its container, placing it at (x, y) or beside it."""
    node = store.require(node_id)
    if not node.parent_id:
        return False
    container = store.get(node.parent_id)
    with store.batch():
        node.parent_id = None
        if container is not None:
            container.child_ids = [c for c in container.child_ids or [] if c != node_id]
            refit_container(store, container.id)
            if x is None or y is None:
                x, y = container.x + container.width + SPACING, container.y
        node.x = max(0.0, x if x is not None else node.x)
        node.y = max(0.0, y if y is not None else node.y)
        store.touch()
    logger.debug(f"Node {node_id} left its container")
    return True


def repair_containment(nodes: List[Node]) -> int:
    """Fix broken parent/child links in a loaded node list. Returns fix count."""
    by_id = {n.id: n for n in nodes}
    fixes = 0

    for node in nodes:
        if node.kind == NodeKind.LIST:
            seen = []
            for child_id in node.child_ids or []:
                if child_id in by_id and child_id not in seen:
                    seen.append(child_id)
            if seen != (node.child_ids or []):
                fixes += 1
            node.child_ids = seen
        elif node.child_ids:
            node.child_ids = None
            fixes += 1

    for node in nodes:
        if not node.parent_id:
            continue
        parent = by_id.get(node.parent_id)
        if parent is None or parent.kind != NodeKind.LIST or node.kind == NodeKind.LIST:
            node.parent_id = None
            fixes += 1
        elif node.id not in parent.child_ids:
            parent.child_ids.append(node.id)
            fixes += 1

    # Children listed by a container they do not point back to
    for node in nodes:
        if node.kind != NodeKind.LIST:
            continue
        kept = [c for c in node.child_ids if by_id[c].parent_id == node.id]
        if kept != node.child_ids:
            fixes += len(node.child_ids) - len(kept)
            node.child_ids = kept

    if fixes:
        logger.warning(f"Repaired {fixes} containment inconsistencies")
    return fixes
