"""Per-kind resize policy and table column resizing."""

import math
from typing import Dict, List, Optional, Tuple

from storyweave.geometry import snap
from storyweave.model import Node, NodeKind

Size = Tuple[float, float]

DEFAULT_MIN_SIZE: Size = (120, 80)
KIND_MIN_SIZES: Dict[NodeKind, Size] = {
    NodeKind.EVENT: (220, 280),
    NodeKind.CHARACTER: (320, 72),
    NodeKind.LOCATION: (320, 72),
    NodeKind.IMAGE: (200, 200),
    NodeKind.LINE: (1, 1),
}

# List containers
LIST_MIN_WIDTH = 320
LIST_MAX_WIDTH = 800
LIST_MAX_HEIGHT = 1200
CHILD_MIN_WIDTH = 80
CHILD_MIN_HEIGHT = 60

# Tables
TABLE_MIN_WIDTH = 150
TABLE_MIN_COLUMN_WIDTH = 60
TABLE_MIN_HEIGHT = 80
MIN_COLUMN_PERCENT = 10.0

# Compact text
COMPACT_MIN_WIDTH = 120
COMPACT_PADDING = 12
COMPACT_LINE_HEIGHT = 20
COMPACT_CHAR_WIDTH = 8


def list_min_height(child_count: int) -> float:
    return max(200, 80 + child_count * 32 + 40)


def table_columns(node: Node) -> int:
    return max(1, len(node.attributes.get("columns") or []))


def compact_text_height(text: str, width: float) -> float:
    """Height a compact-text node needs to show ``text`` at ``width``."""
    chars_per_line = max(1, int((width - COMPACT_PADDING * 2) // COMPACT_CHAR_WIDTH))
    lines = 0
    for paragraph in (text or "").split("\n"):
        lines += max(1, math.ceil(len(paragraph) / chars_per_line))
    return COMPACT_PADDING * 2 + lines * COMPACT_LINE_HEIGHT


def min_size(node: Node) -> Size:
    """Smallest size a node of this kind may take."""
    if node.kind == NodeKind.LIST:
        return (LIST_MIN_WIDTH, list_min_height(len(node.child_ids or [])))
    if node.kind == NodeKind.TABLE:
        return (max(TABLE_MIN_WIDTH, TABLE_MIN_COLUMN_WIDTH * table_columns(node)),
                TABLE_MIN_HEIGHT)
    if node.kind == NodeKind.COMPACT_TEXT:
        return (COMPACT_MIN_WIDTH, compact_text_height(node.content or node.text, COMPACT_MIN_WIDTH))
    return KIND_MIN_SIZES.get(node.kind, DEFAULT_MIN_SIZE)


def image_aspect(node: Node, start_w: float, start_h: float) -> float:
    original_w = node.attributes.get("original_width") or start_w
    original_h = node.attributes.get("original_height") or start_h
    if not original_w or not original_h:
        return 1.0
    return original_w / original_h


def resize_dimensions(node: Node, start_w: float, start_h: float,
                      dx: float, dy: float, grid_size: float = 0) -> Size:
    """New size for a handle drag of (dx, dy) canvas units from the start size.

    Grid snapping happens before the minimum clamp so a snapped size can
    never come out undersized.
    """
    min_w, min_h = min_size(node)

    if node.kind == NodeKind.LINE:
        return (start_w, start_h)

    if node.kind == NodeKind.IMAGE:
        aspect = image_aspect(node, start_w, start_h)
        scale = ((start_w + dx) / start_w + (start_h + dy) / start_h) / 2 if start_w and start_h else 1.0
        width = max(1.0, start_w * scale)
        if grid_size:
            width = max(1.0, snap(width, grid_size))
        height = width / aspect
        # Scale up uniformly when under the floor
        factor = max(1.0, min_w / width, min_h / height)
        return (width * factor, height * factor)

    if node.kind in (NodeKind.TABLE, NodeKind.COMPACT_TEXT):
        width = start_w + dx
        if grid_size:
            width = snap(width, grid_size)
        width = max(min_w, width)
        if node.kind == NodeKind.COMPACT_TEXT:
            return (width, compact_text_height(node.content or node.text, width))
        return (width, start_h)

    width = start_w + dx
    height = start_h + dy
    if grid_size:
        width = snap(width, grid_size)
        height = snap(height, grid_size)
    width = max(min_w, width)
    height = max(min_h, height)
    if node.kind == NodeKind.LIST:
        width = min(LIST_MAX_WIDTH, width)
        height = min(LIST_MAX_HEIGHT, height)
    return (width, height)


def scale_children(start_sizes: Dict[str, Size], start_w: float, start_h: float,
                   new_w: float, new_h: float) -> Dict[str, Size]:
    """Child sizes after their container went from start to new size."""
    sx = new_w / start_w if start_w else 1.0
    sy = new_h / start_h if start_h else 1.0
    return {
        child_id: (max(CHILD_MIN_WIDTH, w * sx), max(CHILD_MIN_HEIGHT, h * sy))
        for child_id, (w, h) in start_sizes.items()
    }


# ==================== Table Columns ====================

def column_widths(node: Node) -> List[float]:
    """Column percentages of a table; equal split when missing or inconsistent."""
    count = table_columns(node)
    widths = node.attributes.get("column_widths")
    if not widths or len(widths) != count or not math.isclose(sum(widths), 100.0, abs_tol=1e-6):
        return [100.0 / count] * count
    return [float(w) for w in widths]


def column_boundaries(node: Node) -> List[float]:
    """Canvas x of each boundary between adjacent columns."""
    result = []
    offset = 0.0
    for pct in column_widths(node)[:-1]:
        offset += pct
        result.append(node.x + node.width * offset / 100.0)
    return result


def resize_columns(widths: List[float], index: int, delta_px: float,
                   table_width: float) -> List[float]:
    """Move the boundary between columns ``index`` and ``index + 1``.

    The pair's combined percentage never changes, and neither column drops
    below MIN_COLUMN_PERCENT. A pair too narrow for two floors stays as is.
    """
    if index < 0 or index + 1 >= len(widths):
        raise IndexError(f"No column boundary at index {index}")
    result = list(widths)
    if table_width <= 0:
        return result

    delta_pct = delta_px / table_width * 100.0
    left_start, right_start = widths[index], widths[index + 1]
    if left_start + right_start < 2 * MIN_COLUMN_PERCENT:
        # The pair cannot hold two floored columns
        return result
    delta_pct = max(MIN_COLUMN_PERCENT - left_start,
                    min(right_start - MIN_COLUMN_PERCENT, delta_pct))
    result[index] = left_start + delta_pct
    result[index + 1] = right_start - delta_pct
    return result


def find_column_boundary(node: Node, canvas_x: float, tolerance: float) -> Optional[int]:
    """Index of the boundary under ``canvas_x``, if any."""
    for index, boundary_x in enumerate(column_boundaries(node)):
        if abs(boundary_x - canvas_x) <= tolerance:
            return index
    return None
