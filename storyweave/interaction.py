"""
Pointer and keyboard state machine for the canvas.

The controller turns low-level pointer/key events into gestures. While a
gesture runs it only updates preview values (positions, sizes, column widths,
line vertices); the store is written once, on release, through the session.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional, List, Dict, Tuple, Callable

from storyweave.containment import can_enter, layout_children
from storyweave.geometry import Rect, rect_from_points, distance, snap
from storyweave.model import (
    Node, NodeKind, ConnectionKind, NESTED_DROP_KINDS, NAVIGABLE_KINDS,
)
from storyweave.resize import (
    resize_dimensions, scale_children, column_widths, find_column_boundary,
    resize_columns,
)
from storyweave.session import CanvasSession

logger = logging.getLogger(__name__)

DRAG_THRESHOLD = 3
RESIZE_HANDLE_SIZE = 16
COLUMN_HIT_TOLERANCE = 4
VERTEX_HIT_TOLERANCE = 8


class Mode(Enum):
    IDLE = "idle"
    PANNING = "panning"
    BOX_SELECTING = "box-selecting"
    DRAG_PENDING = "drag-pending"
    DRAGGING = "dragging"
    RESIZE_PENDING = "resize-pending"
    RESIZING = "resizing"
    CONNECT_PENDING = "connect-pending"
    COLUMN_RESIZING = "column-resizing"
    LINE_VERTEX_DRAGGING = "line-vertex-dragging"


class Tool(str, Enum):
    """Active toolbar tool. Creation tools share their node kind's value."""
    SELECT = "select"
    PAN = "pan"
    CONNECT = "connect"
    RELATIONSHIP = "relationship"
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

    @property
    def creates(self) -> Optional[NodeKind]:
        """Node kind this tool creates, if it is a creation tool."""
        try:
            return NodeKind(self.value)
        except ValueError:
            return None

    @property
    def connects(self) -> bool:
        return self in (Tool.CONNECT, Tool.RELATIONSHIP)


class PointerButton(IntEnum):
    PRIMARY = 1
    MIDDLE = 2
    SECONDARY = 3


class HitPart(Enum):
    BODY = "body"
    RESIZE_HANDLE = "resize-handle"
    COLUMN_BOUNDARY = "column-boundary"
    LINE_VERTEX = "line-vertex"


@dataclass
class PointerEvent:
    """A pointer sample in screen coordinates."""
    x: float
    y: float
    button: PointerButton = PointerButton.PRIMARY
    shift: bool = False
    ctrl: bool = False
    click_count: int = 1
    # True while the user has a non-empty text selection inside a node
    text_selected: bool = False


@dataclass
class KeyEvent:
    """A key press. ``key`` uses GDK key names (``z``, ``Delete``, ``plus``)."""
    key: str
    ctrl: bool = False
    shift: bool = False
    text_focus: bool = False


@dataclass
class Hit:
    node: Node
    part: HitPart = HitPart.BODY
    index: Optional[int] = None


@dataclass
class LinePreview:
    x: float
    y: float
    width: float
    height: float
    vertices: List[List[float]] = field(default_factory=list)


def line_points(node: Node) -> List[Tuple[float, float]]:
    """Absolute canvas positions of a line's control points."""
    return [(node.x + vx, node.y + vy) for vx, vy in node.attributes.get("vertices") or []]


def normalize_line(points: List[Tuple[float, float]]) -> LinePreview:
    """Fit a line's bounding box to its points; vertices become relative."""
    xs = [max(0.0, px) for px, _ in points]
    ys = [max(0.0, py) for _, py in points]
    left, top = min(xs), min(ys)
    return LinePreview(
        x=left,
        y=top,
        width=max(1.0, max(xs) - left),
        height=max(1.0, max(ys) - top),
        vertices=[[px - left, py - top] for px, py in zip(xs, ys)],
    )


class InteractionController:
    """Maps pointer/keyboard input onto session commands."""

    def __init__(self, session: CanvasSession):
        self.session = session
        self.mode = Mode.IDLE
        self.tool = Tool.SELECT
        self.connect_from: Optional[str] = None

        # Gesture state
        self._press: Tuple[float, float] = (0.0, 0.0)
        self._last: Tuple[float, float] = (0.0, 0.0)
        self._active_id: Optional[str] = None
        self._drag_starts: Dict[str, Tuple[float, float]] = {}
        self._resize_start: Tuple[float, float] = (0.0, 0.0)
        self._child_start_sizes: Dict[str, Tuple[float, float]] = {}
        self._column_index: Optional[int] = None
        self._vertex_index: Optional[int] = None
        self._box_base: List[str] = []

        # Previews, never written to the store until release
        self.preview_positions: Dict[str, Tuple[float, float]] = {}
        self.preview_sizes: Dict[str, Tuple[float, float]] = {}
        self.preview_columns: Optional[List[float]] = None
        self.preview_line: Optional[LinePreview] = None
        self.box_rect: Optional[Rect] = None

        # Callbacks
        self.on_changed: Optional[Callable[[], None]] = None
        self.on_tool_changed: Optional[Callable[[Tool], None]] = None

    @property
    def store(self):
        return self.session.store

    @property
    def viewport(self):
        return self.session.viewport

    # ==================== Geometry ====================

    def display_rect(self, node: Node) -> Rect:
        """Node rectangle as it should be drawn, previews included."""
        if self.preview_line and node.id == self._active_id and self.mode == Mode.LINE_VERTEX_DRAGGING:
            p = self.preview_line
            return Rect(p.x, p.y, p.width, p.height)
        x, y = self.preview_positions.get(node.id, (node.x, node.y))
        width, height = self.preview_sizes.get(node.id, (node.width, node.height))
        return Rect(x, y, width, height)

    def display_columns(self, node: Node) -> List[float]:
        if self.preview_columns is not None and node.id == self._active_id:
            return self.preview_columns
        return column_widths(node)

    def display_vertices(self, node: Node) -> List[Tuple[float, float]]:
        if self.preview_line and node.id == self._active_id:
            p = self.preview_line
            return [(p.x + vx, p.y + vy) for vx, vy in p.vertices]
        rect = self.display_rect(node)
        return [(rect.x + vx, rect.y + vy) for vx, vy in node.attributes.get("vertices") or []]

    def hit_test(self, sx: float, sy: float) -> Optional[Hit]:
        """Topmost node part under a screen point."""
        cx, cy = self.viewport.to_canvas(sx, sy)
        zoom = self.viewport.zoom
        for node in reversed(self.store.render_order()):
            rect = Rect(node.x, node.y, node.width, node.height)
            if node.kind == NodeKind.LINE:
                tolerance = VERTEX_HIT_TOLERANCE / zoom
                for index, (px, py) in enumerate(line_points(node)):
                    if distance(cx, cy, px, py) <= tolerance:
                        return Hit(node, HitPart.LINE_VERTEX, index)
                if rect.contains_point(cx, cy):
                    return Hit(node)
                continue
            if not node.parent_id:
                handle = RESIZE_HANDLE_SIZE / zoom
                if (rect.right - handle <= cx <= rect.right
                        and rect.bottom - handle <= cy <= rect.bottom):
                    return Hit(node, HitPart.RESIZE_HANDLE)
            if node.kind == NodeKind.TABLE and rect.contains_point(cx, cy):
                index = find_column_boundary(node, cx, COLUMN_HIT_TOLERANCE / zoom)
                if index is not None:
                    return Hit(node, HitPart.COLUMN_BOUNDARY, index)
            if rect.contains_point(cx, cy):
                return Hit(node)
        return None

    def cursor_name(self, sx: float, sy: float) -> str:
        """CSS cursor name for hover feedback."""
        if self.mode == Mode.PANNING:
            return "grabbing"
        if self.tool.creates:
            return "crosshair"
        hit = self.hit_test(sx, sy)
        if hit is None:
            return "grab" if self.tool == Tool.PAN else "default"
        if self.tool.connects:
            return "pointer"
        return {
            HitPart.RESIZE_HANDLE: "se-resize",
            HitPart.COLUMN_BOUNDARY: "col-resize",
            HitPart.LINE_VERTEX: "move",
        }.get(hit.part, "move")

    # ==================== Tools ====================

    def set_tool(self, tool: Tool):
        tool = Tool(tool)
        if self.connect_from is not None:
            self._cancel_connect()
        if tool not in (Tool.SELECT, Tool.RELATIONSHIP) and self.mode in (
                Mode.PANNING, Mode.BOX_SELECTING):
            self._reset_gesture()
        if tool != self.tool:
            self.tool = tool
            if self.on_tool_changed:
                self.on_tool_changed(tool)
        self._emit()

    def escape(self):
        """Cancel everything and fall back to the neutral pan tool."""
        self._cancel_connect()
        self._reset_gesture()
        self.store.clear_selection()
        self.set_tool(Tool.PAN)

    def _cancel_connect(self):
        self.connect_from = None
        if self.mode == Mode.CONNECT_PENDING:
            self.mode = Mode.IDLE

    # ==================== Pointer ====================

    def pointer_down(self, event: PointerEvent):
        self._press = self._last = (event.x, event.y)
        hit = self.hit_test(event.x, event.y)

        if event.button != PointerButton.PRIMARY:
            if hit is None:
                self.mode = Mode.PANNING
            return

        if self.tool.connects:
            self._connect_click(hit)
            self._emit()
            return

        kind = self.tool.creates
        if kind is not None and hit is None:
            cx, cy = self.viewport.to_canvas(event.x, event.y)
            self.session.create_node(kind, cx, cy)
            self.set_tool(Tool.SELECT)
            return

        if hit is None:
            self._empty_press(event)
        elif event.click_count >= 2 and hit.part == HitPart.BODY:
            self._double_click(hit.node)
        elif hit.part == HitPart.RESIZE_HANDLE:
            self._begin_resize(hit.node)
        elif hit.part == HitPart.COLUMN_BOUNDARY:
            self._active_id = hit.node.id
            self._column_index = hit.index
            self.preview_columns = column_widths(hit.node)
            self.mode = Mode.COLUMN_RESIZING
        elif hit.part == HitPart.LINE_VERTEX:
            self._active_id = hit.node.id
            self._vertex_index = hit.index
            self.preview_line = normalize_line(line_points(hit.node))
            self.store.select([hit.node.id])
            self.mode = Mode.LINE_VERTEX_DRAGGING
        else:
            self._body_press(hit.node, event)
        self._emit()

    def pointer_move(self, event: PointerEvent):
        x, y = event.x, event.y
        moved = distance(x, y, *self._press) > DRAG_THRESHOLD

        if self.mode == Mode.PANNING:
            self.viewport.pan(x - self._last[0], y - self._last[1])
        elif self.mode == Mode.DRAG_PENDING:
            if event.text_selected:
                # The user is selecting text, not dragging
                self._reset_gesture()
            elif moved:
                self.mode = Mode.DRAGGING
                self._update_drag(x, y)
        elif self.mode == Mode.DRAGGING:
            self._update_drag(x, y)
        elif self.mode == Mode.RESIZE_PENDING:
            if moved:
                self.mode = Mode.RESIZING
                self._update_resize(x, y)
        elif self.mode == Mode.RESIZING:
            self._update_resize(x, y)
        elif self.mode == Mode.COLUMN_RESIZING:
            node = self.store.get(self._active_id)
            if node is not None and self.preview_columns is not None:
                delta = (x - self._last[0]) / self.viewport.zoom
                self.preview_columns = resize_columns(
                    self.preview_columns, self._column_index, delta, node.width)
        elif self.mode == Mode.LINE_VERTEX_DRAGGING:
            self._update_vertex(x, y)
        elif self.mode == Mode.BOX_SELECTING:
            self._update_box(x, y)
        else:
            self._last = (x, y)
            return

        self._last = (x, y)
        self._emit()

    def pointer_up(self, event: Optional[PointerEvent] = None):
        if event is not None and self.mode in (Mode.DRAGGING, Mode.RESIZING,
                                               Mode.COLUMN_RESIZING,
                                               Mode.LINE_VERTEX_DRAGGING):
            self.pointer_move(event)
        self._finish_gesture()

    def pointer_leave(self):
        """Pointer left the widget mid-gesture: keep the last transient state."""
        self._finish_gesture()

    def wheel(self, dx: float, dy: float, sx: float, sy: float, ctrl: bool = False):
        """Scroll wheel: zoom around the pointer with ctrl, otherwise pan."""
        if ctrl:
            self.viewport.zoom_wheel(dy, (sx, sy))
        else:
            self.viewport.pan(-dx * 40, -dy * 40)
        self._emit()

    # ==================== Keyboard ====================

    def key_down(self, event: KeyEvent) -> bool:
        """Dispatch a shortcut. Returns True when the key was consumed."""
        if event.text_focus:
            return False
        key = event.key
        session = self.session

        if key == "Escape":
            self.escape()
            return True
        if key in ("Delete", "BackSpace"):
            session.delete_selection()
            return True
        if not event.ctrl:
            return False

        key = key.lower()
        if key == "z":
            if event.shift:
                session.redo()
            else:
                session.undo()
        elif key == "y":
            session.redo()
        elif key == "c":
            session.copy_selection()
        elif key == "x":
            session.cut_selection()
        elif key == "v":
            session.paste()
        elif key == "d":
            session.duplicate_selection()
        elif key in ("plus", "equal", "kp_add"):
            self.viewport.zoom_in()
        elif key in ("minus", "kp_subtract"):
            self.viewport.zoom_out()
        elif key in ("0", "kp_0"):
            self.viewport.reset_zoom()
        else:
            return False
        self._emit()
        return True

    # ==================== Presses ====================

    def _connect_click(self, hit: Optional[Hit]):
        if hit is None:
            self._cancel_connect()
            return
        if self.connect_from is None:
            self.connect_from = hit.node.id
            self.mode = Mode.CONNECT_PENDING
            return
        if hit.node.id != self.connect_from:
            kind = (ConnectionKind.RELATIONSHIP if self.tool == Tool.RELATIONSHIP
                    else ConnectionKind.SEQUENCE)
            self.session.toggle_connection(self.connect_from, hit.node.id, kind)
        self._cancel_connect()

    def _empty_press(self, event: PointerEvent):
        if self.tool == Tool.PAN:
            self.mode = Mode.PANNING
            return
        if self.tool != Tool.SELECT:
            return
        if event.shift or event.ctrl:
            self._box_base = self.store.selection.ids
        else:
            self._box_base = []
            self.store.clear_selection()
        cx, cy = self.viewport.to_canvas(event.x, event.y)
        self.box_rect = Rect(cx, cy, 0, 0)
        self.mode = Mode.BOX_SELECTING

    def _double_click(self, node: Node):
        self._reset_gesture()
        if node.kind in NAVIGABLE_KINDS:
            self.session.open_linked_canvas(node.id)

    def _body_press(self, node: Node, event: PointerEvent):
        selection = self.store.selection
        if event.shift or event.ctrl:
            self.store.toggle_selected(node.id)
            if node.id not in selection:
                return
        elif node.id not in selection:
            self.store.select([node.id])
        else:
            # Keep the multi-selection so the group can be dragged
            selection.primary = node.id

        if event.text_selected:
            return

        self._active_id = node.id
        self._drag_starts = {n.id: (n.x, n.y) for n in self._drag_set(node)}
        self.mode = Mode.DRAG_PENDING

    def _drag_set(self, primary: Node) -> List[Node]:
        """Nodes moved by a drag of ``primary``.

        Children travel with their list; a child picked in a multi-selection
        without its list stays in its container.
        """
        selected = self.store.selected_nodes()
        if len(selected) <= 1:
            selected = [primary]
        result: Dict[str, Node] = {}
        selected_ids = {n.id for n in selected}
        for node in selected:
            if node.parent_id and len(selected) > 1 and node.parent_id not in selected_ids:
                continue
            result[node.id] = node
            for child in self.store.children_of(node.id):
                result[child.id] = child
        if primary.id not in result:
            result[primary.id] = primary
        return list(result.values())

    def _begin_resize(self, node: Node):
        self.store.select([node.id])
        self._active_id = node.id
        self._resize_start = (node.width, node.height)
        self._child_start_sizes = {
            c.id: (c.width, c.height) for c in self.store.children_of(node.id)
        }
        self.mode = Mode.RESIZE_PENDING

    # ==================== Updates ====================

    def _update_drag(self, sx: float, sy: float):
        dx, dy = self.viewport.screen_delta_to_canvas(sx - self._press[0], sy - self._press[1])
        grid = self.session.settings.grid_size
        start_x, start_y = self._drag_starts[self._active_id]
        if grid:
            dx = snap(start_x + dx, grid) - start_x
            dy = snap(start_y + dy, grid) - start_y
        # The same clamped delta applies to every node in the group
        dx = max(dx, -min(x for x, _ in self._drag_starts.values()))
        dy = max(dy, -min(y for _, y in self._drag_starts.values()))
        self.preview_positions = {
            node_id: (x + dx, y + dy) for node_id, (x, y) in self._drag_starts.items()
        }

    def _update_resize(self, sx: float, sy: float):
        node = self.store.get(self._active_id)
        if node is None:
            return
        dx, dy = self.viewport.screen_delta_to_canvas(sx - self._press[0], sy - self._press[1])
        start_w, start_h = self._resize_start
        width, height = resize_dimensions(node, start_w, start_h, dx, dy,
                                          self.session.settings.grid_size)
        self.preview_sizes = {node.id: (width, height)}
        if node.kind == NodeKind.LIST and self._child_start_sizes:
            self.preview_sizes.update(scale_children(
                self._child_start_sizes, start_w, start_h, width, height))

    def _update_vertex(self, sx: float, sy: float):
        node = self.store.get(self._active_id)
        if node is None or self._vertex_index is None:
            return
        points = line_points(node)
        if not 0 <= self._vertex_index < len(points):
            return
        dx, dy = self.viewport.screen_delta_to_canvas(sx - self._press[0], sy - self._press[1])
        px, py = points[self._vertex_index]
        points[self._vertex_index] = (px + dx, py + dy)
        self.preview_line = normalize_line(points)

    def _update_box(self, sx: float, sy: float):
        ax, ay = self.viewport.to_canvas(*self._press)
        bx, by = self.viewport.to_canvas(sx, sy)
        self.box_rect = rect_from_points(ax, ay, bx, by)
        hits = [n.id for n in self.store.nodes if self._in_box(n, self.box_rect)]
        self.store.select(list(dict.fromkeys(self._box_base + hits)))

    @staticmethod
    def _in_box(node: Node, box: Rect) -> bool:
        if node.kind == NodeKind.LINE:
            return any(box.contains_point(px, py) for px, py in line_points(node))
        return box.intersects(Rect(node.x, node.y, node.width, node.height))

    # ==================== Release ====================

    def _finish_gesture(self):
        mode = self.mode
        if mode == Mode.DRAGGING and self.preview_positions:
            self._drop()
        elif mode == Mode.RESIZING and self.preview_sizes:
            self._commit_resize()
        elif mode == Mode.COLUMN_RESIZING and self.preview_columns is not None:
            self._commit_columns()
        elif mode == Mode.LINE_VERTEX_DRAGGING and self.preview_line is not None:
            self._commit_line()
        if mode == Mode.CONNECT_PENDING:
            return
        self._reset_gesture()
        self._emit()

    def _drop(self):
        """Resolve where a dragged node lands."""
        node = self.store.get(self._active_id)
        positions = dict(self.preview_positions)
        if node is None:
            return
        moved = [self.store.get(i) for i in positions]
        top_level = [n for n in moved if n is not None and n.parent_id not in positions]
        if len(top_level) > 1:
            self.session.move_nodes(positions, f"Move {len(top_level)} nodes")
            return

        drop_x, drop_y = positions[node.id]
        drop_rect = Rect(drop_x, drop_y, node.width, node.height)

        if node.parent_id:
            container = self.store.get(node.parent_id)
            if container is not None and drop_rect.intersects(
                    Rect(container.x, container.y, container.width, container.height)):
                # Dropped back over its own list: snap into the layout again
                layout_children(self.store, container.id)
                return
            self.session.remove_from_container(node.id, drop_x, drop_y)
            return

        target = self._drop_target(node, drop_rect, positions)
        if target is not None and target.kind == NodeKind.LIST:
            self.session.add_to_container(node.id, target.id)
        elif target is not None:
            self.session.request_nested_move(node.id, target.id, drop_x, drop_y)
        else:
            self.session.move_nodes(positions)

    def _drop_target(self, node: Node, drop_rect: Rect,
                     moving: Dict[str, Tuple[float, float]]) -> Optional[Node]:
        """Best drop target: an accepting list first, then folder/character."""
        candidates = [
            c for c in reversed(self.store.render_order())
            if c.id not in moving
            and drop_rect.intersects(Rect(c.x, c.y, c.width, c.height))
        ]
        for candidate in candidates:
            if can_enter(candidate, node):
                return candidate
        for candidate in candidates:
            if candidate.kind in NESTED_DROP_KINDS and not candidate.parent_id:
                return candidate
        return None

    def _commit_resize(self):
        node = self.store.get(self._active_id)
        if node is None:
            return
        with self.store.batch():
            for node_id, (width, height) in self.preview_sizes.items():
                if node_id in self.store:
                    self.store.resize_node(node_id, width, height)
            if node.kind == NodeKind.LIST:
                layout_children(self.store, node.id)
        self.session.commit("Resize")

    def _commit_columns(self):
        node = self.store.get(self._active_id)
        if node is None:
            return
        node.attributes["column_widths"] = list(self.preview_columns)
        self.store.touch()
        self.session.commit("Resize column")

    def _commit_line(self):
        node = self.store.get(self._active_id)
        if node is None:
            return
        p = self.preview_line
        with self.store.batch():
            node.attributes["vertices"] = [list(v) for v in p.vertices]
            self.store.move_node(node.id, p.x, p.y)
            self.store.resize_node(node.id, p.width, p.height)
        self.session.commit("Move line point")

    def _reset_gesture(self):
        if self.mode != Mode.CONNECT_PENDING:
            self.mode = Mode.IDLE
        self._active_id = None
        self._drag_starts = {}
        self._child_start_sizes = {}
        self._column_index = None
        self._vertex_index = None
        self._box_base = []
        self.preview_positions = {}
        self.preview_sizes = {}
        self.preview_columns = None
        self.preview_line = None
        self.box_rect = None

    def _emit(self):
        if self.on_changed:
            self.on_changed()
