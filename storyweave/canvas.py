"""Canvas widget: draws the session's nodes and feeds input to the controller."""

import logging
import math
from typing import Optional

import gi

gi.require_version("Gtk", "4.0")
gi.require_version("Gdk", "4.0")
from gi.repository import Gtk, Gdk

import cairo

from storyweave.export import draw_rounded_rect
from storyweave.geometry import Rect
from storyweave.interaction import (
    InteractionController, PointerEvent, KeyEvent, PointerButton, Mode, Tool,
    RESIZE_HANDLE_SIZE,
)
from storyweave.model import Node, NodeKind, ConnectionKind
from storyweave.session import CanvasSession

logger = logging.getLogger(__name__)


class StoryCanvas(Gtk.DrawingArea):
    """Infinite canvas of story nodes."""

    COLORS = {
        'background': (0.98, 0.97, 0.95),
        'grid': (0.90, 0.89, 0.86),
        'surface': (1.0, 1.0, 1.0),
        'border': (0.78, 0.76, 0.72),
        'text': (0.13, 0.13, 0.15),
        'muted': (0.45, 0.45, 0.50),
        'selection': (0.20, 0.45, 0.95),
        'link': (0.35, 0.45, 0.85),
        'relationship': (0.85, 0.35, 0.45),
        'pending': (0.95, 0.60, 0.10),
    }

    KIND_ACCENTS = {
        NodeKind.CHARACTER: (0.55, 0.35, 0.85),
        NodeKind.EVENT: (0.90, 0.45, 0.20),
        NodeKind.LOCATION: (0.20, 0.65, 0.45),
        NodeKind.FOLDER: (0.85, 0.70, 0.20),
        NodeKind.LIST: (0.40, 0.55, 0.70),
        NodeKind.TABLE: (0.45, 0.50, 0.55),
        NodeKind.RELATIONSHIP_CANVAS: (0.85, 0.35, 0.45),
        NodeKind.IMAGE: (0.50, 0.50, 0.50),
    }

    NODE_PADDING = 12

    def __init__(self, session: CanvasSession):
        super().__init__()

        self.show_grid = True

        # Text editing popover
        self._editor: Optional[Gtk.Popover] = None
        self._editing_node_id: Optional[str] = None

        self.session = session
        self.controller = InteractionController(session)
        self.set_session(session)

        # Setup widget
        self.set_draw_func(self._on_draw)
        self.set_focusable(True)
        self.set_can_focus(True)
        self._setup_event_controllers()
        self.set_hexpand(True)
        self.set_vexpand(True)

    def _setup_event_controllers(self):
        """Setup mouse and keyboard event controllers."""
        click_ctrl = Gtk.GestureClick()
        click_ctrl.set_button(0)  # All buttons
        click_ctrl.connect("pressed", self._on_pressed)
        click_ctrl.connect("released", self._on_released)
        self.add_controller(click_ctrl)

        motion_ctrl = Gtk.EventControllerMotion()
        motion_ctrl.connect("motion", self._on_motion)
        motion_ctrl.connect("leave", self._on_leave)
        self.add_controller(motion_ctrl)

        scroll_ctrl = Gtk.EventControllerScroll()
        scroll_ctrl.set_flags(Gtk.EventControllerScrollFlags.BOTH_AXES)
        scroll_ctrl.connect("scroll", self._on_scroll)
        self.add_controller(scroll_ctrl)

        key_ctrl = Gtk.EventControllerKey()
        key_ctrl.connect("key-pressed", self._on_key_pressed)
        self.add_controller(key_ctrl)

    def set_session(self, session: CanvasSession):
        """Show another canvas; the active tool carries over."""
        self._end_text_edit()
        tool = self.controller.tool
        self.session = session
        self.controller = InteractionController(session)
        self.controller.tool = tool
        self.controller.on_changed = self.queue_draw
        self.session.store.on_changed = self.queue_draw
        self.queue_draw()

    def set_tool(self, tool: Tool):
        self.controller.set_tool(tool)

    # ==================== Input ====================

    def _pointer_event(self, gesture, x: float, y: float, n_press: int = 1) -> PointerEvent:
        state = gesture.get_current_event_state() if gesture else 0
        button = PointerButton.PRIMARY
        if isinstance(gesture, Gtk.GestureClick):
            current = gesture.get_current_button()
            if current in (PointerButton.MIDDLE, PointerButton.SECONDARY):
                button = PointerButton(current)
        return PointerEvent(
            x=x,
            y=y,
            button=button,
            shift=bool(state & Gdk.ModifierType.SHIFT_MASK),
            ctrl=bool(state & Gdk.ModifierType.CONTROL_MASK),
            click_count=n_press,
            text_selected=self._editor is not None and self._editor.get_visible(),
        )

    def _on_pressed(self, gesture, n_press, x, y):
        self.grab_focus()
        self.controller.pointer_down(self._pointer_event(gesture, x, y, n_press))

    def _on_released(self, gesture, n_press, x, y):
        self.controller.pointer_up(self._pointer_event(gesture, x, y, n_press))

    def _on_motion(self, controller, x, y):
        event = PointerEvent(
            x=x, y=y,
            text_selected=self._editor is not None and self._editor.get_visible(),
        )
        self.controller.pointer_move(event)
        self.set_cursor_from_name(self.controller.cursor_name(x, y))

    def _on_leave(self, controller):
        if self.controller.mode != Mode.IDLE:
            self.controller.pointer_leave()

    def _on_scroll(self, controller, dx, dy):
        state = controller.get_current_event_state()
        ctrl = bool(state & Gdk.ModifierType.CONTROL_MASK)
        event = controller.get_current_event()
        x, y = event.get_position() if event else (0.0, 0.0)
        self.controller.wheel(dx, dy, x, y, ctrl=ctrl)
        return True

    def _on_key_pressed(self, controller, keyval, keycode, state):
        key = Gdk.keyval_name(keyval) or ""
        if key == "Return" and self._editor is None:
            node = self.session.store.get(self.session.store.selection.primary)
            if node is not None and node.kind != NodeKind.LINE:
                self.begin_text_edit(node)
                return True
        event = KeyEvent(
            key=key,
            ctrl=bool(state & Gdk.ModifierType.CONTROL_MASK),
            shift=bool(state & Gdk.ModifierType.SHIFT_MASK),
            text_focus=self._editor is not None and self._editor.get_visible(),
        )
        return self.controller.key_down(event)

    # ==================== Text Editing ====================

    def begin_text_edit(self, node: Node):
        """Show an inline entry for a node's title."""
        rect = self.controller.display_rect(node)
        sx, sy = self.session.viewport.to_screen(rect.x, rect.y)

        entry = Gtk.Entry()
        entry.set_text(node.text)
        entry.connect("changed", lambda e: self.session.edit_text(node.id, e.get_text()))
        entry.connect("activate", lambda e: self._end_text_edit())

        popover = Gtk.Popover()
        popover.set_child(entry)
        popover.set_parent(self)
        anchor = Gdk.Rectangle()
        anchor.x, anchor.y, anchor.width, anchor.height = int(sx), int(sy), 1, 1
        popover.set_pointing_to(anchor)
        popover.connect("closed", lambda p: self._end_text_edit())

        self._editor = popover
        self._editing_node_id = node.id
        popover.popup()
        entry.grab_focus()

    def _end_text_edit(self):
        if self._editor is None:
            return
        popover, node_id = self._editor, self._editing_node_id
        self._editor = None
        self._editing_node_id = None
        if node_id:
            self.session.blur_text(node_id)
        popover.popdown()
        popover.unparent()
        self.grab_focus()

    # ==================== Drawing ====================

    def _on_draw(self, area, cr, width, height):
        viewport = self.session.viewport
        cr.set_source_rgb(*self.COLORS['background'])
        cr.paint()

        ox, oy = viewport.origin
        cr.translate(ox, oy)
        cr.scale(viewport.zoom, viewport.zoom)

        if self.show_grid:
            self._draw_grid(cr, width, height)

        store = self.session.store
        self._draw_connections(cr)
        for node in store.render_order():
            self._draw_node(cr, node, node.id in store.selection)

        box = self.controller.box_rect
        if box is not None:
            cr.rectangle(box.x, box.y, box.width, box.height)
            cr.set_source_rgba(*self.COLORS['selection'], 0.12)
            cr.fill_preserve()
            cr.set_source_rgba(*self.COLORS['selection'], 0.8)
            cr.set_line_width(1 / viewport.zoom)
            cr.stroke()

    def _draw_grid(self, cr, width: float, height: float):
        viewport = self.session.viewport
        grid = self.session.settings.get("grid_size", 20) or 20
        left, top = viewport.to_canvas(0, 0)
        right, bottom = viewport.to_canvas(width, height)
        cr.set_source_rgb(*self.COLORS['grid'])
        cr.set_line_width(1 / viewport.zoom)
        x = math.floor(left / grid) * grid
        while x <= right:
            cr.move_to(x, top)
            cr.line_to(x, bottom)
            x += grid
        y = math.floor(top / grid) * grid
        while y <= bottom:
            cr.move_to(left, y)
            cr.line_to(right, y)
            y += grid
        cr.stroke()

    def _draw_connections(self, cr):
        store = self.session.store
        for conn in store.live_connections():
            a = self.controller.display_rect(store.get(conn.from_id))
            b = self.controller.display_rect(store.get(conn.to_id))
            (ax, ay), (bx, by) = a.center, b.center
            relationship = conn.kind == ConnectionKind.RELATIONSHIP
            cr.set_source_rgb(*self.COLORS['relationship' if relationship else 'link'])
            cr.set_line_width(2)
            if relationship:
                cr.set_dash([6, 4])
            cr.move_to(ax, ay)
            cr.line_to(bx, by)
            cr.stroke()
            cr.set_dash([])
            if not relationship:
                self._draw_arrow_head(cr, ax, ay, bx, by, b)

    def _draw_arrow_head(self, cr, ax, ay, bx, by, target: Rect):
        angle = math.atan2(by - ay, bx - ax)
        # Stop at the target's border
        half_w, half_h = target.width / 2, target.height / 2
        reach = min(
            half_w / abs(math.cos(angle)) if math.cos(angle) else math.inf,
            half_h / abs(math.sin(angle)) if math.sin(angle) else math.inf,
        )
        tip_x, tip_y = bx - reach * math.cos(angle), by - reach * math.sin(angle)
        size = 10
        cr.move_to(tip_x, tip_y)
        cr.line_to(tip_x - size * math.cos(angle - 0.4), tip_y - size * math.sin(angle - 0.4))
        cr.line_to(tip_x - size * math.cos(angle + 0.4), tip_y - size * math.sin(angle + 0.4))
        cr.close_path()
        cr.fill()

    def _draw_node(self, cr, node: Node, selected: bool):
        rect = self.controller.display_rect(node)
        zoom = self.session.viewport.zoom

        if node.kind == NodeKind.LINE:
            points = self.controller.display_vertices(node)
            if len(points) >= 2:
                cr.set_source_rgb(*(self.COLORS['selection'] if selected else self.COLORS['text']))
                cr.set_line_width(2)
                cr.move_to(*points[0])
                cr.curve_to(*points[1], *points[1], *points[-1])
                cr.stroke()
                if selected:
                    for px, py in points:
                        cr.arc(px, py, 4 / zoom, 0, 2 * math.pi)
                        cr.fill()
            return

        draw_rounded_rect(cr, rect.x, rect.y, rect.width, rect.height, 8)
        cr.set_source_rgb(*self.COLORS['surface'])
        cr.fill_preserve()
        if selected:
            cr.set_source_rgb(*self.COLORS['selection'])
            cr.set_line_width(2 / zoom)
        elif node.id == self.controller.connect_from:
            cr.set_source_rgb(*self.COLORS['pending'])
            cr.set_line_width(2 / zoom)
        else:
            cr.set_source_rgb(*self.COLORS['border'])
            cr.set_line_width(1 / zoom)
        cr.stroke()

        accent = self.KIND_ACCENTS.get(node.kind)
        if accent:
            cr.rectangle(rect.x, rect.y + 8, 4, max(0, rect.height - 16))
            cr.set_source_rgb(*accent)
            cr.fill()

        cr.set_source_rgb(*self.COLORS['text'])
        cr.select_font_face("Sans", cairo.FONT_SLANT_NORMAL, cairo.FONT_WEIGHT_BOLD)
        cr.set_font_size(14)
        self._show_clipped(cr, node.text or node.content, rect, rect.y + self.NODE_PADDING + 14)

        if node.content and node.kind != NodeKind.COMPACT_TEXT:
            cr.select_font_face("Sans", cairo.FONT_SLANT_NORMAL, cairo.FONT_WEIGHT_NORMAL)
            cr.set_font_size(12)
            cr.set_source_rgb(*self.COLORS['muted'])
            self._show_clipped(cr, node.content.split("\n")[0], rect,
                               rect.y + self.NODE_PADDING + 34)

        if node.kind == NodeKind.TABLE:
            self._draw_table(cr, node, rect)

        if selected and not node.parent_id:
            handle = RESIZE_HANDLE_SIZE / zoom
            cr.rectangle(rect.right - handle, rect.bottom - handle, handle, handle)
            cr.set_source_rgba(*self.COLORS['selection'], 0.6)
            cr.fill()

    def _draw_table(self, cr, node: Node, rect: Rect):
        widths = self.controller.display_columns(node)
        top = rect.y + 36
        rows = node.attributes.get("rows") or []
        row_height = (rect.height - 40) / max(1, len(rows) + 1)
        cr.set_source_rgb(*self.COLORS['border'])
        cr.set_line_width(1 / self.session.viewport.zoom)
        offset = rect.x
        for pct in widths[:-1]:
            offset += rect.width * pct / 100.0
            cr.move_to(offset, top)
            cr.line_to(offset, rect.bottom - 4)
        for i in range(len(rows) + 1):
            y = top + row_height * i
            cr.move_to(rect.x + 4, y)
            cr.line_to(rect.right - 4, y)
        cr.stroke()

        cr.set_font_size(11)
        cr.set_source_rgb(*self.COLORS['text'])
        columns = node.attributes.get("columns") or []
        for r, cells in enumerate([columns] + rows):
            x = rect.x
            for c, pct in enumerate(widths):
                if c < len(cells):
                    cr.move_to(x + 4, top + row_height * r + row_height * 0.7)
                    cr.show_text(str(cells[c]))
                x += rect.width * pct / 100.0

    def _show_clipped(self, cr, text: str, rect: Rect, baseline: float):
        if not text:
            return
        cr.save()
        cr.rectangle(rect.x, rect.y, rect.width - 4, rect.height)
        cr.clip()
        cr.move_to(rect.x + self.NODE_PADDING, baseline)
        cr.show_text(text)
        cr.restore()
