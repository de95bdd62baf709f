"""Export functionality for StoryWeave canvases."""

import functools
import logging
import math
from datetime import datetime
from pathlib import Path
from typing import Optional, List, Dict, Set, Tuple

from storyweave.database import Database, MAIN_CANVAS_ID, get_data_dir
from storyweave.model import Node, Connection, ConnectionKind, NodeKind

logger = logging.getLogger(__name__)

# Nodes whose tops are closer than this read as one row
ROW_THRESHOLD = 50


def _reading_order(a: Node, b: Node) -> float:
    dy = a.y - b.y
    if abs(dy) > ROW_THRESHOLD:
        return dy
    return a.x - b.x


def sort_nodes_by_position(nodes: List[Node]) -> List[Node]:
    """Top-to-bottom, then left-to-right for nodes on the same row."""
    return sorted(nodes, key=functools.cmp_to_key(_reading_order))


def nested_canvas_id(node: Node) -> Optional[str]:
    """Sub-canvas a node links to, if any."""
    return node.linked_canvas_id or None


class CanvasExporter:
    """Handles exporting a canvas and its nested canvases."""

    # Colors matching canvas
    COLORS = {
        'background': (0.98, 0.97, 0.95),
        'surface': (1.0, 1.0, 1.0),
        'border': (0.78, 0.76, 0.72),
        'text': (0.13, 0.13, 0.15),
        'link': (0.35, 0.45, 0.85),
        'relationship': (0.85, 0.35, 0.45),
    }

    NODE_PADDING = 12

    def __init__(self, db: Database):
        self.db = db

    # ==================== Outline ====================

    def collect_outline(self, canvas_id: str = MAIN_CANVAS_ID) -> List[Tuple[int, Node]]:
        """Flatten a canvas tree into (depth, node) pairs in reading order."""
        result: List[Tuple[int, Node]] = []
        visited: Set[str] = set()

        def walk(current_id: str, depth: int):
            if current_id in visited:
                return
            visited.add(current_id)
            nodes, _ = self.db.load_canvas(current_id)
            by_id = {n.id: n for n in nodes}
            for node in sort_nodes_by_position([n for n in nodes if not n.parent_id]):
                result.append((depth, node))
                # List children follow their list, in list order
                for child_id in node.child_ids or []:
                    child = by_id.get(child_id)
                    if child is not None:
                        result.append((depth + 1, child))
                        self._walk_nested(child, depth + 2, walk)
                self._walk_nested(node, depth + 1, walk)

        walk(canvas_id, 0)
        return result

    def _walk_nested(self, node: Node, depth: int, walk):
        sub_id = nested_canvas_id(node)
        if sub_id and self.db.get_canvas(sub_id):
            walk(sub_id, depth)

    def _connection_lines(self, canvas_id: str) -> List[str]:
        nodes, connections = self.db.load_canvas(canvas_id)
        by_id = {n.id: n for n in nodes}
        lines = []
        for conn in connections:
            # Stale endpoints are skipped
            if conn.from_id not in by_id or conn.to_id not in by_id:
                continue
            arrow = "<->" if conn.kind == ConnectionKind.RELATIONSHIP else "->"
            lines.append(f"{_title(by_id[conn.from_id])} {arrow} {_title(by_id[conn.to_id])}")
        return lines

    def export_markdown(self, filepath: str, canvas_id: str = MAIN_CANVAS_ID) -> bool:
        """Export a canvas tree to a Markdown outline."""
        outline = self.collect_outline(canvas_id)
        if not outline:
            return False
        canvas = self.db.get_canvas(canvas_id)
        title = canvas.title if canvas else "Story"

        lines = [
            "---",
            f"title: {title}",
            f"exported: {datetime.now().isoformat()}",
            "---",
            "",
            f"# {title}",
            "",
        ]
        for depth, node in outline:
            if depth == 0:
                lines.append(f"## {_title(node)}")
            elif depth == 1:
                lines.append(f"### {_title(node)}")
            else:
                lines.append(f"{'  ' * (depth - 2)}- {_title(node)}")
            body = _body(node)
            if body:
                indent = "  " * max(0, depth - 1)
                for body_line in body.split("\n"):
                    lines.append(f"{indent}> {body_line}")
            if node.kind == NodeKind.TABLE:
                lines.extend(_markdown_table(node))
            lines.append("")

        links = self._connection_lines(canvas_id)
        if links:
            lines.append("## Connections")
            lines.extend(f"- {link}" for link in links)
            lines.append("")

        _write(filepath, "\n".join(lines))
        logger.info(f"Exported {len(outline)} nodes to {filepath}")
        return True

    def export_text(self, filepath: str, canvas_id: str = MAIN_CANVAS_ID) -> bool:
        """Export a canvas tree to indented plain text."""
        outline = self.collect_outline(canvas_id)
        if not outline:
            return False
        canvas = self.db.get_canvas(canvas_id)
        title = (canvas.title if canvas else "Story").upper()

        lines = [title, "=" * len(title), ""]
        for depth, node in outline:
            indent = "    " * depth
            lines.append(f"{indent}{_title(node)}")
            body = _body(node)
            if body:
                for body_line in body.split("\n"):
                    lines.append(f"{indent}    {body_line}")
            if node.kind == NodeKind.TABLE:
                for row in node.attributes.get("rows") or []:
                    cells = [str(c) for c in row]
                    if any(cells[1:]):
                        lines.append(f"{indent}    {cells[0]}: {', '.join(cells[1:])}")

        links = self._connection_lines(canvas_id)
        if links:
            lines.extend(["", "CONNECTIONS", "-----------"])
            lines.extend(links)

        _write(filepath, "\n".join(lines) + "\n")
        logger.info(f"Exported {len(outline)} nodes to {filepath}")
        return True

    # ==================== Image ====================

    def export_png(self, filepath: str, canvas_id: str = MAIN_CANVAS_ID,
                   scale: float = 2.0, transparent: bool = False) -> bool:
        """Render one canvas (without nested canvases) to a PNG image."""
        import cairo

        nodes, connections = self.db.load_canvas(canvas_id)
        if not nodes:
            return False

        min_x = min(n.x for n in nodes)
        max_x = max(n.x + n.width for n in nodes)
        min_y = min(n.y for n in nodes)
        max_y = max(n.y + n.height for n in nodes)

        padding = 50
        width = int((max_x - min_x + padding * 2) * scale)
        height = int((max_y - min_y + padding * 2) * scale)

        surface = cairo.ImageSurface(cairo.FORMAT_ARGB32, width, height)
        cr = cairo.Context(surface)
        cr.scale(scale, scale)
        cr.translate(-min_x + padding, -min_y + padding)

        if not transparent:
            cr.set_source_rgb(*self.COLORS['background'])
            cr.paint()

        self._draw_connections(cr, nodes, connections)
        for node in sorted(nodes, key=lambda n: (n.z_index, 1 if n.parent_id else 0)):
            self._draw_node(cr, node)

        surface.write_to_png(filepath)
        return True

    def _draw_connections(self, cr, nodes: List[Node], connections: List[Connection]):
        by_id: Dict[str, Node] = {n.id: n for n in nodes}
        for conn in connections:
            source = by_id.get(conn.from_id)
            target = by_id.get(conn.to_id)
            if source is None or target is None:
                continue
            color = self.COLORS['relationship' if conn.kind == ConnectionKind.RELATIONSHIP else 'link']
            cr.set_source_rgb(*color)
            cr.set_line_width(2)
            cr.move_to(source.x + source.width / 2, source.y + source.height / 2)
            cr.line_to(target.x + target.width / 2, target.y + target.height / 2)
            cr.stroke()

    def _draw_node(self, cr, node: Node):
        import cairo

        if node.kind == NodeKind.LINE:
            points = node.attributes.get("vertices") or []
            if len(points) < 2:
                return
            cr.set_source_rgb(*self.COLORS['text'])
            cr.set_line_width(2)
            cr.move_to(node.x + points[0][0], node.y + points[0][1])
            for vx, vy in points[1:]:
                cr.line_to(node.x + vx, node.y + vy)
            cr.stroke()
            return

        draw_rounded_rect(cr, node.x, node.y, node.width, node.height, 6)
        cr.set_source_rgb(*self.COLORS['surface'])
        cr.fill_preserve()
        cr.set_source_rgb(*self.COLORS['border'])
        cr.set_line_width(1)
        cr.stroke()

        cr.set_source_rgb(*self.COLORS['text'])
        cr.select_font_face("Sans", cairo.FONT_SLANT_NORMAL, cairo.FONT_WEIGHT_BOLD)
        cr.set_font_size(13)
        cr.move_to(node.x + self.NODE_PADDING, node.y + self.NODE_PADDING + 13)
        cr.show_text(_title(node))


def draw_rounded_rect(cr, x, y, w, h, radius):
    """Draw a rounded rectangle path."""
    cr.new_path()
    cr.arc(x + w - radius, y + radius, radius, -math.pi / 2, 0)
    cr.arc(x + w - radius, y + h - radius, radius, 0, math.pi / 2)
    cr.arc(x + radius, y + h - radius, radius, math.pi / 2, math.pi)
    cr.arc(x + radius, y + radius, radius, math.pi, 3 * math.pi / 2)
    cr.close_path()


def _title(node: Node) -> str:
    return node.text.strip() or "Untitled"


def _body(node: Node) -> str:
    return (node.content or "").strip()


def _markdown_table(node: Node) -> List[str]:
    columns = [str(c) for c in node.attributes.get("columns") or []]
    rows = node.attributes.get("rows") or []
    if not columns:
        return []
    lines = ["", "| " + " | ".join(columns) + " |", "|" + "---|" * len(columns)]
    for row in rows:
        cells = [str(c) for c in row] + [""] * (len(columns) - len(row))
        lines.append("| " + " | ".join(cells[:len(columns)]) + " |")
    return lines


def _write(filepath: str, text: str):
    with open(filepath, 'w', encoding='utf-8') as f:
        f.write(text)


def get_export_dir() -> Path:
    """Get the default export directory."""
    export_dir = get_data_dir() / "exports"
    export_dir.mkdir(exist_ok=True)
    return export_dir
