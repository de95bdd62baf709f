"""Coordinate transforms and rectangle math for the canvas."""

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

Point = Tuple[float, float]

MIN_ZOOM = 0.47
MAX_ZOOM = 3.0
ZOOM_IN_FACTOR = 1.2
ZOOM_OUT_FACTOR = 0.8
WHEEL_ZOOM_IN = 1.1
WHEEL_ZOOM_OUT = 0.9


def clamp(value: float, low: float, high: float) -> float:
    """Clamp a value into [low, high]."""
    return max(low, min(high, value))


def clamp_zoom(zoom: float) -> float:
    return clamp(zoom, MIN_ZOOM, MAX_ZOOM)


def distance(ax: float, ay: float, bx: float, by: float) -> float:
    return math.sqrt((bx - ax) ** 2 + (by - ay) ** 2)


def snap(value: float, grid_size: float) -> float:
    """Round a value to the nearest multiple of grid_size."""
    if grid_size <= 0:
        return value
    return round(value / grid_size) * grid_size


@dataclass
class Rect:
    """Axis-aligned rectangle in canvas coordinates."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return (self.x + self.width / 2, self.y + self.height / 2)

    def contains_point(self, px: float, py: float) -> bool:
        """Check if a point is inside this rectangle (edges included)."""
        return self.x <= px <= self.right and self.y <= py <= self.bottom

    def intersects(self, other: "Rect") -> bool:
        """Overlap test; rectangles that only touch count as overlapping."""
        return not (
            self.x > other.right or
            self.right < other.x or
            self.y > other.bottom or
            self.bottom < other.y
        )

    def moved(self, x: float, y: float) -> "Rect":
        return Rect(x, y, self.width, self.height)


def rect_from_points(ax: float, ay: float, bx: float, by: float) -> Rect:
    """Normalized rectangle spanned by two corner points."""
    return Rect(min(ax, bx), min(ay, by), abs(bx - ax), abs(by - ay))


def bounding_rect(rects: Iterable[Rect]) -> Optional[Rect]:
    """Smallest rectangle containing all rects, or None when empty."""
    rects = list(rects)
    if not rects:
        return None
    min_x = min(r.x for r in rects)
    min_y = min(r.y for r in rects)
    max_x = max(r.right for r in rects)
    max_y = max(r.bottom for r in rects)
    return Rect(min_x, min_y, max_x - min_x, max_y - min_y)


@dataclass
class Viewport:
    """Zoom and scroll state of the visible canvas area.

    ``view_x``/``view_y`` is where the scrollable area starts on screen. The
    canvas origin on screen is that point minus the scroll offset, so panning
    only ever touches ``scroll_x``/``scroll_y`` and node coordinates stay put.
    """
    zoom: float = 1.0
    scroll_x: float = 0.0
    scroll_y: float = 0.0
    view_x: float = 0.0
    view_y: float = 0.0

    @property
    def origin(self) -> Point:
        return (self.view_x - self.scroll_x, self.view_y - self.scroll_y)

    def to_canvas(self, sx: float, sy: float) -> Point:
        """Convert a screen point to canvas coordinates."""
        ox, oy = self.origin
        return ((sx - ox) / self.zoom, (sy - oy) / self.zoom)

    def to_screen(self, cx: float, cy: float) -> Point:
        """Convert a canvas point to screen coordinates."""
        ox, oy = self.origin
        return (cx * self.zoom + ox, cy * self.zoom + oy)

    def screen_delta_to_canvas(self, dx: float, dy: float) -> Point:
        return (dx / self.zoom, dy / self.zoom)

    def pan(self, dx: float, dy: float):
        """Scroll by a screen-space drag delta (content follows the pointer)."""
        self.scroll_x = max(0.0, self.scroll_x - dx)
        self.scroll_y = max(0.0, self.scroll_y - dy)

    def set_zoom(self, zoom: float, anchor: Optional[Point] = None) -> float:
        """Set zoom, keeping the canvas point under ``anchor`` (screen) fixed."""
        new_zoom = clamp_zoom(zoom)
        if anchor is not None and new_zoom != self.zoom:
            cx, cy = self.to_canvas(*anchor)
            self.zoom = new_zoom
            self.scroll_x = max(0.0, cx * new_zoom + self.view_x - anchor[0])
            self.scroll_y = max(0.0, cy * new_zoom + self.view_y - anchor[1])
        else:
            self.zoom = new_zoom
        return self.zoom

    def zoom_in(self) -> float:
        return self.set_zoom(self.zoom * ZOOM_IN_FACTOR)

    def zoom_out(self) -> float:
        return self.set_zoom(self.zoom * ZOOM_OUT_FACTOR)

    def zoom_wheel(self, dy: float, anchor: Point) -> float:
        factor = WHEEL_ZOOM_OUT if dy > 0 else WHEEL_ZOOM_IN
        return self.set_zoom(self.zoom * factor, anchor)

    def reset_zoom(self) -> float:
        return self.set_zoom(1.0)
