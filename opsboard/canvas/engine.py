"""
Canvas coordinate system, zoom and widget registry.

Coordinate spaces:
1. Grid units   - integer widget positions/sizes (persisted)
2. Canvas px    - grid units * grid_size (unscaled layout pixels)
3. Viewport px  - canvas px * scale, offset by the canvas origin

    canvas = (viewport - origin) / scale
    viewport = canvas * scale + origin

Zoom never moves widgets in grid space; it only changes the transform and
the content size used for scrolling.

Performance notes:
- Bounds are computed with numpy over all widget rectangles at once
- Structural changes recompute the view state eagerly (cheap: O(widgets))
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Callable

import numpy as np

from .drag import DragController
from ..types import CanvasViewState, GridPosition, Point

if TYPE_CHECKING:
    from .storage import WidgetStorage
    from ..engine.scheduler import Scheduler
    from ..widgets.base import Widget

logger = logging.getLogger(__name__)

GRID_SIZE = 20
MIN_SCALE = 0.25
MAX_SCALE = 2.0
ZOOM_STEP = 1.2
# Grid units of empty space kept right of / below the furthest widget
BOUNDS_PADDING = 2


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp_scale(scale: float) -> float:
    if math.isnan(scale):
        return 1.0
    return max(MIN_SCALE, min(MAX_SCALE, scale))


def touch_distance(a: Point, b: Point) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


class CanvasEngine:
    """
    Owns placed widgets, the zoom transform and gesture interpretation.

    Usage:
        canvas = CanvasEngine(1280, 800, storage=storage, scheduler=scheduler)
        canvas.add_widget(widget)
        canvas.set_scale(0.5)

    Thread-safety: NOT thread-safe. Designed for single-threaded async use.
    """

    def __init__(
        self,
        viewport_width: float,
        viewport_height: float,
        grid_size: int = GRID_SIZE,
        storage: WidgetStorage | None = None,
        scheduler: Scheduler | None = None,
        origin: Point = Point(0.0, 0.0),
    ) -> None:
        self.grid_size = grid_size
        self.storage = storage
        self.viewport_width = float(viewport_width)
        self.viewport_height = float(viewport_height)
        self.origin = origin

        # Insertion order doubles as z-order (last = front)
        self.widgets: dict[str, Widget] = {}
        self.selected_id: str | None = None

        self.scale = 1.0
        self.base_width = self.viewport_width
        self.base_height = self.viewport_height
        self.content_width = self.base_width
        self.content_height = self.base_height
        self.needs_scroll = False

        # Pinch state
        self.is_zooming = False
        self.last_touch_distance = 0.0

        self._change_listeners: list[Callable[[CanvasEngine], None]] = []

        self.drag = DragController(self, scheduler)
        self.update_canvas_to_fit_widgets()

    # ------------------------------------------------------------------
    # Zoom
    # ------------------------------------------------------------------

    @property
    def view_state(self) -> CanvasViewState:
        return CanvasViewState(self.scale, self.base_width, self.base_height)

    def set_scale(self, scale: float) -> float:
        """Set the zoom factor, clamped to [MIN_SCALE, MAX_SCALE]."""
        self.scale = clamp_scale(float(scale))
        self.update_canvas_size()
        logger.debug("Zoom level: %.1f%%", self.scale * 100)
        return self.scale

    def zoom_in(self) -> float:
        return self.set_scale(self.scale * ZOOM_STEP)

    def zoom_out(self) -> float:
        return self.set_scale(self.scale / ZOOM_STEP)

    def reset_zoom(self) -> float:
        return self.set_scale(1.0)

    def handle_key(self, key: str, ctrl: bool = False, meta: bool = False) -> bool:
        """Keyboard zoom (ctrl/cmd with + = - 0). Returns True if handled."""
        if not (ctrl or meta):
            return False
        if key in ("+", "="):
            self.zoom_in()
        elif key == "-":
            self.zoom_out()
        elif key == "0":
            self.reset_zoom()
        else:
            return False
        return True

    def update_canvas_size(self) -> None:
        # Zooming out expands the content area so more canvas is reachable
        expansion = 1.0 / self.scale
        self.content_width = max(self.base_width, self.base_width * expansion)
        self.content_height = max(self.base_height, self.base_height * expansion)
        self.needs_scroll = (
            self.content_width * self.scale > self.viewport_width
            or self.content_height * self.scale > self.viewport_height
        )
        self._notify()

    # ------------------------------------------------------------------
    # Bounds
    # ------------------------------------------------------------------

    def calculate_widget_bounds(self) -> tuple[float, float]:
        """Pixel extent of all widgets plus padding; the viewport when empty."""
        if not self.widgets:
            return self.viewport_width, self.viewport_height

        rects = np.array(
            [(w.position.x + w.size.width, w.position.y + w.size.height) for w in self.widgets.values()],
            dtype=np.int64,
        )
        max_x, max_y = rects.max(axis=0)
        width = float((max_x + BOUNDS_PADDING) * self.grid_size)
        height = float((max_y + BOUNDS_PADDING) * self.grid_size)
        return width, height

    def update_canvas_to_fit_widgets(self) -> None:
        width, height = self.calculate_widget_bounds()
        self.base_width = max(width, self.viewport_width)
        self.base_height = max(height, self.viewport_height)
        self.update_canvas_size()

    def set_viewport(self, width: float, height: float) -> None:
        """Viewport resized: re-fit content and keep widgets in bounds."""
        self.viewport_width = float(width)
        self.viewport_height = float(height)
        for widget in self.widgets.values():
            self.constrain_widget(widget)
        self.update_canvas_to_fit_widgets()

    @property
    def grid_width(self) -> int:
        return int(self.content_width // self.grid_size)

    @property
    def grid_height(self) -> int:
        return int(self.content_height // self.grid_size)

    # ------------------------------------------------------------------
    # Coordinates
    # ------------------------------------------------------------------

    def to_canvas(self, point: Point) -> Point:
        """Viewport pixels -> canvas pixels (inverse zoom transform)."""
        return Point((point.x - self.origin.x) / self.scale, (point.y - self.origin.y) / self.scale)

    def to_viewport(self, point: Point) -> Point:
        return Point(point.x * self.scale + self.origin.x, point.y * self.scale + self.origin.y)

    def grid_to_pixels(self, position: GridPosition) -> Point:
        return Point(float(position.x * self.grid_size), float(position.y * self.grid_size))

    def pixels_to_grid(self, point: Point) -> GridPosition:
        return GridPosition(
            round_half_up(point.x / self.grid_size),
            round_half_up(point.y / self.grid_size),
        )

    def grid_position(self, viewport_point: Point) -> GridPosition:
        """Grid cell nearest to a viewport pointer position."""
        return self.pixels_to_grid(self.to_canvas(viewport_point))

    def snap_to_grid(self, x: float, y: float) -> Point:
        g = self.grid_size
        return Point(float(round_half_up(x / g) * g), float(round_half_up(y / g) * g))

    def widget_at(self, viewport_point: Point) -> Widget | None:
        """Topmost widget under a viewport point."""
        cx, cy = self.to_canvas(viewport_point)
        g = self.grid_size
        for widget in reversed(list(self.widgets.values())):
            left = widget.position.x * g
            top = widget.position.y * g
            if left <= cx < left + widget.size.width * g and top <= cy < top + widget.size.height * g:
                return widget
        return None

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def add_widget(self, widget: Widget) -> bool:
        """Mount and place `widget`; an id already on the canvas is a no-op."""
        if widget.id in self.widgets:
            logger.debug("Widget %s already exists on canvas", widget.id)
            return False
        widget.mount()
        self.widgets[widget.id] = widget
        self.constrain_widget(widget)
        self.update_canvas_to_fit_widgets()
        return True

    def remove_widget(self, widget_id: str) -> bool:
        """Destroy and forget a widget, removing it from storage as well."""
        widget = self.widgets.get(widget_id)
        if widget is None:
            logger.debug("remove_widget: unknown widget %s", widget_id)
            return False
        if self.drag.dragged is widget:
            self.drag.cancel_drag()
        widget.destroy()
        del self.widgets[widget_id]
        if self.selected_id == widget_id:
            self.selected_id = None
        if self.storage is not None:
            self.storage.remove_widget(widget_id)
        self.update_canvas_to_fit_widgets()
        return True

    def get_widget(self, widget_id: str) -> Widget | None:
        return self.widgets.get(widget_id)

    def all_widgets(self) -> list[Widget]:
        return list(self.widgets.values())

    def clear(self) -> None:
        """Destroy every widget (storage is left to the caller)."""
        if self.drag.is_dragging:
            self.drag.cancel_drag()
        for widget in list(self.widgets.values()):
            widget.destroy()
        self.widgets.clear()
        self.selected_id = None
        self.update_canvas_to_fit_widgets()

    def constrain_widget(self, widget: Widget) -> None:
        """Widgets only have a lower bound: (0, 0)."""
        x, y = widget.position
        if x < 0 or y < 0:
            widget.position = GridPosition(max(0, x), max(0, y))

    def export_layout(self) -> dict[str, dict[str, Any]]:
        return {
            widget.id: {
                "position": {"x": widget.position.x, "y": widget.position.y},
                "size": {"width": widget.size.width, "height": widget.size.height},
            }
            for widget in self.widgets.values()
        }

    # ------------------------------------------------------------------
    # Selection and z-order
    # ------------------------------------------------------------------

    def select_widget(self, widget_id: str) -> None:
        self.deselect_all()
        widget = self.widgets.get(widget_id)
        if widget is not None:
            widget.selected = True
            self.selected_id = widget_id
        self._notify()

    def deselect_all(self) -> None:
        for widget in self.widgets.values():
            widget.selected = False
        self.selected_id = None

    @property
    def selected(self) -> Widget | None:
        return self.widgets.get(self.selected_id) if self.selected_id else None

    def click_widget(self, widget_id: str, on_close_control: bool = False) -> bool:
        """Click/tap on a widget; ignored on the close control or right after a drag."""
        if on_close_control or self.drag.has_just_finished_drag():
            return False
        self.select_widget(widget_id)
        return True

    def click_canvas(self) -> None:
        """Click on empty canvas."""
        self.deselect_all()
        self._notify()

    def bring_to_front(self, widget_id: str) -> None:
        widget = self.widgets.pop(widget_id, None)
        if widget is not None:
            self.widgets[widget_id] = widget
            self._notify()

    def send_to_back(self, widget_id: str) -> None:
        widget = self.widgets.pop(widget_id, None)
        if widget is not None:
            self.widgets = {widget_id: widget, **self.widgets}
            self._notify()

    # ------------------------------------------------------------------
    # Pinch zoom
    # ------------------------------------------------------------------

    def touch_start(self, touches: Sequence[Point]) -> None:
        if len(touches) < 2:
            return
        # Multi-touch is always a pinch; it pre-empts any drag in progress
        if self.drag.is_dragging:
            self.drag.cancel_drag()
        self.is_zooming = True
        self.last_touch_distance = touch_distance(touches[0], touches[1])

    def touch_move(self, touches: Sequence[Point]) -> None:
        if not self.is_zooming or len(touches) < 2:
            return
        distance = touch_distance(touches[0], touches[1])
        if self.last_touch_distance > 0:
            self.set_scale(self.scale * (distance / self.last_touch_distance))
        self.last_touch_distance = distance

    def touch_end(self, remaining: int, changed: int = 1) -> None:
        """Touches lifted; `remaining` are still down, `changed` just ended."""
        if remaining < 2:
            self.is_zooming = False
            self.last_touch_distance = 0.0
        # Single-finger tap on the canvas with no pinch deselects everything
        if not self.is_zooming and changed == 1 and remaining == 0 and not self.drag.is_dragging:
            self.deselect_all()
            self._notify()

    # ------------------------------------------------------------------
    # Change listeners (UI hook)
    # ------------------------------------------------------------------

    def add_change_listener(self, listener: Callable[[CanvasEngine], None]) -> None:
        self._change_listeners.append(listener)

    def _notify(self) -> None:
        for listener in tuple(self._change_listeners):
            listener(self)
