"""
Drag-to-grid for placed widgets.

Pointer positions arrive in viewport pixels and are mapped through the
canvas inverse transform, so drags behave the same at any zoom level.

    offset   = pointer_canvas - widget_px          (on start)
    new_px   = snap(pointer_canvas - offset)       (on move)
    position = max(0, new_px / grid_size)          (no upper bound)

On release the new position is persisted, the canvas re-fits, and a
short-lived "just finished dragging" flag swallows the click that release
generates.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..types import GridPosition, Point

if TYPE_CHECKING:
    from .engine import CanvasEngine
    from ..engine.scheduler import Scheduler
    from ..widgets.base import Widget

logger = logging.getLogger(__name__)

JUST_FINISHED_SEC = 0.1


class DragController:
    """
    Single-widget drag state machine.

    Thread-safety: NOT thread-safe. Designed for single-threaded async use.
    """

    __slots__ = (
        'canvas', 'scheduler', 'dragged', 'offset', 'start_position',
        'just_finished_drag', '_clear_timer',
    )

    def __init__(self, canvas: CanvasEngine, scheduler: Scheduler | None = None) -> None:
        self.canvas = canvas
        self.scheduler = scheduler
        self.dragged: Widget | None = None
        self.offset = Point(0.0, 0.0)
        self.start_position: GridPosition | None = None
        self.just_finished_drag = False
        self._clear_timer = None

    @property
    def is_dragging(self) -> bool:
        return self.dragged is not None

    def has_just_finished_drag(self) -> bool:
        return self.just_finished_drag

    def start_drag(
        self,
        widget: Widget,
        pointer: Point,
        touch_count: int = 1,
        on_close_control: bool = False,
    ) -> bool:
        """Begin dragging `widget` from viewport point `pointer`."""
        if on_close_control:
            return False
        # Multi-touch belongs to pinch zoom
        if self.canvas.is_zooming or touch_count > 1:
            return False
        if self.is_dragging:
            return False

        self._clear_just_finished()
        canvas_point = self.canvas.to_canvas(pointer)
        widget_px = self.canvas.grid_to_pixels(widget.position)
        self.offset = Point(canvas_point.x - widget_px.x, canvas_point.y - widget_px.y)
        self.start_position = widget.position
        self.dragged = widget
        return True

    def move(self, pointer: Point) -> GridPosition | None:
        """Track the pointer; returns the widget's new grid position."""
        widget = self.dragged
        if widget is None:
            return None

        canvas_point = self.canvas.to_canvas(pointer)
        snapped = self.canvas.snap_to_grid(canvas_point.x - self.offset.x, canvas_point.y - self.offset.y)
        x = max(0.0, snapped.x)
        y = max(0.0, snapped.y)

        position = self.canvas.pixels_to_grid(Point(x, y))
        if position != widget.position:
            widget.position = position
            self.canvas._notify()
        return position

    def end_drag(self) -> GridPosition | None:
        """Release: persist, re-fit the canvas, raise the just-finished flag."""
        widget = self.dragged
        if widget is None:
            return None
        self.dragged = None
        self.start_position = None

        widget.selected = False
        if self.canvas.selected_id == widget.id:
            self.canvas.selected_id = None

        if self.canvas.storage is not None:
            self.canvas.storage.update_widget(widget.id, {"position": widget.position})
        self.canvas.update_canvas_to_fit_widgets()
        logger.debug("Widget %s dropped at %s", widget.id, tuple(widget.position))

        self.just_finished_drag = True
        if self.scheduler is not None:
            self._clear_timer = self.scheduler.call_later(
                JUST_FINISHED_SEC, self._clear_just_finished, owner=self,
            )
        return widget.position

    def cancel_drag(self) -> None:
        """Abort without persisting; the widget returns to where it started."""
        widget = self.dragged
        if widget is None:
            return
        if self.start_position is not None:
            widget.position = self.start_position
        self.dragged = None
        self.start_position = None
        self.canvas._notify()

    def _clear_just_finished(self) -> None:
        self.just_finished_drag = False
        if self._clear_timer is not None:
            self._clear_timer.cancel()
            self._clear_timer = None
