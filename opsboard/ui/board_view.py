"""
Board TUI using Textual.

Displays:
- Top: one status cell per channel (connecting / connected / error / closed)
- Middle: the canvas, one bordered panel per placed widget
- Bottom: key bindings

Canvas pixels map onto terminal cells at CELL_WIDTH x CELL_HEIGHT pixels
per cell, times the zoom scale, so one grid unit is two columns by one row
at 100%.

Performance notes:
- Panels re-render only when their widget renders (render listener)
- Geometry is re-synced on canvas change notifications, not per frame
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from rich.console import RenderableType
from rich.panel import Panel
from rich.text import Text

from textual import events
from textual.app import App, ComposeResult
from textual.containers import ScrollableContainer
from textual.logging import TextualHandler
from textual.widgets import Footer, Static

from ..config import LOG_FORMAT
from ..types import STATUS_CHANNEL, ChannelStatus, Point

if TYPE_CHECKING:
    from ..canvas.engine import CanvasEngine
    from ..dashboard import Dashboard
    from ..widgets.base import Widget

CELL_WIDTH = 10
CELL_HEIGHT = 20

SELECTED_BORDER = "#facc15"
PANEL_BORDER = "#334155"
STATE_COLORS = {
    "connecting": "yellow",
    "connected": "#22c55e",
    "error": "#ef4444",
    "disconnected": "dim",
}


def pointer_pixels(column: int, row: int, scroll_x: float = 0, scroll_y: float = 0) -> Point:
    """Board-relative terminal cell, plus the board's scroll offset -> viewport pixels."""
    return Point(float((column + scroll_x) * CELL_WIDTH), float((row + scroll_y) * CELL_HEIGHT))


def cells(canvas: CanvasEngine, x_px: float, y_px: float) -> tuple[int, int]:
    """Canvas pixels -> terminal cells at the current zoom."""
    return (
        int(round(x_px * canvas.scale / CELL_WIDTH)),
        int(round(y_px * canvas.scale / CELL_HEIGHT)),
    )


class WidgetPanel(Static):
    """One placed widget, absolutely positioned on the board."""

    DEFAULT_CSS = """
    WidgetPanel {
        position: absolute;
    }
    """

    def __init__(self, widget: Widget, canvas: CanvasEngine) -> None:
        super().__init__()
        self.board_widget = widget
        self.canvas = canvas
        widget.add_render_listener(self._on_widget_render)

    def _on_widget_render(self, widget: Widget) -> None:
        self.refresh()

    def sync_geometry(self) -> None:
        px = self.canvas.grid_to_pixels(self.board_widget.position)
        g = self.canvas.grid_size
        left, top = cells(self.canvas, px.x, px.y)
        width, height = cells(self.canvas, self.board_widget.size.width * g, self.board_widget.size.height * g)
        self.styles.offset = (left, top)
        self.styles.width = max(4, width)
        self.styles.height = max(3, height)

    def render(self) -> RenderableType:
        border = SELECTED_BORDER if self.board_widget.selected else PANEL_BORDER
        return Panel(
            self.board_widget.renderable,
            title=self.board_widget.title,
            title_align="left",
            subtitle="[dim]✕[/dim]",
            subtitle_align="right",
            border_style=border,
        )

    def _pointer(self, event: events.MouseEvent) -> Point:
        board = self.parent
        if board is None:
            return pointer_pixels(event.screen_x, event.screen_y)
        return pointer_pixels(
            event.screen_x - board.region.x,
            event.screen_y - board.region.y,
            board.scroll_offset.x,
            board.scroll_offset.y,
        )

    def _on_close_control(self, event: events.MouseEvent) -> bool:
        # Bottom-right border cell carries the close glyph
        return event.y == self.size.height - 1 and event.x >= self.size.width - 3

    def on_mouse_down(self, event: events.MouseDown) -> None:
        if self.canvas.drag.start_drag(
            self.board_widget, self._pointer(event), on_close_control=self._on_close_control(event),
        ):
            self.capture_mouse()

    def on_mouse_move(self, event: events.MouseMove) -> None:
        if self.canvas.drag.dragged is self.board_widget:
            self.canvas.drag.move(self._pointer(event))

    def on_mouse_up(self, event: events.MouseUp) -> None:
        if self.canvas.drag.dragged is self.board_widget:
            self.canvas.drag.end_drag()
            self.release_mouse()

    def on_click(self, event: events.Click) -> None:
        event.stop()
        if self._on_close_control(event):
            self.app.remove_board_widget(self.board_widget.id)
            return
        self.canvas.click_widget(self.board_widget.id)
        self.canvas.bring_to_front(self.board_widget.id)


class Board(ScrollableContainer):
    """Canvas surface; clicking empty space deselects."""

    DEFAULT_CSS = """
    Board {
        width: 100%;
        height: 1fr;
        background: #0f172a;
    }
    """

    def on_click(self, event: events.Click) -> None:
        self.app.dashboard.canvas.click_canvas()


class StatusBar(Static):
    """Per-channel connection status."""

    DEFAULT_CSS = """
    StatusBar {
        dock: top;
        height: 1;
        padding: 0 2;
        background: #0f172a;
    }
    """

    def __init__(self, channels: tuple[str, ...]) -> None:
        super().__init__()
        self._status: dict[str, ChannelStatus] = {
            channel: ChannelStatus(channel, "disconnected", "") for channel in channels
        }
        self.zoom = 1.0

    def update_status(self, status: ChannelStatus) -> None:
        self._status[status.channel] = status
        self.refresh()

    def render(self) -> RenderableType:
        result = Text()
        for status in self._status.values():
            color = STATE_COLORS.get(status.state, "white")
            result.append(f" {status.channel} ", style="bold white on #1e40af")
            result.append(" ● ", style=color)
            result.append(status.message or status.state, style="dim")
            result.append("  │ ", style="dim")
        result.append(f"Zoom: {self.zoom * 100:.0f}%", style="cyan")
        return result


class BoardApp(App):
    """Main dashboard application."""

    CSS = """
    Screen {
        background: #0f172a;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("a", "add_next", "Add metric"),
        ("d", "duplicate", "Duplicate"),
        ("x", "remove", "Remove"),
        ("c", "clear", "Clear"),
        ("plus", "zoom_in", "Zoom in"),
        ("minus", "zoom_out", "Zoom out"),
        ("0", "reset_zoom", "100%"),
    ]

    def __init__(self, dashboard: Dashboard) -> None:
        super().__init__()
        self.dashboard = dashboard
        self._panels: dict[str, WidgetPanel] = {}
        self._status_bar: StatusBar | None = None
        self._board: Board | None = None

    def compose(self) -> ComposeResult:
        self._status_bar = StatusBar(tuple(self.dashboard.ingests))
        self._board = Board()

        yield self._status_bar
        yield self._board
        yield Footer()

    async def on_mount(self) -> None:
        self.dashboard.bus.subscribe(STATUS_CHANNEL, self._on_status)
        self.dashboard.canvas.add_change_listener(self._on_canvas_change)
        self._sync_panels()

    def on_unmount(self) -> None:
        self.dashboard.bus.unsubscribe(STATUS_CHANNEL, self._on_status)

    def on_resize(self, event: events.Resize) -> None:
        self.dashboard.canvas.set_viewport(event.size.width * CELL_WIDTH, event.size.height * CELL_HEIGHT)

    def _on_status(self, status: ChannelStatus) -> None:
        if self._status_bar is not None:
            self._status_bar.update_status(status)

    def _on_canvas_change(self, canvas: CanvasEngine) -> None:
        if self._status_bar is not None:
            self._status_bar.zoom = canvas.scale
            self._status_bar.refresh()
        self._sync_panels()

    def _sync_panels(self) -> None:
        """Mount panels for new widgets, drop stale ones, re-place the rest."""
        if self._board is None:
            return
        widgets = {w.id: w for w in self.dashboard.canvas.all_widgets()}

        for widget_id in list(self._panels):
            if widget_id not in widgets:
                self._panels.pop(widget_id).remove()

        for widget_id, widget in widgets.items():
            panel = self._panels.get(widget_id)
            if panel is None:
                panel = WidgetPanel(widget, self.dashboard.canvas)
                self._panels[widget_id] = panel
                self._board.mount(panel)
            panel.sync_geometry()
            panel.refresh()

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def action_add_next(self) -> None:
        """Place the first discovered metric that is not on the board yet."""
        placed = {w.config.config.get("metricId") for w in self.dashboard.canvas.all_widgets()}
        for option in self.dashboard.discovery.all_options():
            if option.id not in placed:
                self.dashboard.add_options([option.id])
                self._sync_panels()
                return
        self.notify("No new metrics discovered yet")

    def action_duplicate(self) -> None:
        selected = self.dashboard.canvas.selected
        if selected is not None:
            self.dashboard.duplicate_widget(selected.id)
            self._sync_panels()

    def action_remove(self) -> None:
        selected = self.dashboard.canvas.selected
        if selected is not None:
            self.remove_board_widget(selected.id)

    def remove_board_widget(self, widget_id: str) -> None:
        self.dashboard.remove_widget(widget_id)
        self._sync_panels()

    def action_clear(self) -> None:
        self.dashboard.clear()
        self._sync_panels()

    def action_zoom_in(self) -> None:
        self.dashboard.canvas.zoom_in()

    def action_zoom_out(self) -> None:
        self.dashboard.canvas.zoom_out()

    def action_reset_zoom(self) -> None:
        self.dashboard.canvas.reset_zoom()


@contextmanager
def ui_logging() -> Iterator[logging.Handler]:
    """
    Route root logging through Textual while the app owns the terminal.

    Handlers installed before startup write to the real stderr; they are
    restored on exit.
    """
    root = logging.getLogger()
    saved = root.handlers[:]
    handler = TextualHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.handlers = [handler]
    try:
        yield handler
    finally:
        root.handlers = saved


async def run_ui(dashboard: Dashboard) -> None:
    """Run the TUI application."""
    app = BoardApp(dashboard)
    with ui_logging():
        await app.run_async()
