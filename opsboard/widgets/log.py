"""
Log stream widget.

Log lines are not cached; each widget keeps its own window. The render
shows the most recent MAX_LINES; the buffer is cut back to MAX_LINES once
it passes twice that, and a 30 s cleanup timer trims it as well.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from rich.console import RenderableType
from rich.text import Text

from .base import KindSpec, Widget, placeholder
from ..engine.cache import StreamCache
from ..engine.units import format_timestamp
from ..types import STATUS_CHANNEL, Channel, ChannelStatus, GridSize, LogEntry, WidgetKind

MAX_LINES = 50
CLEANUP_INTERVAL_SEC = 30.0

LEVEL_COLORS = {
    "ERROR": "#fca5a5",
    "WARN": "#fde047",
    "WARNING": "#fde047",
    "INFO": "#93c5fd",
    "DEBUG": "#d1d5db",
}


def append_line(widget: Widget, payload: Any) -> None:
    """Add one log payload (or a log-channel status message) to the window."""
    if isinstance(payload, ChannelStatus):
        if payload.channel != Channel.LOG.value:
            return
        payload = payload.message
    if not payload:
        return
    if not isinstance(payload, (str, LogEntry)):
        payload = str(payload)

    widget.buffer.append(payload)
    if len(widget.buffer) > MAX_LINES * 2:
        del widget.buffer[:-MAX_LINES]


def cleanup(widget: Widget) -> None:
    if len(widget.buffer) > MAX_LINES:
        del widget.buffer[:-MAX_LINES]
        widget.render()


def format_stamp(timestamp: Any) -> str:
    """Log timestamps arrive as preformatted strings or epoch seconds."""
    if timestamp is None or timestamp == "":
        return datetime.now().strftime("%H:%M:%S")
    if isinstance(timestamp, (int, float)) and not isinstance(timestamp, bool):
        return format_timestamp(timestamp)
    return str(timestamp)


def format_line(line: str | LogEntry) -> Text:
    if isinstance(line, str):
        return Text(line)

    level = line.level or "INFO"
    text = Text()
    text.append(format_stamp(line.timestamp), style="#94a3b8")
    text.append(" ")
    text.append(level.ljust(5), style=f"bold {LEVEL_COLORS.get(level.upper(), '#cbd5e1')}")
    text.append(" ")
    text.append((line.section or "unknown").ljust(10)[:10], style="#cbd5e1")
    if line.id:
        text.append(f" #{line.id}", style="#64748b")
    text.append(" ")
    text.append(str(line.message))
    return text


def render_log(widget: Widget, cache: StreamCache) -> RenderableType:
    if not widget.buffer:
        return placeholder("Waiting for log messages...")
    return Text("\n").join(format_line(line) for line in widget.buffer[-MAX_LINES:])


KINDS = (
    KindSpec(
        kind=WidgetKind.LOG_STREAM,
        channel=Channel.LOG,
        title="Logs",
        default_size=GridSize(12, 8),
        render=render_log,
        timers=((CLEANUP_INTERVAL_SEC, cleanup),),
        on_payload=append_line,
        extra_channels=(STATUS_CHANNEL,),
    ),
)
