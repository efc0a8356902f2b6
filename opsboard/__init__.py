"""
Opsboard - Reactive operations dashboard for live telemetry, balance,
system and log streams.

Architecture:
- datafeed/: WebSocket transport and per-channel ingest (decode, reconnect)
- engine/: Stream cache, subscription bus, timers, discovery, formatting
- widgets/: Widget lifecycle and the per-kind renderers
- canvas/: Zoomable grid canvas, drag-to-grid, auto-layout, persistence
- ui/: Board view (Textual TUI)
"""

__version__ = "0.1.0"
