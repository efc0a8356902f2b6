#!/usr/bin/env python3
"""
Opsboard - Reactive operations dashboard.

Usage:
    python -m opsboard.main --host localhost --port 9000

    Or, once installed:
    opsboard --host monitor.local --secure

Controls:
    q - Quit
    a - Add the next discovered metric
    d - Duplicate the selected widget
    x - Remove the selected widget
    c - Clear the board
    + / - / 0 - Zoom in / out / reset
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .config import DEFAULT_PORT, DashboardConfig, configure_logging

logger = logging.getLogger(__name__)


async def main(config: DashboardConfig) -> None:
    """Main entry point - runs channel feeds and UI concurrently."""

    # Import here to avoid slow startup for --help
    from .dashboard import Dashboard
    from .ui.board_view import run_ui

    dashboard = Dashboard(config)
    dashboard.load_saved()

    async def run_feeds() -> None:
        try:
            await dashboard.run()
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Feed error")

    feed_task = asyncio.create_task(run_feeds())

    try:
        # Run UI (blocks until quit)
        await run_ui(dashboard)
    finally:
        feed_task.cancel()
        try:
            await feed_task
        except asyncio.CancelledError:
            pass
        await dashboard.stop()
        dashboard.shutdown()


def cli() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Opsboard - Reactive operations dashboard",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m opsboard.main
    python -m opsboard.main --host 10.0.0.5 --port 9100
    python -m opsboard.main --secure --storage ~/.config/opsboard
        """
    )

    defaults = DashboardConfig()

    parser.add_argument(
        "--host",
        default=defaults.host,
        help=f"Stream server host (default: {defaults.host}, env OPSBOARD_HOST)"
    )

    parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help=f"Stream server port (default: {DEFAULT_PORT})"
    )

    parser.add_argument(
        "--secure",
        action="store_true",
        help="Use wss:// instead of ws://"
    )

    parser.add_argument(
        "--storage",
        type=Path,
        default=defaults.storage_path,
        help=f"Directory for the saved layout (default: {defaults.storage_path})"
    )

    parser.add_argument(
        "--reconnect-delay",
        type=float,
        default=defaults.reconnect_delay,
        help=f"Seconds between reconnect attempts (default: {defaults.reconnect_delay:g})"
    )

    parser.add_argument(
        "--log-level",
        default=defaults.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Logging level (default: {defaults.log_level})"
    )

    args = parser.parse_args()

    config = DashboardConfig(
        host=args.host,
        port=args.port,
        secure=args.secure,
        storage_path=args.storage,
        reconnect_delay=args.reconnect_delay,
        log_level=args.log_level,
    )
    configure_logging(config.log_level)

    # Run
    try:
        asyncio.run(main(config))
    except KeyboardInterrupt:
        print("\nShutdown requested.")
        sys.exit(0)


if __name__ == "__main__":
    cli()
