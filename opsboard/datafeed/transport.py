"""
WebSocket transport (aiohttp).

One connect() call is one connection attempt: it drives the handler's
on_open / on_message / on_error / on_close callbacks and returns once the
socket is closed. Reconnection policy lives in ChannelIngest, not here.

Performance notes:
- All I/O is non-blocking (pure asyncio)
- TEXT frames are handed over as-is; decoding happens in the ingest hot path
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import aiohttp

logger = logging.getLogger(__name__)

# RFC 6455 close codes used by the dashboard
CLOSE_NORMAL = 1000
CLOSE_ABNORMAL = 1006


class StreamHandler(Protocol):
    """Callbacks a transport drives for one connection."""

    def on_open(self) -> None: ...

    def on_message(self, text: str) -> None: ...

    def on_error(self, error: BaseException | None) -> None: ...

    def on_close(self, code: int) -> None: ...


class Transport(Protocol):
    async def connect(self, url: str, handler: StreamHandler) -> None: ...


class WebSocketTransport:
    """
    aiohttp-backed transport.

    Usage:
        transport = WebSocketTransport()
        await transport.connect("ws://localhost:9000/telemetry", ingest)
    """

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        heartbeat: float | None = 30.0,
    ) -> None:
        self._session = session
        self.heartbeat = heartbeat

    async def connect(self, url: str, handler: StreamHandler) -> None:
        """Open `url`, pump frames into `handler`, return after close."""
        own_session = self._session is None
        session = self._session or aiohttp.ClientSession()
        close_code = CLOSE_ABNORMAL

        try:
            async with session.ws_connect(url, heartbeat=self.heartbeat) as ws:
                handler.on_open()

                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        handler.on_message(msg.data)
                    elif msg.type == aiohttp.WSMsgType.BINARY:
                        handler.on_message(msg.data.decode("utf-8", errors="replace"))
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        handler.on_error(ws.exception())
                        break

            if ws.close_code is not None:
                close_code = ws.close_code
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
            logger.info("Connection to %s failed: %s", url, exc)
            handler.on_error(exc)
        finally:
            if own_session:
                await session.close()

        handler.on_close(close_code)
