"""
Per-channel ingest: transport callbacks -> cache merge -> bus fan-out.

State machine:
    CONNECTING -> CONNECTED -> (messages)* -> DISCONNECTED -> CONNECTING ...
ERROR may be entered from any connected state and is always followed by
DISCONNECTED. Reconnect is a fixed delay (5 s default), retried forever.

HOT PATH: on_message() runs for every inbound frame.
- Uses orjson for fast JSON parsing
- Message N's merge and fan-out complete before message N+1 is looked at,
  since both happen synchronously inside on_message()
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

import orjson

from .transport import CLOSE_ABNORMAL, CLOSE_NORMAL, Transport
from ..engine.bus import SubscriptionBus
from ..engine.cache import StreamCache
from ..engine.scheduler import Scheduler
from ..types import (
    STATUS_CHANNEL,
    CacheUpdate,
    Channel,
    ChannelStatus,
    LogEntry,
    LogLine,
    channel_name,
)

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 200
# Server-side frame buffer is ~4096 bytes; longer frames are likely cut off
TRUNCATION_WARN_CHARS = 4090
LOG_WAITING_DELAY = 2.0

MSG_CONNECTING = "Connecting..."
MSG_CONNECTED = "Connected, waiting for data..."
MSG_LOG_ESTABLISHED = "Connection established"
MSG_LOG_WAITING = "Waiting for periodic log updates..."
MSG_ERROR = "WebSocket error occurred"


class ChannelState(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"
    DISCONNECTED = "disconnected"


@dataclass
class IngestStats:
    received: int = 0
    dropped: int = 0
    last_message_at: float | None = None


def close_message(channel: str, code: int) -> str:
    """Human-readable reason for a close code."""
    if channel == Channel.LOG.value and code == CLOSE_NORMAL:
        return "Periodic log update completed - will reconnect for next update"
    if code == CLOSE_ABNORMAL:
        return "Connection lost - attempting to reconnect"
    if code == CLOSE_NORMAL:
        return "Connection closed normally - will reconnect"
    return f"Connection closed ({code})"


def decode_log(text: str) -> LogLine:
    """
    Decode one log-channel frame.

    A JSON object tagged type == "log" becomes a LogEntry, a JSON string
    becomes that string, and anything else is kept as the raw text.
    """
    try:
        data = orjson.loads(text)
    except orjson.JSONDecodeError:
        return text

    if isinstance(data, str):
        return data
    if isinstance(data, dict) and data.get("type") == "log":
        return LogEntry(
            timestamp=data.get("timestamp"),
            level=str(data.get("level") or "INFO"),
            section=str(data.get("section") or ""),
            message=str(data.get("message") or ""),
            id=data.get("id"),
        )
    return text


class ChannelIngest:
    """
    Decoder and connection state machine for one channel.

    Implements the transport's handler callbacks; run() owns the reconnect
    loop.

    Thread-safety: NOT thread-safe. Designed for single-threaded async use.
    """

    def __init__(
        self,
        channel: str | Channel,
        cache: StreamCache,
        bus: SubscriptionBus,
        transport: Transport,
        url: str,
        scheduler: Scheduler | None = None,
        reconnect_delay: float = 5.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.channel = channel_name(channel)
        self.cache = cache
        self.bus = bus
        self.transport = transport
        self.url = url
        self.scheduler = scheduler
        self.reconnect_delay = reconnect_delay
        self._clock = clock

        self.state = ChannelState.DISCONNECTED
        self.status_message = ""
        self.stats = IngestStats()
        self.connect_attempts = 0

        self._running = False
        self._open = False
        self._received_since_open = 0

    @property
    def is_log(self) -> bool:
        return self.channel == Channel.LOG.value

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------

    def on_open(self) -> None:
        self._open = True
        self._received_since_open = 0
        logger.info("%s: connected to %s", self.channel, self.url)

        if self.is_log:
            self._set_state(ChannelState.CONNECTED, MSG_LOG_ESTABLISHED)
            if self.scheduler is not None:
                self.scheduler.call_later(LOG_WAITING_DELAY, self._log_waiting, owner=self)
        else:
            self._set_state(ChannelState.CONNECTED, MSG_CONNECTED)

    def on_message(self, text: str) -> None:
        """
        Validate, decode, merge and publish one frame.

        HOT PATH. Never raises: a bad frame is logged and dropped.
        """
        self.stats.received += 1
        self.stats.last_message_at = self._clock()
        self._received_since_open += 1

        if not text or not text.strip():
            self.stats.dropped += 1
            logger.warning("%s: received empty message, ignoring", self.channel)
            return

        if self.is_log:
            self.bus.publish(self.channel, decode_log(text))
            return

        try:
            message = orjson.loads(text)
            changed = self.cache.merge(self.channel, message)
        except ValueError as exc:
            self._drop(text, exc)
            return
        except Exception:
            self.stats.dropped += 1
            logger.exception("%s: error processing message", self.channel)
            return

        self.bus.publish(self.channel, CacheUpdate(self.channel, changed))

    def on_error(self, error: BaseException | None) -> None:
        logger.warning("%s: WebSocket error: %s", self.channel, error)
        self._set_state(ChannelState.ERROR, MSG_ERROR)

    def on_close(self, code: int) -> None:
        self._open = False
        if self.scheduler is not None:
            self.scheduler.cancel_owner(self)
        message = close_message(self.channel, code)
        logger.info("%s: %s", self.channel, message)
        self._set_state(ChannelState.DISCONNECTED, message)

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Connect, wait for close, sleep reconnect_delay, repeat until stop()."""
        self._running = True
        while self._running:
            self.connect_attempts += 1
            self._set_state(ChannelState.CONNECTING, MSG_CONNECTING)
            try:
                await self.transport.connect(self.url, self)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.exception("%s: failed to create connection", self.channel)
                self._set_state(ChannelState.ERROR, f"Failed to create connection: {exc}")
                if self._open:
                    self.on_close(CLOSE_ABNORMAL)

            if not self._running:
                break
            await asyncio.sleep(self.reconnect_delay)

    def stop(self) -> None:
        """Signal the loop to stop after the current connection."""
        self._running = False
        if self.scheduler is not None:
            self.scheduler.cancel_owner(self)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _log_waiting(self) -> None:
        if self._open and self._received_since_open == 0:
            self._set_state(ChannelState.CONNECTED, MSG_LOG_WAITING)

    def _drop(self, text: str, exc: Exception) -> None:
        self.stats.dropped += 1
        logger.warning(
            "%s: dropped message (%s). Length: %d. Preview: %s",
            self.channel, exc, len(text), text[:PREVIEW_CHARS],
        )
        if len(text) > TRUNCATION_WARN_CHARS:
            logger.warning(
                "%s: message may be truncated by the server buffer (~4096 bytes)",
                self.channel,
            )

    def _set_state(self, state: ChannelState, message: str) -> None:
        self.state = state
        self.status_message = message
        self.bus.publish(STATUS_CHANNEL, ChannelStatus(self.channel, state.value, message))

    def snapshot(self) -> dict[str, Any]:
        return {
            "channel": self.channel,
            "state": self.state.value,
            "message": self.status_message,
            "received": self.stats.received,
            "dropped": self.stats.dropped,
        }
