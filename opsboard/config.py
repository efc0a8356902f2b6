"""Configuration for the dashboard session."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_PORT = 9000
DEFAULT_CHANNELS = ("balance", "system", "telemetry", "log")

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def _default_host() -> str:
    return os.environ.get("OPSBOARD_HOST") or "localhost"


def _default_storage_path() -> Path:
    return Path(os.environ.get("OPSBOARD_STORAGE") or Path.home() / ".opsboard")


@dataclass
class DashboardConfig:
    """Transport endpoint, canvas constants and storage location."""

    host: str = field(default_factory=_default_host)
    port: int = DEFAULT_PORT
    secure: bool = False
    channels: tuple[str, ...] = DEFAULT_CHANNELS
    reconnect_delay: float = 5.0
    grid_size: int = 20
    storage_path: Path = field(default_factory=_default_storage_path)
    log_level: str = "INFO"

    @property
    def scheme(self) -> str:
        return "wss" if self.secure else "ws"

    def stream_url(self, channel: str) -> str:
        return f"{self.scheme}://{self.host}:{self.port}/{channel}"


def configure_logging(level: str | int = "INFO") -> None:
    """Install the root handler once; later calls only adjust the level."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)
