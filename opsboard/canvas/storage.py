"""
Widget arrangement persistence.

WidgetStorage keeps one namespaced record, {"version": "1.0", "widgets": [...]},
in a key-value store. A missing or corrupt record reads back as the empty
default; failed writes are logged and never raised into the UI.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

import orjson

from ..types import GridPosition, GridSize, WidgetConfig

logger = logging.getLogger(__name__)

STORAGE_KEY = "opsboard_config"
CONFIG_VERSION = "1.0"


def default_config() -> dict[str, Any]:
    return {"version": CONFIG_VERSION, "widgets": []}


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """In-process store (tests, ephemeral sessions)."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileStore:
    """One `<key>.json` file per key under `directory`; writes are atomic."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory).expanduser()

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> str | None:
        try:
            return self._path(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(value)
            os.replace(tmp, self._path(key))
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def _plain(updates: dict[str, Any]) -> dict[str, Any]:
    """Persisted (JSON) form of a partial widget update."""
    out = dict(updates)
    position = out.get("position")
    if isinstance(position, GridPosition):
        out["position"] = {"x": position.x, "y": position.y}
    size = out.get("size")
    if isinstance(size, GridSize):
        out["size"] = {"width": size.width, "height": size.height}
    return out


class WidgetStorage:
    """
    PersistenceAdapter for the widget arrangement.

    Usage:
        storage = WidgetStorage(JsonFileStore("~/.opsboard"))
        storage.add_widget(config)
        storage.update_widget(config.id, {"position": GridPosition(3, 4)})
    """

    def __init__(self, store: KeyValueStore, key: str = STORAGE_KEY) -> None:
        self.store = store
        self.key = key
        self.config = self.load()

    def load(self) -> dict[str, Any]:
        """Read the record; anything unreadable yields the default config."""
        try:
            raw = self.store.get(self.key)
            if raw:
                data = orjson.loads(raw)
                if isinstance(data, dict) and isinstance(data.get("widgets"), list):
                    return data
                logger.warning("Ignoring malformed dashboard configuration")
        except (OSError, ValueError) as exc:
            logger.error("Error loading dashboard configuration: %s", exc)
        return default_config()

    def save(self, config: dict[str, Any]) -> None:
        try:
            self.store.set(self.key, orjson.dumps(config).decode())
        except (OSError, TypeError) as exc:
            logger.error("Error saving dashboard configuration: %s", exc)
            return
        self.config = config

    def add_widget(self, widget: WidgetConfig | dict[str, Any]) -> None:
        record = widget.to_dict() if isinstance(widget, WidgetConfig) else dict(widget)
        config = {**self.config, "widgets": [*self._records(), record]}
        self.save(config)

    def update_widget(self, widget_id: str, updates: dict[str, Any]) -> bool:
        """Shallow-merge `updates` into the stored widget; False if unknown."""
        records = self._records()
        for index, record in enumerate(records):
            if record.get("id") == widget_id:
                records[index] = {**record, **_plain(updates)}
                self.save({**self.config, "widgets": records})
                return True
        logger.debug("update_widget: no stored widget %s", widget_id)
        return False

    def remove_widget(self, widget_id: str) -> None:
        records = [r for r in self._records() if r.get("id") != widget_id]
        self.save({**self.config, "widgets": records})

    def clear_all(self) -> None:
        self.save(default_config())

    def get_widgets(self) -> list[WidgetConfig]:
        """Stored widgets as WidgetConfig, skipping records that do not parse."""
        widgets = []
        for record in self._records():
            try:
                widgets.append(WidgetConfig.from_dict(record))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping unreadable widget record %r: %s", record, exc)
        return widgets

    def get_widget(self, widget_id: str) -> WidgetConfig | None:
        for widget in self.get_widgets():
            if widget.id == widget_id:
                return widget
        return None

    def export_config(self) -> str:
        return orjson.dumps(self.config, option=orjson.OPT_INDENT_2).decode()

    def import_config(self, text: str) -> bool:
        """Replace the record with `text` if it parses and has version + widgets."""
        try:
            config = orjson.loads(text)
        except orjson.JSONDecodeError as exc:
            logger.error("Error importing configuration: %s", exc)
            return False
        if isinstance(config, dict) and config.get("version") and isinstance(config.get("widgets"), list):
            self.save(config)
            return True
        return False

    def _records(self) -> list[dict[str, Any]]:
        return [dict(r) for r in self.config.get("widgets") or [] if isinstance(r, dict)]
