"""
Per-channel last-known-good cache.

HOT PATH: merge() runs for every inbound message on a cached channel.

Merge policies:
1. telemetry - upsert by name|labels, never delete
2. balance   - upsert by asset, order list replaced wholesale
3. system    - upsert per top-level scalar/array field, never delete
4. log       - not cached (widgets keep their own bounded window)

Every policy validates the whole message before touching state, so a
malformed message leaves the cache exactly as it was.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

import orjson

from . import orders as order_fields
from .units import MEMORY, classify, kib_to_bytes
from ..types import Channel, MetricEntry, channel_name

logger = logging.getLogger(__name__)

TELEMETRY_TYPES = ("gauge", "counter", "histogram")
HISTOGRAM_NOT_SERIALIZED = "histogram_data_not_serialized"

SYSTEM_RESERVED_KEYS = ("type", "timestamp")

# Changed-key marker for the order list on the balance channel
ORDERS_KEY = "open_orders"


class MessageFormatError(ValueError):
    """Parsed message does not match the channel grammar."""


def telemetry_key(name: str, labels: Mapping[str, Any]) -> str:
    """Composite key: name + compact JSON of the labels (insertion order)."""
    return f"{name}|{orjson.dumps(labels, default=str).decode()}"


class StreamCache:
    """
    Channel-keyed store of last known values.

    Constructed once per dashboard session and injected into ingest and
    widgets.

    Thread-safety: NOT thread-safe. Designed for single-threaded async use;
    the ingest path is the only writer.
    """

    __slots__ = ('_entries', '_orders', '_merge_policies')

    def __init__(self) -> None:
        self._entries: dict[str, dict[str, MetricEntry]] = {
            Channel.TELEMETRY.value: {},
            Channel.BALANCE.value: {},
            Channel.SYSTEM.value: {},
        }
        self._orders: list[dict[str, Any]] = []
        self._merge_policies: dict[str, Callable[[Any], frozenset[str]]] = {
            Channel.TELEMETRY.value: self._merge_telemetry,
            Channel.BALANCE.value: self._merge_balance,
            Channel.SYSTEM.value: self._merge_system,
        }

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    def merge(self, channel: str, message: Any) -> frozenset[str]:
        """
        Apply the channel's merge policy to a parsed message.

        Returns the keys whose entry was created or changed. Raises
        MessageFormatError (cache untouched) if the message shape is wrong.
        """
        channel = channel_name(channel)
        if channel == Channel.LOG.value:
            return frozenset()
        policy = self._merge_policies.get(channel)
        if policy is None:
            raise MessageFormatError(f"unknown channel {channel!r}")
        return policy(message)

    def _merge_telemetry(self, message: Any) -> frozenset[str]:
        if isinstance(message, list):
            metrics = message
        elif isinstance(message, dict) and isinstance(message.get("metrics"), list):
            metrics = message["metrics"]
        else:
            raise MessageFormatError(
                f"telemetry message format not recognized: {type(message).__name__}"
            )

        # Decode everything first; apply only if the whole batch decoded
        decoded: list[MetricEntry] = []
        for item in metrics:
            entry = self._decode_metric(item)
            if entry is not None:
                decoded.append(entry)

        store = self._entries[Channel.TELEMETRY.value]
        changed: set[str] = set()
        for entry in decoded:
            previous = store.get(entry.key)
            if previous is not None and entry.value is None:
                # Absent value: keep last known good
                entry = entry._replace(value=previous.value)
            if previous != entry:
                changed.add(entry.key)
            store[entry.key] = entry
        return frozenset(changed)

    @staticmethod
    def _decode_metric(item: Any) -> MetricEntry | None:
        if not isinstance(item, dict):
            return None
        name = item.get("name")
        metric_type = item.get("metric_type")
        if not name or not isinstance(metric_type, dict):
            return None

        type_name = metric_type.get("type")
        if type_name not in TELEMETRY_TYPES:
            return None
        if type_name == "histogram" and metric_type.get("data") == HISTOGRAM_NOT_SERIALIZED:
            return None

        labels = item.get("labels") or {}
        if not isinstance(labels, dict):
            raise MessageFormatError(f"labels for {name!r} must be an object")

        hints = {**item, **metric_type}
        kind = classify(name, hints)
        value = metric_type.get("value")
        if kind == MEMORY:
            # Telemetry backend reports memory in KiB
            value = kib_to_bytes(value)

        return MetricEntry(
            key=telemetry_key(name, labels),
            name=name,
            value=value,
            labels=labels,
            rate=item.get("cached_rate") or 0,
            last_updated=item.get("last_updated"),
            metric_type=type_name,
            kind=kind,
        )

    def _merge_balance(self, message: Any) -> frozenset[str]:
        if not isinstance(message, dict):
            raise MessageFormatError("balance message must be an object")
        balances = message.get("balances") or []
        open_orders = message.get("open_orders") or []
        if not isinstance(balances, list) or not isinstance(open_orders, list):
            raise MessageFormatError("balances and open_orders must be arrays")
        last_updated = message.get("timestamp")

        new_orders: list[dict[str, Any]] = []
        for order in open_orders:
            if not isinstance(order, dict):
                continue
            if not order_fields.has_quantity(order):
                logger.warning("Order missing quantity field. Available fields: %s", sorted(order))
            if not order_fields.has_price(order):
                logger.warning("Order missing price field. Available fields: %s", sorted(order))
            new_orders.append(dict(order))

        changed: set[str] = set()
        if new_orders != self._orders:
            changed.add(ORDERS_KEY)
        # Point-in-time server state: no carryover from the previous message
        self._orders = new_orders

        store = self._entries[Channel.BALANCE.value]
        for balance in balances:
            if not isinstance(balance, dict) or not balance.get("asset"):
                continue
            asset = str(balance["asset"])
            entry = MetricEntry(
                key=asset,
                name=asset,
                value=balance.get("total_balance"),
                labels={},
                last_updated=last_updated,
                extra={**balance, "last_updated": last_updated},
            )
            if store.get(asset) != entry:
                changed.add(asset)
            store[asset] = entry
        return frozenset(changed)

    def _merge_system(self, message: Any) -> frozenset[str]:
        if not isinstance(message, dict):
            raise MessageFormatError("system message must be an object")
        last_updated = message.get("timestamp")

        store = self._entries[Channel.SYSTEM.value]
        changed: set[str] = set()
        for key, value in message.items():
            if key in SYSTEM_RESERVED_KEYS:
                continue
            # Nested objects are not metrics; arrays are stored whole
            if isinstance(value, dict):
                continue
            kind = classify(key)
            if kind == MEMORY:
                value = kib_to_bytes(value)
            entry = MetricEntry(
                key=key,
                name=key,
                value=value,
                labels={},
                last_updated=last_updated,
                kind=kind,
            )
            if store.get(key) != entry:
                changed.add(key)
            store[key] = entry
        return frozenset(changed)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, channel: str, key: str) -> MetricEntry | None:
        return self._entries.get(channel_name(channel), {}).get(key)

    def entries(self, channel: str) -> list[MetricEntry]:
        """All entries of a channel in first-seen order."""
        return list(self._entries.get(channel_name(channel), {}).values())

    def keys(self, channel: str) -> list[str]:
        return list(self._entries.get(channel_name(channel), {}))

    def first_key(
        self,
        channel: str,
        predicate: Callable[[MetricEntry], bool] | None = None,
    ) -> str | None:
        """First key (in first-seen order) whose entry passes `predicate`."""
        for key, entry in self._entries.get(channel_name(channel), {}).items():
            if predicate is None or predicate(entry):
                return key
        return None

    @property
    def orders(self) -> list[dict[str, Any]]:
        """Copy of the open orders from the most recent balance message."""
        return [dict(order) for order in self._orders]

    def order_symbols(self) -> list[str]:
        seen: dict[str, None] = {}
        for order in self._orders:
            seen.setdefault(str(order.get("symbol") or "N/A"), None)
        return list(seen)

    def is_empty(self, channel: str) -> bool:
        channel = channel_name(channel)
        if channel == Channel.BALANCE.value and self._orders:
            return False
        return not self._entries.get(channel)

    def __len__(self) -> int:
        return sum(len(store) for store in self._entries.values())

    def clear(self) -> None:
        """Drop everything (session reset)."""
        for store in self._entries.values():
            store.clear()
        self._orders = []


def iter_numeric(values: Iterable[Any]) -> list[float]:
    """Numeric members of an array value, as floats."""
    return [float(v) for v in values if isinstance(v, (int, float)) and not isinstance(v, bool)]
