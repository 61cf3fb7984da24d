"""Bounded in-process cache of device rows, keyed by device_id."""

from __future__ import annotations

from collections import OrderedDict
from typing import Any

from device_inventory.utils.logging import get_logger

log = get_logger("cache")


class DeviceCache:
    """LRU cache with a hostname index.

    Entries are plain dicts (column snapshots), never live ORM objects, so
    they stay valid after the session that loaded them closes.
    """

    def __init__(self, maxsize: int = 512):
        self.maxsize = maxsize
        self._entries: OrderedDict[int, dict[str, Any]] = OrderedDict()
        self._by_hostname: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._entries

    def get(self, device_id: int) -> dict[str, Any] | None:
        entry = self._entries.get(device_id)
        if entry is not None:
            self._entries.move_to_end(device_id)
        return entry

    def get_by_hostname(self, hostname: str) -> dict[str, Any] | None:
        device_id = self._by_hostname.get(hostname.lower())
        return self.get(device_id) if device_id is not None else None

    def put(self, device_id: int, data: dict[str, Any]):
        self.invalidate(device_id)
        self._entries[device_id] = dict(data)
        if data.get("hostname"):
            self._by_hostname[data["hostname"].lower()] = device_id
        while len(self._entries) > self.maxsize:
            evicted, old = self._entries.popitem(last=False)
            self._drop_hostname(evicted, old)

    def invalidate(self, device_id: int):
        old = self._entries.pop(device_id, None)
        if old is not None:
            self._drop_hostname(device_id, old)
            log.debug("device_cache_invalidated", device_id=device_id)

    def clear(self):
        self._entries.clear()
        self._by_hostname.clear()

    def _drop_hostname(self, device_id: int, data: dict[str, Any]):
        hostname = (data.get("hostname") or "").lower()
        if self._by_hostname.get(hostname) == device_id:
            del self._by_hostname[hostname]
