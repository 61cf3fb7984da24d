"""Device cache tests."""

from __future__ import annotations

from device_inventory.services.cache import DeviceCache


class TestDeviceCache:
    def test_put_and_lookup(self):
        cache = DeviceCache()
        cache.put(1, {"hostname": "Router-A", "ip": "10.0.0.5"})
        assert cache.get(1)["ip"] == "10.0.0.5"
        assert cache.get_by_hostname("router-a")["ip"] == "10.0.0.5"
        assert 1 in cache

    def test_entries_are_copies(self):
        cache = DeviceCache()
        data = {"hostname": "r1"}
        cache.put(1, data)
        data["hostname"] = "changed"
        assert cache.get(1)["hostname"] == "r1"

    def test_lru_eviction(self):
        cache = DeviceCache(maxsize=2)
        cache.put(1, {"hostname": "a"})
        cache.put(2, {"hostname": "b"})
        cache.get(1)
        cache.put(3, {"hostname": "c"})
        assert 2 not in cache
        assert cache.get_by_hostname("b") is None
        assert len(cache) == 2

    def test_invalidate_drops_hostname_index(self):
        cache = DeviceCache()
        cache.put(1, {"hostname": "a"})
        cache.invalidate(1)
        cache.invalidate(99)
        assert cache.get(1) is None
        assert cache.get_by_hostname("a") is None

    def test_rename_keeps_index_consistent(self):
        cache = DeviceCache()
        cache.put(1, {"hostname": "old"})
        cache.put(1, {"hostname": "new"})
        assert cache.get_by_hostname("old") is None
        assert cache.get_by_hostname("new") is not None
