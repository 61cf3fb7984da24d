"""API endpoint integration tests."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from device_inventory.api import inventory as inventory_api
from device_inventory.models import Device, Poller, PollerAction


@pytest.mark.asyncio
class TestHealthEndpoint:
    async def test_health(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"


@pytest.mark.asyncio
class TestDevicesAPI:
    async def test_list_devices_empty(self, client: AsyncClient):
        resp = await client.get("/api/devices")
        assert resp.status_code == 200
        data = resp.json()
        assert data["items"] == []
        assert data["total"] == 0

    async def test_list_devices_filtered(self, client: AsyncClient, sample_device: Device):
        resp = await client.get("/api/devices", params={"os": "ios"})
        assert resp.json()["total"] == 1
        resp = await client.get("/api/devices", params={"os": "junos"})
        assert resp.json()["total"] == 0

    async def test_get_device_hides_credentials(self, client: AsyncClient, sample_device: Device):
        resp = await client.get(f"/api/devices/{sample_device.device_id}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["hostname"] == "router-a.example.com"
        assert "snmp_community" not in data

    async def test_get_device_not_found(self, client: AsyncClient):
        resp = await client.get("/api/devices/9999")
        assert resp.status_code == 404

    async def test_add_device(self, client: AsyncClient, snmp, cisco_agent):
        snmp.add_agent("10.0.0.10", "public", cisco_agent())
        resp = await client.post("/api/devices", json={
            "hostname": "switch1.example.com",
            "snmp_version": "v2c",
            "snmp_community": "public",
        })
        assert resp.status_code == 201
        data = resp.json()
        assert data["outcome"] == "added"
        assert data["os"] == "ios"
        assert any(m["text"] == "Trying v2c community *** [0] ..." for m in data["messages"])

        listed = await client.get("/api/devices")
        assert listed.json()["total"] == 1

    async def test_add_device_test_only(self, client: AsyncClient, snmp, cisco_agent):
        snmp.add_agent("10.0.0.10", "public", cisco_agent())
        resp = await client.post("/api/devices", json={"hostname": "switch1.example.com", "test": True})
        assert resp.status_code == 200
        assert resp.json()["outcome"] == "tested"
        assert (await client.get("/api/devices")).json()["total"] == 0

    async def test_add_duplicate_conflict(self, client: AsyncClient, sample_device: Device):
        resp = await client.post("/api/devices", json={"hostname": "router-a.example.com"})
        assert resp.status_code == 409
        data = resp.json()
        assert data["outcome"] == "rejected"
        assert data["error"] == "DuplicateHostname"

    async def test_add_unresolvable(self, client: AsyncClient):
        resp = await client.post("/api/devices", json={"hostname": "missing.example.com"})
        assert resp.status_code == 502
        assert resp.json()["outcome"] == "unreachable"

    async def test_add_rejects_bad_version(self, client: AsyncClient):
        resp = await client.post("/api/devices", json={"hostname": "switch1", "snmp_version": "v9"})
        assert resp.status_code == 422

    async def test_add_queued_for_remote_poller(self, client: AsyncClient, db_session, default_poller):
        db_session.add(Poller(poller_id=7, poller_name="Remote DC2"))
        await db_session.commit()
        resp = await client.post("/api/devices", json={"hostname": "switch1.example.com", "poller_id": 7})
        assert resp.status_code == 202
        action = await db_session.get(PollerAction, resp.json()["action_id"])
        assert action.poller_id == 7
        assert action.identifier == "switch1.example.com"

    async def test_detect_auth(self, client: AsyncClient, snmp, cisco_agent):
        snmp.add_agent("10.0.0.10", "public", cisco_agent())
        resp = await client.post("/api/devices/detect-auth", json={"hostname": "switch1.example.com"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["found"] is True
        assert data["snmp_version"] == "v2c"
        assert data["credentials"]["snmp_community"] == "***"

    async def test_detect_auth_nothing_answers(self, client: AsyncClient):
        resp = await client.post("/api/devices/detect-auth", json={"hostname": "switch1.example.com"})
        assert resp.status_code == 200
        assert resp.json()["found"] is False

    async def test_delete_device(self, client: AsyncClient, sample_device: Device):
        resp = await client.delete(f"/api/devices/{sample_device.device_id}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["tables"]["devices"] == 1
        assert data["summary"].endswith(" * Deleted device: router-a.example.com")

        resp = await client.get(f"/api/devices/{sample_device.device_id}")
        assert resp.status_code == 404

    async def test_delete_device_not_found(self, client: AsyncClient):
        resp = await client.delete("/api/devices/9999")
        assert resp.status_code == 404

    async def test_cancel_without_scheduler(self, client: AsyncClient):
        resp = await client.post("/api/devices/requests/req-1/cancel")
        assert resp.status_code == 503

    async def test_cancel_request(self, client: AsyncClient, runtime):
        cancelled = []

        class Scheduler:
            async def cancel_request(self, request_id):
                cancelled.append(request_id)

        runtime.scheduler = Scheduler()
        resp = await client.post("/api/devices/requests/req-1/cancel")
        assert resp.status_code == 204
        assert cancelled == ["req-1"]

    async def test_duplicates_of_stored_device(self, client: AsyncClient, db_session, sample_device: Device):
        resp = await client.get(f"/api/devices/{sample_device.device_id}/duplicates")
        assert resp.status_code == 200
        assert resp.json()["kind"] == "none"

        twin = Device(hostname="router-a-alt", ip="10.0.0.5", snmp_version="v2c", snmp_port=161,
                      snmp_transport="udp", snmp_community="public")
        db_session.add(twin)
        await db_session.commit()

        data = (await client.get(f"/api/devices/{sample_device.device_id}/duplicates")).json()
        assert data["kind"] == "ip_snmp_v2c"
        assert data["device_ids"] == [twin.device_id]

    async def test_recheck_os(self, client: AsyncClient, snmp, sample_device: Device, cisco_agent):
        snmp.add_agent("10.0.0.5", "public", cisco_agent("router-a"))
        resp = await client.post(f"/api/devices/{sample_device.device_id}/recheck-os")
        assert resp.status_code == 200
        assert resp.json() == {"device_id": sample_device.device_id, "os": "ios", "matched_by": "recheck"}


@pytest.mark.asyncio
class TestAttribsAPI:
    async def test_set_get_delete(self, client: AsyncClient, sample_device: Device):
        base = f"/api/devices/{sample_device.device_id}/attribs"
        resp = await client.put(f"{base}/location_override", json={"value": "DC1 / Row 4"})
        assert resp.status_code == 204

        resp = await client.get(base)
        assert resp.json() == {"location_override": "DC1 / Row 4"}

        assert (await client.delete(f"{base}/location_override")).status_code == 204
        assert (await client.delete(f"{base}/location_override")).status_code == 404

    async def test_unknown_device(self, client: AsyncClient):
        resp = await client.put("/api/devices/9999/attribs/x", json={"value": "y"})
        assert resp.status_code == 404


@pytest.mark.asyncio
class TestInventoryAPI:
    async def test_os_definitions(self, client: AsyncClient, runtime, monkeypatch):
        monkeypatch.setattr(inventory_api, "get_runtime", lambda: runtime)
        resp = await client.get("/api/os-definitions")
        assert resp.status_code == 200
        by_name = {d["os"]: d for d in resp.json()}
        assert by_name["ios"]["vendor"] == "Cisco"
        assert "generic" in by_name

    async def test_pollers(self, client: AsyncClient, default_poller):
        resp = await client.get("/api/pollers")
        assert resp.json() == [{"poller_id": 0, "poller_name": "Default Poller", "host_id": None}]

    async def test_stats(self, client: AsyncClient, sample_device: Device):
        resp = await client.get("/api/stats")
        assert resp.status_code == 200
        data = resp.json()
        assert data["total_devices"] == 1
        assert data["devices_by_os"] == {"ios": 1}
        assert data["pending_actions"] == 0
