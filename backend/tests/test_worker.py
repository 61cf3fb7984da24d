"""Poller action worker tests."""

from __future__ import annotations

import orjson
import pytest
from sqlalchemy import func, select

from device_inventory.models import Device, PollerAction
from device_inventory.worker.main import process_action, run_pending


async def _queue(session, hostname: str, poller_id: int = 0, **vars) -> int:
    action = PollerAction(action="device_add", identifier=hostname, poller_id=poller_id,
                          vars={"hostname": hostname, "poller_id": poller_id, **vars})
    session.add(action)
    await session.commit()
    return action.action_id


async def _reload(session, action_id: int) -> PollerAction:
    return await session.get(PollerAction, action_id, populate_existing=True)


@pytest.mark.asyncio
class TestWorker:
    async def test_pending_action_adds_device(self, runtime, session_factory, db_session, snmp, cisco_agent):
        snmp.add_agent("10.0.0.10", "public", cisco_agent())
        action_id = await _queue(db_session, "switch1.example.com", snmp_version="v2c")

        statuses = await run_pending(runtime, session_factory, concurrency=1)

        assert statuses == {action_id: "done"}
        action = await _reload(db_session, action_id)
        assert action.status == "done"
        result = orjson.loads(action.result)
        assert result["outcome"] == "added"
        assert result["device_id"] is not None
        count = (await db_session.execute(select(func.count()).select_from(Device))).scalar()
        assert count == 1

    async def test_failed_action_records_messages(self, runtime, session_factory, db_session):
        action_id = await _queue(db_session, "missing.example.com")

        statuses = await run_pending(runtime, session_factory, concurrency=1)

        assert statuses == {action_id: "failed"}
        result = orjson.loads((await _reload(db_session, action_id)).result)
        assert result["outcome"] == "unreachable"
        assert result["error"] == "DnsFailure"
        assert "Could not resolve missing.example.com." in [m["text"] for m in result["messages"]]

    async def test_actions_for_other_pollers_are_ignored(self, runtime, session_factory, db_session):
        action_id = await _queue(db_session, "switch9.example.com", poller_id=5)
        assert await run_pending(runtime, session_factory, concurrency=1) == {}
        assert (await _reload(db_session, action_id)).status == "pending"

    async def test_claimed_action_is_not_run_twice(self, runtime, session_factory, db_session):
        action_id = await _queue(db_session, "switch1.example.com")
        action = await _reload(db_session, action_id)
        action.status = "running"
        await db_session.commit()

        assert await process_action(action_id, runtime, session_factory) is None
