"""
Poller action worker.

Claims ``device_add`` actions queued for this poller in the
``observium_actions`` table, runs each through the add workflow and
records the outcome on the action row.
"""

from __future__ import annotations

import asyncio

import orjson
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from device_inventory.config import settings
from device_inventory.database import async_session
from device_inventory.models import PollerAction
from device_inventory.repository import DeviceRepository
from device_inventory.services.runtime import DiscoveryRuntime, get_runtime
from device_inventory.utils.logging import configure_logging, get_logger

log = get_logger("worker")


async def _claim(db: AsyncSession, action_id: int) -> bool:
    """Move one action from pending to running; False when another worker won."""
    result = await db.execute(
        update(PollerAction)
        .where(PollerAction.action_id == action_id, PollerAction.status == "pending")
        .values(status="running")
    )
    await db.commit()
    return (result.rowcount or 0) == 1


async def _finish(db: AsyncSession, action_id: int, status: str, result: dict):
    row = (await db.execute(select(PollerAction).where(PollerAction.action_id == action_id))).scalar_one_or_none()
    if row is None:
        log.error("action_vanished", action_id=action_id)
        return
    row.status = status
    row.result = orjson.dumps(result).decode()
    await db.commit()


async def process_action(
    action_id: int,
    runtime: DiscoveryRuntime,
    session_factory: async_sessionmaker = async_session,
) -> str | None:
    """Run one queued ``device_add``. Returns the final status or ``None`` if not claimed."""
    async with session_factory() as db:
        if not await _claim(db, action_id):
            return None
        row = (await db.execute(select(PollerAction).where(PollerAction.action_id == action_id))).scalar_one()
        vars = dict(row.vars or {})
    # the action is addressed here; never bounce it to another poller
    vars.pop("poller_id", None)
    log.info("action_started", action_id=action_id, hostname=vars.get("hostname"))

    try:
        async with session_factory() as db:
            result = await runtime.manager(db).add_device_vars(vars)
            if result.ok:
                await db.commit()
            else:
                await db.rollback()
        status = "done" if result.ok else "failed"
        payload = {
            "outcome": result.outcome.value,
            "device_id": result.device_id,
            "error": result.error,
            "messages": [m.as_dict() for m in result.messages],
        }
    except Exception as e:
        log.error("action_failed", action_id=action_id, error=str(e), exc_info=True)
        status, payload = "failed", {"outcome": "error", "error": str(e)[:500]}

    async with session_factory() as db:
        await _finish(db, action_id, status, payload)
    log.info("action_finished", action_id=action_id, status=status)
    return status


async def run_pending(
    runtime: DiscoveryRuntime,
    session_factory: async_sessionmaker = async_session,
    concurrency: int | None = None,
) -> dict[int, str | None]:
    """Process every pending action for the local poller once."""
    async with session_factory() as db:
        pending = await DeviceRepository(db).fetch_pending_actions(runtime.config.poller_id)
        action_ids = [a.action_id for a in pending]
    if not action_ids:
        return {}

    semaphore = asyncio.Semaphore(concurrency or settings.worker_concurrency)

    async def run(action_id: int) -> str | None:
        async with semaphore:
            return await process_action(action_id, runtime, session_factory)

    statuses = await asyncio.gather(*(run(a) for a in action_ids))
    return dict(zip(action_ids, statuses))


async def worker_loop():
    """Main worker loop — poll for actions addressed to this poller."""
    runtime = get_runtime()
    log.info("worker_starting", poller_id=runtime.config.poller_id, concurrency=settings.worker_concurrency)

    while True:
        try:
            processed = await run_pending(runtime)
            if not processed:
                await asyncio.sleep(settings.worker_poll_interval)
        except Exception as e:
            log.error("worker_loop_error", error=str(e), exc_info=True)
            await asyncio.sleep(2)


def main():
    """Entry point for `python -m device_inventory.worker.main`."""
    configure_logging(settings.log_level, hide_auth=settings.snmp_hide_auth)
    asyncio.run(worker_loop())


if __name__ == "__main__":
    main()
