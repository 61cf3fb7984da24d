"""Inventory-wide read endpoints: pollers, OS definitions, action queue and stats."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from device_inventory.database import get_db
from device_inventory.models import Device, Poller, PollerAction
from device_inventory.services.runtime import get_runtime

router = APIRouter(tags=["inventory"])


@router.get("/pollers")
async def list_pollers(db: AsyncSession = Depends(get_db)):
    pollers = (await db.execute(select(Poller).order_by(Poller.poller_id))).scalars().all()
    return [{"poller_id": p.poller_id, "poller_name": p.poller_name, "host_id": p.host_id} for p in pollers]


@router.get("/actions")
async def list_actions(
    poller_id: int | None = None,
    status: str | None = None,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Queued poller actions, newest first."""
    query = select(PollerAction)
    if poller_id is not None:
        query = query.where(PollerAction.poller_id == poller_id)
    if status:
        query = query.where(PollerAction.status == status)
    rows = (await db.execute(query.order_by(PollerAction.action_id.desc()).limit(limit))).scalars().all()
    return [
        {
            "action_id": a.action_id,
            "action": a.action,
            "identifier": a.identifier,
            "poller_id": a.poller_id,
            "status": a.status,
            "result": a.result,
            "added": a.added,
        }
        for a in rows
    ]


@router.get("/os-definitions")
async def list_os_definitions():
    corpus = get_runtime().corpus
    return [
        {"os": d.name, "text": d.text, "vendor": d.vendor, "group": d.group}
        for d in (corpus.get(name) for name in corpus.names)
    ]


@router.get("/stats")
async def inventory_stats(db: AsyncSession = Depends(get_db)):
    """Device counts overall, per OS and per poller."""
    total = (await db.execute(select(func.count(Device.device_id)))).scalar() or 0
    disabled = (await db.execute(
        select(func.count(Device.device_id)).where(Device.disabled == True)  # noqa: E712
    )).scalar() or 0
    by_os = (await db.execute(
        select(Device.os, func.count(Device.device_id)).group_by(Device.os).order_by(func.count(Device.device_id).desc())
    )).all()
    by_poller = (await db.execute(
        select(Device.poller_id, func.count(Device.device_id)).group_by(Device.poller_id)
    )).all()
    pending = (await db.execute(
        select(func.count(PollerAction.action_id)).where(PollerAction.status == "pending")
    )).scalar() or 0
    return {
        "total_devices": total,
        "disabled_devices": disabled,
        "devices_by_os": {os or "unknown": n for os, n in by_os},
        "devices_by_poller": {str(pid): n for pid, n in by_poller},
        "pending_actions": pending,
    }
