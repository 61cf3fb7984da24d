"""Audit trail sink — every lifecycle decision on a device lands here."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from device_inventory.models import EventLog
from device_inventory.utils.logging import get_logger

log = get_logger("eventlog")

SEVERITIES = ("debug", "info", "notice", "warning", "error")


async def log_event(
    session: AsyncSession,
    message: str,
    device_id: int | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    severity: str = "info",
) -> EventLog:
    """Persist an audit entry and mirror it to the structured log."""
    if severity not in SEVERITIES:
        severity = "info"
    entry = EventLog(
        device_id=device_id,
        entity_type=entity_type,
        entity_id=entity_id,
        message=message,
        severity=severity,
    )
    session.add(entry)
    await session.flush()
    log.info("event_logged", device_id=device_id, entity_type=entity_type,
             entity_id=entity_id, severity=severity, message=message)
    return entry
