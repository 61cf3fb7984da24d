"""Logical reads and writes over the inventory tables."""

from __future__ import annotations

from typing import Any

from sqlalchemy import Select, delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from device_inventory.exceptions import PersistenceFailure
from device_inventory.models import (
    Device,
    DeviceAttrib,
    EntPhysical,
    Poller,
    PollerAction,
    Port,
)
from device_inventory.utils.logging import get_logger

log = get_logger("repository")


class DeviceRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    # ── Generic helpers ─────────────────────────

    async def fetch_cell(self, stmt: Select) -> Any:
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def fetch_column(self, stmt: Select) -> list[Any]:
        return list((await self.session.execute(stmt)).scalars().all())

    async def delete_rows(self, model, *where) -> int:
        result = await self.session.execute(delete(model).where(*where))
        return result.rowcount or 0

    # ── Devices ─────────────────────────────────

    async def device_exists(self, device_id: int) -> bool:
        stmt = select(func.count()).select_from(Device).where(Device.device_id == device_id)
        return (await self.fetch_cell(stmt) or 0) > 0

    async def hostname_exists(self, hostname: str, exclude_id: int | None = None) -> bool:
        return await self.fetch_device_by_hostname(hostname, exclude_id) is not None

    async def fetch_device(self, device_id: int) -> Device | None:
        return await self.session.get(Device, device_id)

    async def fetch_device_by_hostname(self, hostname: str, exclude_id: int | None = None) -> Device | None:
        """Exact match on the stored hostname; callers pass the lower-cased form the add path stores."""
        stmt = select(Device).where(Device.hostname == hostname)
        if exclude_id:
            stmt = stmt.where(Device.device_id != exclude_id)
        return (await self.session.execute(stmt.limit(1))).scalar_one_or_none()

    async def fetch_devices_by_network(
        self, ip: str, port: int, context: str | None, exclude_id: int | None = None,
    ) -> list[Device]:
        """Devices at ``ip``:``port`` in the same SNMP context (NULL matches only NULL)."""
        stmt = select(Device).where(Device.ip == ip, Device.snmp_port == port)
        if context:
            stmt = stmt.where(Device.snmp_context == context)
        else:
            stmt = stmt.where(Device.snmp_context.is_(None))
        if exclude_id:
            stmt = stmt.where(Device.device_id != exclude_id)
        return await self.fetch_column(stmt.order_by(Device.device_id))

    async def fetch_devices_by_engine_id(self, engine_id: str) -> list[Device]:
        stmt = (
            select(Device)
            .where(Device.disabled.is_(False), Device.snmp_engine_id == engine_id)
            .order_by(Device.device_id)
        )
        return await self.fetch_column(stmt)

    async def fetch_devices_by_sysname(self, sys_name: str | None, os: str | None = None) -> list[Device]:
        stmt = select(Device).where(Device.disabled.is_(False))
        if sys_name:
            stmt = stmt.where(func.lower(Device.sys_name) == sys_name.lower())
        else:
            stmt = stmt.where(or_(Device.sys_name.is_(None), Device.sys_name == ""))
        if os is not None:
            stmt = stmt.where(Device.os == os)
        return await self.fetch_column(stmt.order_by(Device.device_id))

    async def list_devices(self, skip: int = 0, limit: int = 100, os: str | None = None,
                           poller_id: int | None = None) -> tuple[list[Device], int]:
        query = select(Device)
        count_q = select(func.count()).select_from(Device)
        if os:
            query = query.where(Device.os == os)
            count_q = count_q.where(Device.os == os)
        if poller_id is not None:
            query = query.where(Device.poller_id == poller_id)
            count_q = count_q.where(Device.poller_id == poller_id)
        total = await self.fetch_cell(count_q) or 0
        devices = await self.fetch_column(query.order_by(Device.hostname).offset(skip).limit(limit))
        return devices, total

    async def insert_device(self, **fields) -> Device:
        """Insert a device row; a unique violation becomes :class:`PersistenceFailure`."""
        device = Device(**fields)
        try:
            async with self.session.begin_nested():
                self.session.add(device)
        except IntegrityError as exc:
            log.warning("device_insert_failed", hostname=fields.get("hostname"), error=str(exc.orig))
            raise PersistenceFailure(
                f"Could not insert device {fields.get('hostname')}: {exc.orig}", fields.get("hostname"),
            ) from exc
        # load server defaults so the row can be read outside of IO
        await self.session.refresh(device)
        return device

    async def update_device(self, device: Device, **fields) -> Device:
        for key, value in fields.items():
            setattr(device, key, value)
        await self.session.flush()
        return device

    # ── Ports & entities ────────────────────────

    async def fetch_ports(self, device_id: int) -> list[Port]:
        stmt = select(Port).where(Port.device_id == device_id).order_by(Port.if_index)
        return await self.fetch_column(stmt)

    async def fetch_serial_entity(self, device_id: int) -> EntPhysical | None:
        """First inventory row of the device carrying a serial number."""
        stmt = (
            select(EntPhysical)
            .where(
                EntPhysical.device_id == device_id,
                EntPhysical.ent_physical_serial_num.is_not(None),
                EntPhysical.ent_physical_serial_num != "",
            )
            .order_by(EntPhysical.ent_physical_class, EntPhysical.ent_physical_index)
            .limit(1)
        )
        return await self.fetch_cell(stmt)

    # ── Device attributes ───────────────────────

    async def get_attrib(self, device_id: int, attrib_type: str) -> str | None:
        stmt = select(DeviceAttrib.attrib_value).where(
            DeviceAttrib.device_id == device_id, DeviceAttrib.attrib_type == attrib_type,
        )
        return await self.fetch_cell(stmt)

    async def get_attribs(self, device_id: int) -> dict[str, str]:
        stmt = select(DeviceAttrib).where(DeviceAttrib.device_id == device_id)
        return {a.attrib_type: a.attrib_value for a in await self.fetch_column(stmt)}

    async def set_attrib(self, device_id: int, attrib_type: str, value: str) -> DeviceAttrib:
        stmt = select(DeviceAttrib).where(
            DeviceAttrib.device_id == device_id, DeviceAttrib.attrib_type == attrib_type,
        )
        attrib = await self.fetch_cell(stmt)
        if attrib is None:
            attrib = DeviceAttrib(device_id=device_id, attrib_type=attrib_type, attrib_value=str(value))
            self.session.add(attrib)
        else:
            attrib.attrib_value = str(value)
        await self.session.flush()
        return attrib

    async def del_attrib(self, device_id: int, attrib_type: str) -> bool:
        return await self.delete_rows(
            DeviceAttrib, DeviceAttrib.device_id == device_id, DeviceAttrib.attrib_type == attrib_type,
        ) > 0

    # ── Pollers ─────────────────────────────────

    async def fetch_poller(self, poller_id: int) -> Poller | None:
        return await self.session.get(Poller, poller_id)

    async def fetch_poller_by_name(self, poller_name: str) -> Poller | None:
        return await self.fetch_cell(select(Poller).where(Poller.poller_name == poller_name))

    async def queued_action_poller(self, action: str, identifier: str) -> int | None:
        """Poller id of an open ``action`` for ``identifier`` on any poller."""
        stmt = select(PollerAction.poller_id).where(
            PollerAction.action == action,
            func.lower(PollerAction.identifier) == identifier.lower(),
            PollerAction.status.in_(("pending", "running")),
        ).limit(1)
        return await self.fetch_cell(stmt)

    async def insert_action(self, action: str, identifier: str, poller_id: int, vars: dict) -> PollerAction:
        row = PollerAction(action=action, identifier=identifier, poller_id=poller_id, vars=vars)
        self.session.add(row)
        await self.session.flush()
        return row

    async def fetch_pending_actions(self, poller_id: int, action: str = "device_add",
                                    limit: int = 50) -> list[PollerAction]:
        stmt = (
            select(PollerAction)
            .where(PollerAction.poller_id == poller_id, PollerAction.action == action,
                   PollerAction.status == "pending")
            .order_by(PollerAction.action_id)
            .limit(limit)
        )
        return await self.fetch_column(stmt)
