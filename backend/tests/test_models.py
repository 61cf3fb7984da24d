"""ORM model unit tests."""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from device_inventory.database import Base, build_engine
from device_inventory.exceptions import PersistenceFailure
from device_inventory.models import Device, DeviceAttrib, EventLog, Poller, PollerAction, Port
from device_inventory.repository import DeviceRepository


@pytest.mark.asyncio
class TestDeviceModel:
    async def test_defaults(self, db_session: AsyncSession):
        device = Device(hostname="r1.example.com", ip="10.0.0.1")
        db_session.add(device)
        await db_session.flush()
        assert device.device_id is not None
        assert device.snmp_version == "v2c"
        assert device.snmp_port == 161
        assert device.disabled is False
        assert device.status == 0

    async def test_hostname_unique(self, db_session: AsyncSession, sample_device: Device):
        db_session.add(Device(hostname="router-a.example.com", ip="10.0.0.99"))
        with pytest.raises(IntegrityError):
            await db_session.flush()
        await db_session.rollback()

    async def test_fingerprint_columns_keep_legacy_names(self):
        columns = Device.__table__.columns
        assert "sysObjectID" in columns
        assert "snmpEngineID" in columns
        assert Device.sys_name.property.columns[0].name == "sysName"

    async def test_attribs_relationship(self, db_session: AsyncSession, sample_device: Device):
        db_session.add(DeviceAttrib(device_id=sample_device.device_id, attrib_type="ping_skip", attrib_value="1"))
        await db_session.commit()
        await db_session.refresh(sample_device, ["attribs"])
        assert [a.attrib_type for a in sample_device.attribs] == ["ping_skip"]

    async def test_attrib_type_unique_per_device(self, db_session: AsyncSession, sample_device: Device):
        db_session.add(DeviceAttrib(device_id=sample_device.device_id, attrib_type="a", attrib_value="1"))
        db_session.add(DeviceAttrib(device_id=sample_device.device_id, attrib_type="a", attrib_value="2"))
        with pytest.raises(IntegrityError):
            await db_session.flush()
        await db_session.rollback()


@pytest.mark.asyncio
class TestPortModel:
    async def test_ports_by_device(self, db_session: AsyncSession, sample_device: Device):
        for index, descr in ((1, "Gi0/1"), (2, "Gi0/2")):
            db_session.add(Port(device_id=sample_device.device_id, if_index=index, if_descr=descr))
        await db_session.flush()
        rows = (await db_session.execute(
            select(Port.if_descr).where(Port.device_id == sample_device.device_id).order_by(Port.if_index)
        )).scalars().all()
        assert rows == ["Gi0/1", "Gi0/2"]


@pytest.mark.asyncio
class TestPollerModels:
    async def test_action_defaults(self, db_session: AsyncSession, default_poller: Poller):
        action = PollerAction(action="device_add", identifier="sw1", poller_id=0, vars={"hostname": "sw1"})
        db_session.add(action)
        await db_session.flush()
        assert action.status == "pending"
        assert action.vars == {"hostname": "sw1"}

    async def test_eventlog(self, db_session: AsyncSession):
        db_session.add(EventLog(message="Device added: sw1", entity_type="device", entity_id=1, severity="notice"))
        await db_session.flush()
        row = (await db_session.execute(select(EventLog))).scalar_one()
        assert row.message == "Device added: sw1"


class TestDatabase:
    def test_sqlite_engine_skips_pool_sizing(self):
        engine = build_engine("sqlite+aiosqlite:///:memory:")
        assert engine.dialect.name == "sqlite"

    def test_constraint_naming(self):
        assert Base.metadata.naming_convention["uq"] == "uq_%(table_name)s_%(column_0_name)s"


@pytest.mark.asyncio
class TestDeviceRepository:
    async def test_late_duplicate_insert(self, db_session: AsyncSession, sample_device: Device):
        repo = DeviceRepository(db_session)
        with pytest.raises(PersistenceFailure) as excinfo:
            await repo.insert_device(hostname="router-a.example.com", ip="10.0.0.77")
        assert excinfo.value.hostname == "router-a.example.com"
        assert excinfo.value.http_status == 409
        # the savepoint rollback keeps the outer transaction usable
        assert await repo.device_exists(sample_device.device_id)
        device = await repo.insert_device(hostname="router-b.example.com", ip="10.0.0.78")
        assert device.device_id != sample_device.device_id

    async def test_hostname_lookup_matches_stored_value(self, db_session: AsyncSession, sample_device: Device):
        repo = DeviceRepository(db_session)
        assert (await repo.fetch_device_by_hostname("router-a.example.com")).device_id == sample_device.device_id
        assert await repo.fetch_device_by_hostname("ROUTER-A.example.com") is None
        assert not await repo.hostname_exists("router-a.example.com", exclude_id=sample_device.device_id)
