"""Shared test fixtures for the backend test suite."""

from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from device_inventory.config import DiscoveryConfig, SnmpV3Auth
from device_inventory.database import Base, get_db
from device_inventory.models import Device, Poller
from device_inventory.services.os_detect import OsFingerprintMatcher, OsRuleCorpus
from device_inventory.services.probe import NetworkProbe, get_ip_version
from device_inventory.services.runtime import DiscoveryRuntime
from device_inventory.services.snmp import (
    OID_SYS_DESCR,
    OID_SYS_NAME,
    OID_SYS_OBJECT_ID,
    SnmpClient,
    SnmpResponse,
    SnmpStatus,
    SnmpTarget,
)


# ── In-memory SQLite for testing ────────────────
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


def _oid_key(oid: str) -> tuple[int, ...]:
    return tuple(int(p) for p in oid.strip(".").split("."))


class FakeSnmpClient(SnmpClient):
    """SNMP agents held in memory, keyed by (address, community or v3 user)."""

    def __init__(self):
        super().__init__()
        self.agents: dict[tuple[str, str | None], dict[str, str]] = {}
        self.requests: list[tuple[str, str]] = []

    def add_agent(self, address: str, credential: str, oids: dict[str, str]):
        self.agents[(address, credential)] = dict(oids)

    def _agent(self, target: SnmpTarget) -> dict[str, str] | None:
        credential = target.authname if target.version == "v3" else target.community
        return self.agents.get((target.address, credential))

    async def _get(self, target: SnmpTarget, oid: str) -> SnmpResponse:
        self.requests.append((target.address, oid))
        agent = self._agent(target)
        if agent is None:
            return SnmpResponse(SnmpStatus.TIMEOUT, oid=oid, error="No SNMP response received before timeout")
        if oid not in agent:
            return SnmpResponse(SnmpStatus.EMPTY, oid=oid)
        return SnmpResponse(SnmpStatus.OK, oid=oid, value=agent[oid])

    async def _get_next(self, target: SnmpTarget, oid: str) -> SnmpResponse:
        self.requests.append((target.address, oid))
        agent = self._agent(target)
        if agent is None:
            return SnmpResponse(SnmpStatus.TIMEOUT, oid=oid, error="No SNMP response received before timeout")
        following = sorted((k for k in agent if _oid_key(k) > _oid_key(oid)), key=_oid_key)
        if not following:
            return SnmpResponse(SnmpStatus.EMPTY, oid=oid)
        return SnmpResponse(SnmpStatus.OK, oid=following[0], value=agent[following[0]])


class FakeNetwork:
    """DNS and ICMP answers for the probe."""

    def __init__(self):
        self.hosts: dict[str, str] = {}
        self.down: set[str] = set()
        self.pinged: list[str] = []

    async def resolve(self, name, flags=None, timeout=3.0):
        if get_ip_version(name):
            return name
        return self.hosts.get(name.lower())

    async def ping(self, ip, **kwargs):
        self.pinged.append(ip)
        return None if ip in self.down else 0.42


def make_cisco_agent(sys_name: str = "switch1", **extra) -> dict[str, str]:
    oids = {
        OID_SYS_DESCR: "Cisco IOS Software, C2960X Software (C2960X-UNIVERSALK9-M), Version 15.2(7)E4",
        OID_SYS_OBJECT_ID: "1.3.6.1.4.1.9.1.1",
        OID_SYS_NAME: sys_name,
    }
    oids.update(extra)
    return oids


@pytest.fixture
def cisco_agent():
    """Builder for the OID table of a Cisco IOS switch."""
    return make_cisco_agent


@pytest_asyncio.fixture
async def test_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)

    # pysqlite transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN itself
    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncSession:
    """Provide a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def config(tmp_path: Path) -> DiscoveryConfig:
    return DiscoveryConfig(
        poller_id=0,
        snmp_version="v2c",
        communities=("public",),
        v3_credentials=(SnmpV3Auth(authlevel="noAuthNoPriv", authname="observium"),),
        rrd_dir=tmp_path / "rrd",
        discover_on_add=False,
    )


@pytest.fixture(scope="session")
def corpus() -> OsRuleCorpus:
    return OsRuleCorpus.from_yaml()


@pytest.fixture
def snmp() -> FakeSnmpClient:
    return FakeSnmpClient()


@pytest.fixture
def network() -> FakeNetwork:
    net = FakeNetwork()
    net.hosts["switch1.example.com"] = "10.0.0.10"
    return net


@pytest.fixture
def probe(config, snmp, network) -> NetworkProbe:
    return NetworkProbe(config, snmp, resolver=network.resolve, pinger=network.ping)


@pytest.fixture
def matcher(corpus, snmp) -> OsFingerprintMatcher:
    return OsFingerprintMatcher(corpus, snmp)


@pytest.fixture
def runtime(config, snmp, corpus, probe) -> DiscoveryRuntime:
    return DiscoveryRuntime(config, snmp, corpus, probe=probe)


@pytest.fixture
def manager(runtime, db_session):
    return runtime.manager(db_session)


@pytest_asyncio.fixture
async def default_poller(db_session: AsyncSession) -> Poller:
    poller = Poller(poller_id=0, poller_name="Default Poller")
    db_session.add(poller)
    await db_session.commit()
    return poller


@pytest_asyncio.fixture
async def sample_device(db_session: AsyncSession) -> Device:
    """An existing v2c device at 10.0.0.5."""
    device = Device(
        hostname="router-a.example.com",
        ip="10.0.0.5",
        snmp_version="v2c",
        snmp_port=161,
        snmp_transport="udp",
        snmp_community="public",
        sys_name="router-a",
        os="ios",
        status=1,
    )
    db_session.add(device)
    await db_session.commit()
    await db_session.refresh(device)
    return device


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, runtime: DiscoveryRuntime) -> AsyncClient:
    """Provide a test HTTP client with DB and discovery overrides."""
    from device_inventory.api.deps import get_device_manager
    from device_inventory.main import app

    async def _override_get_db():
        yield db_session

    async def _override_manager():
        return runtime.manager(db_session)

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_device_manager] = _override_manager
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
