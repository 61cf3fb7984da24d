"""
Network probe — DNS resolution, ICMP reachability (fping) and a single
SNMP credential check against a candidate host.

None of the probe operations raise for network outcomes; failures are
reported in the returned :class:`ProbeResult`.
"""

from __future__ import annotations

import asyncio
import ipaddress
import os
import re
import signal
import socket
import time
import weakref
from dataclasses import dataclass, field, replace
from enum import IntFlag
from typing import Awaitable, Callable

from device_inventory.config import DiscoveryConfig
from device_inventory.services.snmp import (
    OID_SNMP_ENGINE_ID,
    OID_SYS_CONTACT,
    OID_SYS_DESCR,
    OID_SYS_LOCATION,
    OID_SYS_NAME,
    OID_SYS_OBJECT_ID,
    SnmpClient,
    SnmpStatus,
    SnmpTarget,
)
from device_inventory.utils.logging import get_logger

log = get_logger("probe")

HOSTNAME_LABEL_RE = re.compile(r"^(?!-)[A-Za-z0-9_-]{1,63}(?<!-)$")
FPING_STATS_RE = re.compile(r"min/avg/max\s*=\s*[\d.]+/(?P<avg>[\d.]+)/[\d.]+")

FINGERPRINT_OIDS = {
    "sys_object_id": OID_SYS_OBJECT_ID,
    "sys_descr": OID_SYS_DESCR,
    "sys_name": OID_SYS_NAME,
    "snmp_engine_id": OID_SNMP_ENGINE_ID,
    "location": OID_SYS_LOCATION,
    "sys_contact": OID_SYS_CONTACT,
}


class DnsFlag(IntFlag):
    A = 1
    AAAA = 2
    ALL = 3


# ────────────────────────────────────────────────
# Address helpers
# ────────────────────────────────────────────────

def get_ip_version(address: str | None) -> int | None:
    """Return 4 or 6 when ``address`` is a literal IP, else ``None``."""
    if not address:
        return None
    try:
        return ipaddress.ip_address(address.strip("[]")).version
    except ValueError:
        return None


def ip_compress(address: str) -> str:
    """Canonical text form; IPv6 is compressed, anything else returned unchanged."""
    try:
        return ipaddress.ip_address(address.strip("[]")).compressed
    except ValueError:
        return address


def is_valid_hostname(name: str, fqdn: bool = False) -> bool:
    """RFC 1123 style hostname check; ``fqdn`` additionally requires a dotted name."""
    if not name or len(name) > 253:
        return False
    name = name.rstrip(".")
    labels = name.split(".")
    if fqdn and len(labels) < 2:
        return False
    if labels[-1].isdigit():
        return False
    return all(HOSTNAME_LABEL_RE.match(label) for label in labels)


def dns_flags_for(transport: str, force_ipv4: bool = False) -> DnsFlag:
    if transport in ("udp6", "tcp6"):
        return DnsFlag.AAAA
    if force_ipv4:
        return DnsFlag.A
    return DnsFlag.ALL


async def resolve_hostname(name: str, flags: DnsFlag = DnsFlag.ALL, timeout: float = 3.0) -> str | None:
    """Resolve ``name`` to one address. A records win over AAAA when both are allowed."""
    if get_ip_version(name):
        return ip_compress(name)

    loop = asyncio.get_running_loop()
    families = []
    if flags & DnsFlag.A:
        families.append(socket.AF_INET)
    if flags & DnsFlag.AAAA:
        families.append(socket.AF_INET6)

    for family in families:
        try:
            infos = await asyncio.wait_for(
                loop.getaddrinfo(name, None, family=family, type=socket.SOCK_DGRAM),
                timeout=timeout,
            )
        except (socket.gaierror, UnicodeError):
            continue
        except asyncio.TimeoutError:
            log.warning("dns_timeout", hostname=name, family=family.name, timeout=timeout)
            continue
        if infos:
            return ip_compress(infos[0][4][0])
    return None


# ────────────────────────────────────────────────
# ICMP
# ────────────────────────────────────────────────

async def _run_cmd(cmd: list[str], timeout: float = 30) -> tuple[str, str, int]:
    """Run a command asynchronously and return (stdout, stderr, returncode).

    The child gets its own process group so the whole group is killed on timeout.
    """
    log.debug("exec_cmd", cmd=" ".join(cmd))
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        start_new_session=True,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        return stdout.decode(errors="replace"), stderr.decode(errors="replace"), proc.returncode or 0
    except asyncio.TimeoutError:
        try:
            os.killpg(os.getpgid(proc.pid), signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            proc.kill()
        try:
            await asyncio.wait_for(proc.communicate(), timeout=5)
        except (asyncio.TimeoutError, ProcessLookupError):
            pass
        log.warning("cmd_timeout", cmd=cmd[0], timeout=timeout)
        return "", f"Command timed out after {timeout}s", -1


async def is_pingable(
    host: str,
    fping_path: str = "fping",
    timeout_ms: int = 500,
    retries: int = 2,
    ip_version: int | None = None,
) -> float | None:
    """Ping ``host`` once with fping; return the round trip in ms or ``None``."""
    cmd = [fping_path]
    if ip_version == 6:
        cmd.append("-6")
    elif ip_version == 4:
        cmd.append("-4")
    cmd += ["-q", "-c", "1", "-t", str(timeout_ms), "-r", str(retries), host]

    # fping waits timeout_ms per attempt; leave headroom for process start
    budget = timeout_ms / 1000 * (retries + 1) + 5
    try:
        _, stderr, rc = await _run_cmd(cmd, timeout=budget)
    except FileNotFoundError:
        log.error("fping_not_found", path=fping_path)
        return None

    if rc != 0:
        return None
    m = FPING_STATS_RE.search(stderr)
    return float(m.group("avg")) if m else None


Resolver = Callable[..., Awaitable[str | None]]
Pinger = Callable[..., Awaitable[float | None]]


@dataclass
class ProbeResult:
    hostname: str
    ip: str | None = None
    reachable: bool = False
    snmpable: bool = False
    ping_ms: float | None = None
    rtt_ms: float | None = None
    status: SnmpStatus | None = None
    error: str | None = None
    fingerprint: dict[str, str | None] = field(default_factory=dict)


class NetworkProbe:
    """Probes one host at a time per hostname; different hosts run concurrently."""

    def __init__(
        self,
        config: DiscoveryConfig,
        snmp: SnmpClient,
        resolver: Resolver = resolve_hostname,
        pinger: Pinger = is_pingable,
    ):
        self.config = config
        self.snmp = snmp
        self._resolver = resolver
        self._pinger = pinger
        # entries vanish once no caller holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def host_lock(self, hostname: str) -> asyncio.Lock:
        """Lock serialising every probe of ``hostname``."""
        key = hostname.lower()
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def resolve(self, hostname: str, transport: str = "udp", force_ipv4: bool = False) -> str | None:
        return await self._resolver(
            hostname, dns_flags_for(transport, force_ipv4), timeout=self.config.dns_timeout,
        )

    async def ping(self, ip: str) -> float | None:
        return await self._pinger(
            ip,
            fping_path=self.config.fping_path,
            timeout_ms=self.config.ping_timeout_ms,
            retries=self.config.ping_retries,
            ip_version=get_ip_version(ip),
        )

    async def check_snmp(self, target: SnmpTarget, snmpable: list[str] | None = None) -> ProbeResult:
        """One GET per test OID with ``target``'s credentials; no retry beyond the target's own."""
        result = ProbeResult(hostname=target.hostname, ip=target.ip, reachable=True)
        started = time.monotonic()
        for oid in snmpable or [OID_SYS_DESCR]:
            response = await self.snmp.get(target, oid)
            result.status = response.status
            # an agent answering noSuchObject for sysDescr.0 is still alive
            alive = response.ok or (not snmpable and response.status is SnmpStatus.EMPTY)
            if not alive:
                result.error = response.error or response.status.value
                log.debug("snmp_check_failed", host=target.address, version=target.version,
                          oid=oid, status=response.status.value)
                return result
        result.snmpable = True
        result.rtt_ms = round((time.monotonic() - started) * 1000, 2)
        return result

    async def probe(
        self,
        target: SnmpTarget,
        ping_skip: bool = False,
        snmpable: list[str] | None = None,
        force_ipv4: bool = False,
    ) -> ProbeResult:
        """DNS → ICMP → SNMP for a single credential set."""
        async with self.host_lock(target.hostname):
            ip = target.ip or await self.resolve(target.hostname, target.transport, force_ipv4)
            if not ip:
                return ProbeResult(hostname=target.hostname, error="dns")

            ping_ms = None
            if not ping_skip:
                ping_ms = await self.ping(ip)
                if ping_ms is None:
                    return ProbeResult(hostname=target.hostname, ip=ip, error="icmp")

            result = await self.check_snmp(replace(target, ip=ip), snmpable)
            result.ping_ms = ping_ms
            return result

    async def fingerprint(self, target: SnmpTarget) -> dict[str, str | None]:
        """Fetch the identity fields stored on a device row."""
        facts: dict[str, str | None] = {}
        for key, oid in FINGERPRINT_OIDS.items():
            facts[key] = await self.snmp.get_value(target, oid)
        return facts
