"""
Identity resolver — decides whether a candidate device is already known.

Tiers, first decisive hit wins:

1. hostname
2. resolved IP + SNMP port + context with matching credentials
3. identity signals read from the agent: snmpEngineID, sysName,
   entPhysicalSerialNum and, failing those, a comparison of other system OIDs
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

from device_inventory.config import DiscoveryConfig
from device_inventory.exceptions import (
    DuplicateDevice,
    DuplicateHostname,
    DuplicateNetworkIdentity,
    DuplicateSystemIdentity,
)
from device_inventory.models import Device
from device_inventory.repository import DeviceRepository
from device_inventory.services.cache import DeviceCache
from device_inventory.services.messages import MessageTrail
from device_inventory.services.os_detect import GENERIC_OS, OsFingerprintMatcher
from device_inventory.services.probe import NetworkProbe, get_ip_version, ip_compress, is_valid_hostname
from device_inventory.services.snmp import (
    OID_ENT_PHYSICAL_SERIAL,
    OID_SNMP_ENGINE_ID,
    OID_SYS_NAME,
    SnmpClient,
    SnmpTarget,
    compare_device_oids,
)
from device_inventory.utils.logging import get_logger

log = get_logger("duplicates")


class DuplicateKind(str, Enum):
    NONE = "none"
    HOSTNAME = "hostname"
    IP_SNMP_V1 = "ip_snmp_v1"
    IP_SNMP_V2C = "ip_snmp_v2c"
    IP_SNMP_V3 = "ip_snmp_v3"
    SYSTEM = "system"


@dataclass
class DuplicateVerdict:
    kind: DuplicateKind = DuplicateKind.NONE
    devices: list[Device] = field(default_factory=list)
    # same IP/port/context but different credentials; never decisive
    possible: list[Device] = field(default_factory=list)
    ip: str | None = None
    reason: str | None = None

    @property
    def decisive(self) -> bool:
        return self.kind is not DuplicateKind.NONE

    @property
    def device_ids(self) -> list[int]:
        return [d.device_id for d in self.devices]

    def __bool__(self) -> bool:
        return self.decisive


@dataclass(frozen=True)
class DeviceCandidate:
    target: SnmpTarget
    device_id: int | None = None
    os: str | None = None

    @property
    def hostname(self) -> str:
        return self.target.hostname


def _same(a: str | None, b: str | None) -> bool:
    return (a or "") == (b or "")


def v3_credentials_match(candidate: SnmpTarget, entry: Device) -> bool:
    """Tiered SNMPv3 equality: the auth level decides which fields must agree."""
    level = (candidate.authlevel or "noAuthNoPriv").lower()
    if level != (entry.snmp_authlevel or "noAuthNoPriv").lower():
        return False
    if not _same(candidate.authname, entry.snmp_authname):
        return False
    if level == "noauthnopriv":
        return True
    if not (_same(candidate.authpass, entry.snmp_authpass) and _same(candidate.authalgo, entry.snmp_authalgo)):
        return False
    if level == "authnopriv":
        return True
    return _same(candidate.cryptopass, entry.snmp_cryptopass) and _same(candidate.cryptoalgo, entry.snmp_cryptoalgo)


class DuplicateResolver:
    def __init__(
        self,
        repo: DeviceRepository,
        snmp: SnmpClient,
        probe: NetworkProbe,
        matcher: OsFingerprintMatcher,
        config: DiscoveryConfig,
        cache: DeviceCache | None = None,
    ):
        self.repo = repo
        self.snmp = snmp
        self.probe = probe
        self.matcher = matcher
        self.config = config
        self.cache = cache

    def _remember(self, devices: list[Device]):
        if self.cache is None:
            return
        for device in devices:
            self.cache.put(device.device_id, {"hostname": device.hostname, "ip": device.ip, "os": device.os,
                                              "poller_id": device.poller_id})

    async def candidate_ip(self, candidate: DeviceCandidate) -> str | None:
        if get_ip_version(candidate.hostname):
            return ip_compress(candidate.hostname)
        if candidate.target.ip:
            return ip_compress(candidate.target.ip)
        return await self.probe.resolve(candidate.hostname, candidate.target.transport)

    # ── Tiers 1–2 ───────────────────────────────

    async def find_duplicate(self, candidate: DeviceCandidate) -> DuplicateVerdict:
        """Hostname and network/credential collisions; no SNMP traffic."""
        existing = await self.repo.fetch_device_by_hostname(candidate.hostname, candidate.device_id)
        if existing is not None:
            self._remember([existing])
            return DuplicateVerdict(DuplicateKind.HOSTNAME, [existing], reason="hostname")

        ip = await self.candidate_ip(candidate)
        if not ip:
            return DuplicateVerdict()

        target = candidate.target
        exact: list[Device] = []
        possible: list[Device] = []
        for entry in await self.repo.fetch_devices_by_network(ip, target.port, target.context, candidate.device_id):
            if target.version == "v3":
                same = entry.snmp_version == "v3" and v3_credentials_match(target, entry)
            else:
                same = entry.snmp_version in ("v1", "v2c") and _same(entry.snmp_community, target.community)
            (exact if same else possible).append(entry)

        if exact:
            self._remember(exact)
            kind = DuplicateKind(f"ip_snmp_{exact[0].snmp_version}")
            return DuplicateVerdict(kind, exact, possible, ip, reason="network")
        if possible:
            log.info("possible_duplicates", hostname=candidate.hostname, ip=ip,
                     device_ids=[d.device_id for d in possible])
        return DuplicateVerdict(possible=possible, ip=ip)

    # ── Tier 3 ──────────────────────────────────

    async def _compare_serial(self, target: SnmpTarget, existing: Device) -> tuple[bool | None, str | None]:
        """(match, serial read); match is ``None`` when the existing device has no serial."""
        entity = await self.repo.fetch_serial_entity(existing.device_id)
        if entity is None:
            return None, None
        serial = await self.snmp.get_value(target, f"{OID_ENT_PHYSICAL_SERIAL}.{entity.ent_physical_index}")
        same = (serial or "").strip().lower() == entity.ent_physical_serial_num.strip().lower()
        return same, serial

    async def _same_system(self, target: SnmpTarget, existing: Device) -> bool:
        return await compare_device_oids(
            self.snmp,
            target,
            SnmpTarget.from_device(existing, self.config.snmp_timeout, self.config.snmp_retries),
            self.config.duplicate_oid_match_threshold,
        )

    async def find_system_duplicate(self, candidate: DeviceCandidate, trail: MessageTrail | None = None) -> DuplicateVerdict:
        target = candidate.target
        if not target.ip:
            target = replace(target, ip=await self.candidate_ip(candidate))

        engine_id = await self.snmp.get_value(target, OID_SNMP_ENGINE_ID)
        sys_name_raw = (await self.snmp.get_value(target, OID_SYS_NAME) or "").strip()
        sys_name = sys_name_raw.lower()
        if not sys_name:
            sys_name_type = "empty"
        elif is_valid_hostname(sys_name_raw, fqdn=True):
            sys_name_type = "fqdn"
        else:
            sys_name_type = "notfqdn"

        def found(existing: Device, reason: str) -> DuplicateVerdict:
            if trail is not None:
                trail.error(f"Already got device with SNMP-read {reason} ({existing.hostname}).")
            self._remember([existing])
            return DuplicateVerdict(DuplicateKind.SYSTEM, [existing], ip=target.ip, reason=reason)

        if engine_id:
            for existing in await self.repo.fetch_devices_by_engine_id(engine_id):
                if existing.device_id == candidate.device_id:
                    continue
                if (existing.sys_name or "").lower() != sys_name:
                    continue
                serial_ok, serial = await self._compare_serial(target, existing)
                if serial_ok:
                    return found(existing, f"sysName ({sys_name}), 'snmpEngineID' = {engine_id} and "
                                           f"'entPhysicalSerialNum' = {serial}")
                if serial_ok is False:
                    continue
                if sys_name_type != "fqdn" and not await self._same_system(target, existing):
                    continue
                return found(existing, f"sysName ({sys_name}) and 'snmpEngineID' = {engine_id}")
            return DuplicateVerdict(ip=target.ip)

        if sys_name_type == "empty" and (not candidate.os or candidate.os == GENERIC_OS):
            # agents with nothing but vendor OIDs: narrow by detected OS
            os = await self.matcher.detect(target)
            tests = await self.repo.fetch_devices_by_sysname(None, os)
        else:
            tests = await self.repo.fetch_devices_by_sysname(sys_name)

        for existing in tests:
            if existing.device_id == candidate.device_id:
                continue
            serial_ok, serial = await self._compare_serial(target, existing)
            if serial_ok:
                return found(existing, f"sysName ({sys_name}) and 'entPhysicalSerialNum' = {serial}")
            if serial_ok is None and await self._same_system(target, existing):
                return found(existing, f"sysName ({sys_name}) and other system Oids")
        return DuplicateVerdict(ip=target.ip)

    # ── Public entry points ─────────────────────

    async def check(self, candidate: DeviceCandidate, trail: MessageTrail | None = None) -> DuplicateVerdict:
        """All three tiers. Emits operator messages for decisive verdicts."""
        verdict = await self.find_duplicate(candidate)
        if verdict.kind is DuplicateKind.HOSTNAME:
            if trail is not None:
                trail.error(f"Already got device with hostname ({candidate.hostname}).")
            return verdict
        if verdict.decisive:
            if trail is not None:
                if verdict.kind is DuplicateKind.IP_SNMP_V3:
                    trail.error(f"Already got device with resolved IP ({verdict.ip}) and SNMP v3 auth.")
                else:
                    trail.error(f"Already got device with resolved IP ({verdict.ip}) and SNMP v1/v2c community.")
            return verdict

        system = await self.find_system_duplicate(candidate, trail)
        if system.decisive:
            system.possible = verdict.possible
            return system
        return verdict

    async def is_duplicate(self, candidate: DeviceCandidate, trail: MessageTrail | None = None) -> bool:
        return (await self.check(candidate, trail)).decisive

    async def ensure_unique(self, candidate: DeviceCandidate, trail: MessageTrail | None = None) -> DuplicateVerdict:
        """Raise the matching ``Duplicate*`` error for a decisive verdict."""
        verdict = await self.check(candidate, trail)
        if not verdict.decisive:
            return verdict
        error_cls: type[DuplicateDevice]
        if verdict.kind is DuplicateKind.HOSTNAME:
            error_cls = DuplicateHostname
        elif verdict.kind is DuplicateKind.SYSTEM:
            error_cls = DuplicateSystemIdentity
        else:
            error_cls = DuplicateNetworkIdentity
        error = error_cls(
            f"{candidate.hostname} duplicates device(s) {verdict.device_ids} ({verdict.kind.value})",
            candidate.hostname,
            verdict.device_ids,
        )
        error.reported = trail is not None
        raise error
