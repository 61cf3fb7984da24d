"""
Device lifecycle — add, detect credentials, create, recheck and delete.

``add_device`` runs the whole add workflow for one host:

    validate → probe credentials → deduplicate → fingerprint → persist

and ends Added, Tested, Queued, Unreachable or Rejected. Every decision
point leaves an operator message in the returned result.
"""

from __future__ import annotations

import asyncio
import re
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from device_inventory.config import SNMP_TRANSPORTS, SNMP_VERSIONS, DiscoveryConfig, SnmpV3Auth
from device_inventory.exceptions import (
    AddCancelled,
    AlreadyQueued,
    DiscoveryError,
    DnsFailure,
    DuplicateHostname,
    InvalidHostname,
    InvalidOidSpecification,
    RrdDirectoryExists,
    SnmpUnreachable,
    Unreachable,
    UnknownPoller,
    UnsupportedSnmpVersion,
)
from device_inventory.models import Autodiscovery, Device, DeviceAttrib, EntPhysical, Port
from device_inventory.models.entity import ENTITY_TABLES
from device_inventory.repository import DeviceRepository
from device_inventory.services.cache import DeviceCache
from device_inventory.services.duplicates import DeviceCandidate, DuplicateResolver
from device_inventory.services.eventlog import log_event
from device_inventory.services.messages import MessageTrail, OperatorMessage
from device_inventory.services.os_detect import OsFingerprintMatcher, OsMatch
from device_inventory.services.probe import NetworkProbe, get_ip_version, ip_compress, is_valid_hostname
from device_inventory.services.scheduler import DiscoveryScheduler
from device_inventory.services.snmp import SnmpClient, SnmpTarget, is_numeric_oid, translate_oid
from device_inventory.utils.logging import get_logger

log = get_logger("devices")

TAG_RE = re.compile(r"<[^>]*>")
TRUE_VALUES = {"1", "true", "yes", "on", "confirm"}

# Tables cleaned by device_id on delete; the device row goes last
DEVICE_TABLES = (EntPhysical, DeviceAttrib, Autodiscovery, Port, Device)


def strip_tags(value: Any) -> str:
    return TAG_RE.sub("", str(value or "")).strip()


def is_true(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in TRUE_VALUES


def _int_or_none(value: Any, low: int, high: int) -> int | None:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if low <= number <= high else None


class AddOutcome(str, Enum):
    ADDED = "added"
    TESTED = "tested"
    QUEUED = "queued"
    UNREACHABLE = "unreachable"
    REJECTED = "rejected"


@dataclass
class AddDeviceOptions:
    ping_skip: bool = False
    test: bool = False
    ignorerrd: bool = False
    snmp_timeout: float | None = None
    snmp_retries: int | None = None
    snmp_maxrep: int | None = None
    snmpable: list[str] = field(default_factory=list)
    snmp_context: str | None = None
    force_ipv4: bool = False
    request_id: str | None = None
    cancel_event: asyncio.Event | None = None


@dataclass
class AddDeviceResult:
    outcome: AddOutcome
    hostname: str
    device_id: int | None = None
    os: str | None = None
    action_id: int | None = None
    error: str | None = None
    error_code: int | bool = False
    http_status: int = 200
    messages: list[OperatorMessage] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome in (AddOutcome.ADDED, AddOutcome.TESTED, AddOutcome.QUEUED)

    @property
    def legacy_code(self) -> int | bool:
        """device_id when added, -1 when tested, 0 for "try the next option", False on failure."""
        if self.outcome is AddOutcome.ADDED:
            return self.device_id
        if self.outcome is AddOutcome.TESTED:
            return -1
        if self.outcome is AddOutcome.QUEUED:
            return True
        return self.error_code


@dataclass
class DeleteReport:
    device_id: int
    hostname: str
    ports: list[tuple[int, str | None]] = field(default_factory=list)
    entities: dict[str, int] = field(default_factory=dict)
    tables: dict[str, int] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)
    rrd_removed: str | None = None

    def count(self, entity_type: str | None, table: str, rows: int):
        """Add removed rows to the per-table totals and, for entity rows, to the entity totals."""
        if not rows:
            return
        self.tables[table] = self.tables.get(table, 0) + rows
        if entity_type:
            self.entities[entity_type] = self.entities.get(entity_type, 0) + rows

    def as_dict(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "hostname": self.hostname,
            "ports": [{"port_id": pid, "ifDescr": descr} for pid, descr in self.ports],
            "entities": self.entities,
            "tables": self.tables,
            "failed": self.failed,
            "rrd_removed": self.rrd_removed,
        }

    def __str__(self) -> str:
        lines = []
        if self.ports:
            lines.append(" * Deleted interfaces: " + ", ".join(f"id={pid} ({descr})" for pid, descr in self.ports))
        if self.entities:
            lines.append(" * Deleted common entity entries linked to device: " + ", ".join(self.entities))
        lines.append(" * Deleted device entries from tables: " + ", ".join(t for t, n in self.tables.items() if n))
        for table, error in self.failed.items():
            lines.append(f" * Failed to clean {table}: {error}")
        if self.rrd_removed:
            lines.append(f" * Deleted device RRDs dir: {self.rrd_removed}")
        lines.append(f" * Deleted device: {self.hostname}")
        return "\n".join(lines)


def generate_device_hostnames(
    device: Device | dict,
    suffix: str | list[str] | None = None,
    ignore_sysnames: tuple[str, ...] = (),
) -> list[str]:
    """Names a device may be known by: hostname, short name, suffixed FQDNs, sysName."""
    data = device if isinstance(device, dict) else {"hostname": device.hostname, "sys_name": device.sys_name}
    hostname = data.get("hostname")
    if not hostname:
        return []
    suffixes = [suffix] if isinstance(suffix, str) else list(suffix or [])

    hostnames = [hostname]
    is_ip = get_ip_version(hostname) is not None
    if not is_ip and "." in hostname:
        short = hostname.split(".", 1)[0]
        if short != hostname:
            hostnames.append(short)
    if not is_ip:
        for append in suffixes:
            fqdn = f"{hostname}.{append.strip(' .')}"
            if is_valid_hostname(fqdn, fqdn=True):
                hostnames.append(fqdn)

    sys_name = (data.get("sys_name") or "").lower()
    if sys_name and sys_name not in hostnames and sys_name not in ignore_sysnames and is_valid_hostname(sys_name):
        hostnames.append(sys_name)
        if "." not in sys_name:
            for append in suffixes:
                fqdn = f"{sys_name}.{append.strip(' .')}"
                if fqdn not in hostnames and is_valid_hostname(fqdn, fqdn=True):
                    hostnames.append(fqdn)
    return hostnames


def device_snapshot(device: Device) -> dict[str, Any]:
    """Detached column values of a device row, as stored in the cache."""
    return {
        column.key: getattr(device, column.key)
        for column in Device.__mapper__.column_attrs
    }


class DeviceManager:
    """Lifecycle operations bound to one database session."""

    def __init__(
        self,
        session: AsyncSession,
        config: DiscoveryConfig,
        snmp: SnmpClient,
        probe: NetworkProbe,
        matcher: OsFingerprintMatcher,
        cache: DeviceCache | None = None,
        scheduler: DiscoveryScheduler | None = None,
    ):
        self.session = session
        self.config = config
        self.snmp = snmp
        self.probe = probe
        self.matcher = matcher
        self.cache = cache if cache is not None else DeviceCache()
        self.scheduler = scheduler
        self.repo = DeviceRepository(session)
        self.resolver = DuplicateResolver(self.repo, snmp, probe, matcher, config, self.cache)

    # ── Helpers ─────────────────────────────────

    def rrd_path(self, hostname: str, config: DiscoveryConfig | None = None) -> Path:
        cfg = config or self.config
        return cfg.rrd_dir / hostname.replace("/", "_")

    async def _notify(self, coro_name: str, *args):
        """Best-effort Redis side effect; the database stays the source of truth."""
        if self.scheduler is None:
            return
        try:
            await getattr(self.scheduler, coro_name)(*args)
        except (RedisError, OSError) as exc:
            log.warning("scheduler_unavailable", action=coro_name, error=str(exc))

    async def _cancelled(self, options: AddDeviceOptions) -> bool:
        if options.cancel_event is not None and options.cancel_event.is_set():
            return True
        if options.request_id and self.scheduler is not None:
            try:
                return await self.scheduler.is_cancelled(options.request_id)
            except (RedisError, OSError) as exc:
                log.warning("cancel_check_failed", request_id=options.request_id, error=str(exc))
        return False

    async def _poller_is_local(self, config: DiscoveryConfig) -> bool:
        if config.poller_name:
            poller = await self.repo.fetch_poller_by_name(config.poller_name)
            if poller is not None:
                return poller.poller_id == config.poller_id
        return config.poller_id == 0

    def _targets(self, hostname: str, ip: str, version: str, port: int, transport: str,
                 options: AddDeviceOptions, config: DiscoveryConfig) -> list[SnmpTarget]:
        common = dict(
            hostname=hostname,
            ip=ip,
            version=version,
            port=port,
            transport=transport,
            context=options.snmp_context or None,
            timeout=options.snmp_timeout or config.snmp_timeout,
            retries=options.snmp_retries if options.snmp_retries is not None else config.snmp_retries,
            maxrep=options.snmp_maxrep,
        )
        if version == "v3":
            return [
                SnmpTarget(
                    authlevel=cred.authlevel, authname=cred.authname, authpass=cred.authpass or None,
                    authalgo=cred.authalgo, cryptopass=cred.cryptopass or None, cryptoalgo=cred.cryptoalgo,
                    **common,
                )
                for cred in config.v3_credentials
            ]
        return [SnmpTarget(community=community, **common) for community in config.communities]

    @staticmethod
    def _trying(target: SnmpTarget, index: int, hide_auth: bool) -> str:
        if target.version == "v3":
            if hide_auth:
                return f"Trying v3 parameters *** / ### [{index}] ..."
            return f"Trying v3 parameters {target.authname}/{target.authlevel} ..."
        if hide_auth:
            return f"Trying {target.version} community *** [{index}] ..."
        return f"Trying {target.version} community {target.community} ..."

    @staticmethod
    def _no_reply(target: SnmpTarget, hide_auth: bool) -> str:
        if target.version == "v3":
            if hide_auth:
                return "No reply on credentials *** / ### using v3."
            return f"No reply on credentials {target.authname}/{target.authlevel} using v3."
        if hide_auth:
            return f"No reply on given community *** using {target.version}."
        return f"No reply on community {target.community} using {target.version}."

    # ── Add ─────────────────────────────────────

    async def add_device_vars(self, vars: dict[str, Any]) -> AddDeviceResult:
        """Add a device from request variables (form, API body or queued action)."""
        hostname = strip_tags(vars.get("hostname")).lower()
        trail = MessageTrail(hostname)
        try:
            return await self._add_device_vars(hostname, vars, trail)
        except DiscoveryError as exc:
            return self._failed(hostname, exc, trail)

    async def _add_device_vars(self, hostname: str, vars: dict[str, Any], trail: MessageTrail) -> AddDeviceResult:
        cfg = self.config
        poller_id = _int_or_none(vars.get("poller_id"), 0, 2**31)
        if poller_id is not None and poller_id != cfg.poller_id:
            return await self._queue_remote(hostname, poller_id, vars, trail)

        snmpable: list[str] = []
        raw_oids = str(vars.get("snmpable") or "").split()
        if raw_oids:
            invalid = []
            for oid in raw_oids:
                if is_numeric_oid(oid):
                    snmpable.append(oid.lstrip("."))
                elif "::" in oid and (numeric := translate_oid(oid)):
                    snmpable.append(numeric)
                else:
                    trail.warning(f"Invalid or unknown OID: {oid}")
                    invalid.append(oid)
            if invalid:
                raise InvalidOidSpecification(
                    "Incorrect or not numeric OIDs passed for check device availability.", hostname,
                )

        port = _int_or_none(vars.get("snmp_port"), 1, 65535) or 161
        # no version: add_device walks the configured order
        version = vars.get("snmp_version")
        if version not in SNMP_VERSIONS:
            version = None

        overrides: dict[str, Any] = {}
        if version in (None, "v3"):
            if strip_tags(vars.get("snmp_authlevel")):
                requested = SnmpV3Auth(
                    authlevel=strip_tags(vars.get("snmp_authlevel")),
                    authname=str(vars.get("snmp_authname") or ""),
                    authpass=str(vars.get("snmp_authpass") or ""),
                    authalgo=str(vars.get("snmp_authalgo") or "MD5"),
                    cryptopass=str(vars.get("snmp_cryptopass") or ""),
                    cryptoalgo=str(vars.get("snmp_cryptoalgo") or "AES"),
                )
                overrides["v3_credentials"] = (requested,) + tuple(
                    c for c in cfg.v3_credentials if c != requested
                )
        if version != "v3":
            community = strip_tags(vars.get("snmp_community"))
            if community:
                overrides["communities"] = (community,) + tuple(c for c in cfg.communities if c != community)
        if version:
            trail.info(f"Adding SNMP{version} host {hostname} port {port}")
        else:
            trail.info(f"Adding host {hostname} port {port}")

        if is_true(vars.get("ignorerrd")):
            overrides["rrd_override"] = True

        timeout = vars.get("snmp_timeout")
        try:
            timeout = float(timeout) if timeout not in (None, "") and float(timeout) > 0 else None
        except ValueError:
            timeout = None

        options = AddDeviceOptions(
            ping_skip=is_true(vars.get("ping_skip")),
            test=is_true(vars.get("test")),
            snmp_timeout=timeout,
            snmp_retries=_int_or_none(vars.get("snmp_retries"), 0, 10),
            snmp_maxrep=_int_or_none(vars.get("snmp_maxrep"), 0, 500),
            snmpable=snmpable,
            snmp_context=strip_tags(vars.get("snmp_context")) or None,
            request_id=vars.get("request_id"),
        )
        transport = strip_tags(vars.get("snmp_transport")).lower() or "udp"
        if transport not in SNMP_TRANSPORTS:
            transport = "udp"

        config = cfg.with_overrides(**overrides) if overrides else cfg
        return await self.add_device(hostname, version, port, transport, options, config=config, trail=trail)

    async def _queue_remote(self, hostname: str, poller_id: int, vars: dict[str, Any],
                            trail: MessageTrail) -> AddDeviceResult:
        trail.info(f"Requested add device with hostname '{hostname}' to remote Poller [{poller_id}].")
        if not (is_valid_hostname(hostname) or get_ip_version(hostname)):
            raise InvalidHostname(f"Hostname '{hostname}' is not valid.", hostname)
        if await self.repo.fetch_poller(poller_id) is None:
            raise UnknownPoller(
                f"Device with hostname '{hostname}' not added. Unknown target Poller requested.", hostname,
            )
        queued_on = await self.repo.queued_action_poller("device_add", hostname)
        if queued_on is not None:
            raise AlreadyQueued(
                f"Already queued addition device with hostname '{hostname}' on remote Poller [{queued_on}].",
                hostname,
            )
        if await self.repo.hostname_exists(hostname):
            raise DuplicateHostname(f"Already got device with hostname '{hostname}'.", hostname)

        payload = {k: v for k, v in vars.items() if k not in ("request_id",)}
        payload["hostname"] = hostname
        action = await self.repo.insert_action("device_add", hostname, poller_id, payload)
        message = (f"Device with hostname '{hostname}' added to queue [{action.action_id}] "
                   f"for addition on remote Poller [{poller_id}].")
        trail.info(message)
        await log_event(self.session, message, severity="info")
        return AddDeviceResult(AddOutcome.QUEUED, hostname, action_id=action.action_id, messages=trail.messages)

    def _failed(self, hostname: str, exc: DiscoveryError, trail: MessageTrail) -> AddDeviceResult:
        if not exc.reported:
            trail.error(exc.message)
        outcome = AddOutcome.UNREACHABLE if exc.unreachable else AddOutcome.REJECTED
        log.info("device_add_failed", hostname=hostname, outcome=outcome.value, error=type(exc).__name__)
        return AddDeviceResult(
            outcome, hostname, error=type(exc).__name__, error_code=exc.legacy_code,
            http_status=exc.http_status, messages=trail.messages,
        )

    async def add_device(
        self,
        hostname: str,
        version: str | None = None,
        port: int = 161,
        transport: str = "udp",
        options: AddDeviceOptions | None = None,
        config: DiscoveryConfig | None = None,
        trail: MessageTrail | None = None,
    ) -> AddDeviceResult:
        options = options or AddDeviceOptions()
        cfg = config or self.config
        hostname = (hostname or "").strip().lower()
        trail = trail or MessageTrail(hostname)
        trail.hostname = hostname
        try:
            return await self._add_device(hostname, version, port, transport.lower(), options, cfg, trail)
        except DiscoveryError as exc:
            return self._failed(hostname, exc, trail)
        finally:
            if options.request_id:
                await self._notify("clear_cancel", options.request_id)

    async def _add_device(self, hostname: str, version: str | None, port: int, transport: str,
                          options: AddDeviceOptions, cfg: DiscoveryConfig, trail: MessageTrail) -> AddDeviceResult:
        if not hostname:
            raise InvalidHostname("Hostname is empty.")
        if get_ip_version(hostname):
            if cfg.require_hostname:
                raise InvalidHostname(
                    "Hostname should be a valid resolvable FQDN name. Or disable the require_hostname option.",
                    hostname,
                )
            hostname = ip_compress(hostname)
            trail.hostname = hostname
            ip = hostname
        elif not is_valid_hostname(hostname):
            raise InvalidHostname(f"Hostname '{hostname}' is not valid.", hostname)
        else:
            ip = None

        async with self.probe.host_lock(hostname):
            if await self.repo.hostname_exists(hostname):
                raise DuplicateHostname(f"Already got device {hostname}.", hostname)

            if ip is None:
                ip = await self.probe.resolve(hostname, transport, options.force_ipv4)
            if not ip:
                raise DnsFailure(f"Could not resolve {hostname}.", hostname)

            if not options.ping_skip and await self.probe.ping(ip) is None:
                raise Unreachable(f"Could not ping {hostname}.", hostname)

            if not (cfg.rrd_override or options.ignorerrd) and self.rrd_path(hostname, cfg).exists():
                raise RrdDirectoryExists(f"Directory {cfg.rrd_dir}/{hostname} already exists.", hostname)

            ipv4 = get_ip_version(ip) == 4
            if transport.startswith("tcp"):
                transport = "tcp" if ipv4 else "tcp6"
            else:
                transport = "udp" if ipv4 else "udp6"
            if not 1 <= int(port or 0) <= 65535:
                port = 161

            versions = [version] if version else cfg.version_order()
            unsupported = 0
            for attempt in versions:
                if await self._cancelled(options):
                    raise AddCancelled(f"Adding {hostname} was cancelled.", hostname)
                if attempt not in SNMP_VERSIONS:
                    trail.error(f'Unsupported SNMP Version "{attempt}".')
                    unsupported += 1
                    continue
                result = await self._add_with_version(hostname, ip, attempt, int(port), transport, options, cfg, trail)
                if result is not None:
                    return result
                trail.error(f"Could not reach {hostname} with given SNMP parameters using {attempt}.")

            if unsupported == len(versions):
                raise UnsupportedSnmpVersion(f"No supported SNMP version requested for {hostname}.", hostname)
            raise SnmpUnreachable(f"Could not reach {hostname} with any given SNMP parameters.", hostname)

    async def _add_with_version(self, hostname: str, ip: str, version: str, port: int, transport: str,
                                options: AddDeviceOptions, cfg: DiscoveryConfig,
                                trail: MessageTrail) -> AddDeviceResult | None:
        """Try every configured credential of one version; ``None`` when none answered."""
        targets = self._targets(hostname, ip, version, port, transport, options, cfg)
        if not targets:
            trail.warning(f"No SNMP {version} credentials configured.")
            return None

        for index, target in enumerate(targets):
            if index and await self._cancelled(options):
                raise AddCancelled(f"Adding {hostname} was cancelled.", hostname)
            trail.info(self._trying(target, index, cfg.hide_auth))

            check = await self.probe.check_snmp(target, options.snmpable or None)
            if not check.snmpable:
                trail.warning(self._no_reply(target, cfg.hide_auth))
                continue

            # an answering agent ends the credential search either way
            await self.resolver.ensure_unique(DeviceCandidate(target), trail)
            os = await self.matcher.detect(target)

            if options.test:
                trail.info(
                    f'Device "{hostname}" has successfully been tested and available by '
                    f"{transport.upper()} transport with SNMP {version} credentials."
                )
                return AddDeviceResult(AddOutcome.TESTED, hostname, os=os, messages=trail.messages)

            device = await self.create_device(hostname, target, snmpable=options.snmpable, os=os,
                                              config=cfg, trail=trail)
            if options.ping_skip:
                await self.set_dev_attrib(device.device_id, "ping_skip", "1")
                if await self.probe.ping(ip) is not None:
                    trail.info("You have checked the option to skip ICMP ping, but the device responds "
                               "to an ICMP ping. Perhaps you need to check the device settings.")
            return AddDeviceResult(AddOutcome.ADDED, hostname, device_id=device.device_id, os=device.os,
                                   messages=trail.messages)
        return None

    # ── Create ──────────────────────────────────

    async def create_device(
        self,
        hostname: str,
        target: SnmpTarget,
        snmpable: list[str] | None = None,
        os: str | None = None,
        config: DiscoveryConfig | None = None,
        trail: MessageTrail | None = None,
    ) -> Device:
        """Insert a device row. Only the local poller reads identity fields from the agent."""
        cfg = config or self.config
        hostname = hostname.strip().lower()
        fields: dict[str, Any] = {
            "hostname": hostname,
            "sys_name": hostname,
            "status": 1,
            "ip": target.ip,
            "poller_id": cfg.poller_id,
            "snmpable": " ".join(snmpable) if snmpable else None,
            **target.device_fields(),
        }

        local = await self._poller_is_local(cfg)
        if local:
            facts = await self.probe.fingerprint(target)
            fields["os"] = os or await self.matcher.detect(target)
            fields["sys_object_id"] = facts.get("sys_object_id")
            fields["sys_descr"] = facts.get("sys_descr")
            fields["snmp_engine_id"] = facts.get("snmp_engine_id")
            fields["sys_name"] = facts.get("sys_name") or None
            fields["location"] = facts.get("location")
            fields["sys_contact"] = facts.get("sys_contact")

        device = await self.repo.insert_device(**fields)
        device_id = device.device_id

        message = f"Device added: {hostname}"
        if cfg.poller_id > 0:
            poller = await self.repo.fetch_poller(cfg.poller_id)
            if poller is not None:
                message += f" (Poller: {poller.poller_name} [{cfg.poller_id}])"
        await log_event(self.session, message, device_id, "device", device_id, severity="notice")
        if device.sys_object_id:
            await log_event(self.session, f"sysObjectID -> {device.sys_object_id}", device_id, "device", device_id)
        if device.snmp_engine_id:
            await log_event(self.session, f"snmpEngineID -> {device.snmp_engine_id}", device_id, "device", device_id)
        if trail is not None:
            trail.info(message)

        self.cache.put(device_id, device_snapshot(device))
        await self._notify("request_cache_clear", "wui")
        await self._notify("publish_event", {"event": "device_added", "device_id": device_id, "hostname": hostname})
        if local and cfg.discover_on_add:
            if trail is not None:
                trail.info(f"Now discovering {hostname} (id = {device_id})")
            await self._notify("enqueue_discovery", device_id)
        log.info("device_added", device_id=device_id, hostname=hostname, os=device.os, local=local)
        return device

    # ── Detect credentials ──────────────────────

    async def detect_device_snmpauth(
        self,
        hostname: str,
        port: int = 161,
        transport: str = "udp",
        detect_ip_version: bool = False,
        trail: MessageTrail | None = None,
    ) -> SnmpTarget | None:
        """First configured credential set the agent answers to, without adding anything."""
        hostname = hostname.strip().lower()
        trail = trail or MessageTrail(hostname)
        cfg = self.config

        ip = ip_compress(hostname) if get_ip_version(hostname) else await self.probe.resolve(hostname, transport)
        if detect_ip_version and ip:
            ipv4 = get_ip_version(ip) == 4
            if transport.startswith("tcp"):
                transport = "tcp" if ipv4 else "tcp6"
            else:
                transport = "udp" if ipv4 else "udp6"
        if not ip:
            trail.error(f"Could not resolve {hostname}.")
            return None
        if not 1 <= int(port or 0) <= 65535:
            port = 161

        async with self.probe.host_lock(hostname):
            for version in cfg.version_order():
                for index, target in enumerate(
                    self._targets(hostname, ip, version, port, transport, AddDeviceOptions(), cfg)
                ):
                    trail.info(self._trying(target, index, cfg.hide_auth))
                    if (await self.probe.check_snmp(target)).snmpable:
                        log.info("snmp_auth_detected", hostname=hostname, version=version)
                        return target
                    trail.warning(self._no_reply(target, cfg.hide_auth))
        return None

    # ── Recheck ─────────────────────────────────

    async def recheck_device_os(self, device_id: int) -> OsMatch | None:
        device = await self.repo.fetch_device(device_id)
        if device is None:
            return None
        target = SnmpTarget.from_device(device, self.config.snmp_timeout, self.config.snmp_retries)
        match = await self.matcher.identify(await self.matcher.facts(target), prior_os=device.os)
        if match.os != device.os:
            old = device.os
            await self.repo.update_device(device, os=match.os)
            await log_event(self.session, f"OS changed: {old} -> {match.os}", device_id, "device", device_id,
                            severity="warning")
            self.cache.invalidate(device_id)
        return match

    # ── Lookups & attributes ────────────────────

    async def device_by_id(self, device_id: int, refresh: bool = False) -> dict[str, Any] | None:
        if not refresh:
            cached = self.cache.get(device_id)
            if cached is not None and "device_id" in cached:
                return cached
        device = await self.repo.fetch_device(device_id)
        if device is None:
            self.cache.invalidate(device_id)
            return None
        snapshot = device_snapshot(device)
        self.cache.put(device_id, snapshot)
        return snapshot

    async def get_device_id_by_hostname(self, hostname: str) -> int | None:
        cached = self.cache.get_by_hostname(hostname)
        if cached is not None and cached.get("device_id"):
            return cached["device_id"]
        device = await self.repo.fetch_device_by_hostname(hostname.strip().lower())
        return device.device_id if device else None

    async def get_dev_attrib(self, device_id: int, attrib_type: str) -> str | None:
        return await self.repo.get_attrib(device_id, attrib_type)

    async def get_dev_attribs(self, device_id: int) -> dict[str, str]:
        return await self.repo.get_attribs(device_id)

    async def set_dev_attrib(self, device_id: int, attrib_type: str, value: str):
        await self.repo.set_attrib(device_id, attrib_type, value)

    async def del_dev_attrib(self, device_id: int, attrib_type: str) -> bool:
        return await self.repo.del_attrib(device_id, attrib_type)

    # ── Delete ──────────────────────────────────

    async def _delete_in_savepoint(self, report: DeleteReport, label: str, model, *where) -> int:
        try:
            async with self.session.begin_nested():
                return await self.repo.delete_rows(model, *where)
        except SQLAlchemyError as exc:
            report.failed[label] = str(exc)
            log.warning("delete_table_failed", device_id=report.device_id, table=label, error=str(exc))
            return 0

    async def delete_port(self, port: Port, report: DeleteReport, delete_rrd: bool = False) -> int:
        """Remove one port with its entity rows and, optionally, its RRD files."""
        removed = 0
        for table in ENTITY_TABLES:
            label = table.__tablename__
            count = await self._delete_in_savepoint(
                report, label, table, table.entity_type == "port", table.entity_id == port.port_id,
            )
            report.count("port", label, count)
            removed += count
        count = await self._delete_in_savepoint(report, "ports", Port, Port.port_id == port.port_id)
        report.count(None, "ports", count)
        removed += count
        if delete_rrd:
            for rrd in self.rrd_path(report.hostname).glob(f"port-{port.if_index}*.rrd"):
                try:
                    rrd.unlink()
                except OSError as exc:
                    report.failed[f"rrd:{rrd.name}"] = str(exc)
        return removed

    async def delete_device(self, device_id: int, delete_rrd: bool = False) -> DeleteReport | None:
        """Remove a device and everything hanging off it. Table failures are reported, not raised."""
        device = await self.repo.fetch_device(device_id)
        if device is None:
            return None
        report = DeleteReport(device_id=device_id, hostname=device.hostname)

        for port in await self.repo.fetch_ports(device_id):
            report.ports.append((port.port_id, port.if_descr))
            await self.delete_port(port, report, delete_rrd)

        for table in ENTITY_TABLES:
            label = table.__tablename__
            count = await self._delete_in_savepoint(
                report, label, table, table.entity_type == "device", table.entity_id == device_id,
            )
            report.count("device", label, count)

        for table in ENTITY_TABLES + DEVICE_TABLES:
            label = table.__tablename__
            count = await self._delete_in_savepoint(report, label, table, table.device_id == device_id)
            report.count(None, label, count)

        count = await self._delete_in_savepoint(
            report, "autodiscovery", Autodiscovery, Autodiscovery.remote_device_id == device_id,
        )
        report.count(None, "autodiscovery", count)

        if delete_rrd:
            rrd_dir = self.rrd_path(device.hostname)
            if (rrd_dir / "status.rrd").is_file():
                try:
                    shutil.rmtree(rrd_dir)
                    report.rrd_removed = str(rrd_dir)
                except OSError as exc:
                    report.failed["rrd"] = str(exc)

        await log_event(self.session, f"Deleted device: {report.hostname}", None, "device", device_id,
                        severity="notice")
        self.cache.invalidate(device_id)
        if report.tables:
            await self._notify("request_cache_clear", "wui")
        await self._notify("publish_event", {"event": "device_deleted", "device_id": device_id})
        log.info("device_deleted", device_id=device_id, hostname=report.hostname,
                 ports=len(report.ports), tables=report.tables, failed=list(report.failed))
        return report
