"""
SNMP capability — GET / GETNEXT / walk against a device target.

Every call returns an :class:`SnmpResponse` carrying a coarse status
(``ok``, ``timeout``, ``auth``, ``empty``, ``error``) and the client keeps
the status of its last request in :attr:`SnmpClient.last_status`.
Network failures never raise; they are reported through the status.

PDU encoding is delegated to pysnmp (``pysnmp.hlapi.v3arch.asyncio``).
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pysnmp.hlapi.v3arch.asyncio import (
    CommunityData,
    ContextData,
    ObjectIdentity,
    ObjectType,
    SnmpEngine,
    Udp6TransportTarget,
    UdpTransportTarget,
    UsmUserData,
    get_cmd,
    next_cmd,
    usmAesCfb128Protocol,
    usmAesCfb192Protocol,
    usmAesCfb256Protocol,
    usmDESPrivProtocol,
    usmHMAC128SHA224AuthProtocol,
    usmHMAC192SHA256AuthProtocol,
    usmHMAC256SHA384AuthProtocol,
    usmHMAC384SHA512AuthProtocol,
    usmHMACMD5AuthProtocol,
    usmHMACSHAAuthProtocol,
)
from pysnmp.proto.rfc1905 import EndOfMibView, NoSuchInstance, NoSuchObject
from pysnmp.error import PySnmpError
from pysnmp.smi import builder, view

from device_inventory.utils.logging import get_logger

log = get_logger("snmp")

# ── Well-known OIDs ─────────────────────────────

OID_SYS_DESCR = "1.3.6.1.2.1.1.1.0"
OID_SYS_OBJECT_ID = "1.3.6.1.2.1.1.2.0"
OID_SYS_UPTIME = "1.3.6.1.2.1.1.3.0"
OID_SYS_CONTACT = "1.3.6.1.2.1.1.4.0"
OID_SYS_NAME = "1.3.6.1.2.1.1.5.0"
OID_SYS_LOCATION = "1.3.6.1.2.1.1.6.0"
OID_SYS_OR_LAST_CHANGE = "1.3.6.1.2.1.1.8.0"
OID_IF_NUMBER = "1.3.6.1.2.1.2.1.0"
OID_SNMP_ENGINE_ID = "1.3.6.1.6.3.10.2.1.1.0"
OID_ENT_PHYSICAL_SERIAL = "1.3.6.1.2.1.47.1.1.1.1.11"

KNOWN_OIDS = {
    "SNMPv2-MIB::sysDescr": "1.3.6.1.2.1.1.1",
    "SNMPv2-MIB::sysObjectID": "1.3.6.1.2.1.1.2",
    "SNMPv2-MIB::sysUpTime": "1.3.6.1.2.1.1.3",
    "SNMPv2-MIB::sysContact": "1.3.6.1.2.1.1.4",
    "SNMPv2-MIB::sysName": "1.3.6.1.2.1.1.5",
    "SNMPv2-MIB::sysLocation": "1.3.6.1.2.1.1.6",
    "SNMPv2-MIB::sysORLastChange": "1.3.6.1.2.1.1.8",
    "IF-MIB::ifNumber": "1.3.6.1.2.1.2.1",
    "SNMP-FRAMEWORK-MIB::snmpEngineID": "1.3.6.1.6.3.10.2.1.1",
    "ENTITY-MIB::entPhysicalDescr": "1.3.6.1.2.1.47.1.1.1.1.2",
    "ENTITY-MIB::entPhysicalSerialNum": "1.3.6.1.2.1.47.1.1.1.1.11",
    "HOST-RESOURCES-MIB::hrSystemUptime": "1.3.6.1.2.1.25.1.1",
    "Printer-MIB::prtMarkerSuppliesDescription": "1.3.6.1.2.1.43.11.1.1.6",
}

# Fields compared when two agents share sysName but carry no serial number
COMPARE_OIDS = (
    OID_SYS_OBJECT_ID,
    OID_SYS_DESCR,
    OID_SYS_CONTACT,
    OID_SYS_LOCATION,
    OID_IF_NUMBER,
    OID_SYS_OR_LAST_CHANGE,
)

NUMERIC_OID_RE = re.compile(r"^\.?\d+(?:\.\d+)+$")
NAMED_OID_RE = re.compile(r"^(?:(?P<mib>[A-Za-z][\w-]*)::)?(?P<name>[A-Za-z]\w*)(?P<index>(?:\.\d+)*)$")

AUTH_PROTOCOLS = {
    "MD5": usmHMACMD5AuthProtocol,
    "SHA": usmHMACSHAAuthProtocol,
    "SHA-224": usmHMAC128SHA224AuthProtocol,
    "SHA-256": usmHMAC192SHA256AuthProtocol,
    "SHA-384": usmHMAC256SHA384AuthProtocol,
    "SHA-512": usmHMAC384SHA512AuthProtocol,
}

PRIV_PROTOCOLS = {
    "DES": usmDESPrivProtocol,
    "AES": usmAesCfb128Protocol,
    "AES-192": usmAesCfb192Protocol,
    "AES-256": usmAesCfb256Protocol,
}

AUTH_LEVELS = ("noAuthNoPriv", "authNoPriv", "authPriv")

_TIMEOUT_MARKERS = ("no snmp response", "timeout", "timed out", "request timed out")
_AUTH_MARKERS = (
    "unknownusername", "unknown user", "unknown usm user", "digest", "authentication",
    "authorization", "unknownsecurityname", "decryption", "unsupportedseclevel",
    "unsupported security level", "notintimewindow",
)


class SnmpStatus(str, Enum):
    OK = "ok"
    TIMEOUT = "timeout"
    AUTH = "auth"
    EMPTY = "empty"
    ERROR = "error"


@dataclass(frozen=True)
class SnmpTarget:
    """Where and how to talk to one SNMP agent."""

    hostname: str
    ip: str | None = None
    version: str = "v2c"
    port: int = 161
    transport: str = "udp"
    community: str | None = None
    authlevel: str | None = None
    authname: str | None = None
    authpass: str | None = None
    authalgo: str | None = None
    cryptopass: str | None = None
    cryptoalgo: str | None = None
    context: str | None = None
    timeout: float = 1.0
    retries: int = 1
    maxrep: int | None = None

    @property
    def address(self) -> str:
        return self.ip or self.hostname

    @classmethod
    def from_device(cls, device, timeout: float = 1.0, retries: int = 1) -> "SnmpTarget":
        """Build a target from a stored :class:`~device_inventory.models.Device` row."""
        return cls(
            hostname=device.hostname,
            ip=device.ip,
            version=device.snmp_version,
            port=device.snmp_port or 161,
            transport=device.snmp_transport or "udp",
            community=device.snmp_community,
            authlevel=device.snmp_authlevel,
            authname=device.snmp_authname,
            authpass=device.snmp_authpass,
            authalgo=device.snmp_authalgo,
            cryptopass=device.snmp_cryptopass,
            cryptoalgo=device.snmp_cryptoalgo,
            context=device.snmp_context or None,
            timeout=device.snmp_timeout or timeout,
            retries=device.snmp_retries if device.snmp_retries is not None else retries,
            maxrep=device.snmp_maxrep,
        )

    def describe(self, hide_auth: bool = True) -> str:
        """Human-readable credential summary for operator messages."""
        if self.version == "v3":
            level = self.authlevel or "noAuthNoPriv"
            return f"{self.authname}/{level}"
        return "***" if hide_auth else (self.community or "")

    def device_fields(self) -> dict[str, Any]:
        """Column values for the SNMP access part of a device row."""
        fields = {
            "snmp_version": self.version,
            "snmp_port": self.port,
            "snmp_transport": self.transport,
            "snmp_context": self.context or None,
            "snmp_timeout": self.timeout,
            "snmp_retries": self.retries,
            "snmp_maxrep": self.maxrep,
        }
        if self.version == "v3":
            fields.update(
                snmp_authlevel=self.authlevel,
                snmp_authname=self.authname,
                snmp_authpass=self.authpass,
                snmp_authalgo=self.authalgo,
                snmp_cryptopass=self.cryptopass,
                snmp_cryptoalgo=self.cryptoalgo,
            )
        else:
            fields["snmp_community"] = self.community
        return fields


@dataclass
class SnmpResponse:
    status: SnmpStatus
    oid: str | None = None
    value: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is SnmpStatus.OK


@dataclass
class WalkResult:
    status: SnmpStatus
    values: dict[str, str] = field(default_factory=dict)
    error: str | None = None


def is_numeric_oid(oid: str) -> bool:
    return bool(NUMERIC_OID_RE.match(oid))


def oid_startswith(oid: str, prefix: str) -> bool:
    """True when ``oid`` equals ``prefix`` or lies below it (component boundary)."""
    oid, prefix = oid.lstrip("."), prefix.lstrip(".")
    return oid == prefix or oid.startswith(prefix + ".")


_mib_view: view.MibViewController | None = None


def _get_mib_view() -> view.MibViewController:
    global _mib_view
    if _mib_view is None:
        _mib_view = view.MibViewController(builder.MibBuilder())
    return _mib_view


def translate_oid(spec: str) -> str | None:
    """Resolve ``MIB::name[.index]`` (or a bare numeric OID) to dotted numeric form.

    Returns ``None`` when the name cannot be resolved.
    """
    spec = spec.strip()
    if is_numeric_oid(spec):
        return spec.lstrip(".")

    m = NAMED_OID_RE.match(spec)
    if not m:
        return None
    mib, name, index = m.group("mib"), m.group("name"), m.group("index")

    for known, numeric in KNOWN_OIDS.items():
        known_mib, known_name = known.split("::")
        if name == known_name and (mib is None or mib == known_mib):
            return numeric + index

    if mib is None:
        return None
    try:
        identity = ObjectIdentity(mib, name, *[int(i) for i in index.split(".") if i])
        identity = identity.resolve_with_mib(_get_mib_view())
        return str(identity.get_oid())
    except PySnmpError as exc:
        log.debug("oid_translate_failed", oid=spec, error=str(exc))
        return None


def classify_error(message: str) -> SnmpStatus:
    """Map a pysnmp error indication to a coarse status."""
    lowered = message.lower()
    if any(marker in lowered for marker in _AUTH_MARKERS):
        return SnmpStatus.AUTH
    if any(marker in lowered for marker in _TIMEOUT_MARKERS):
        return SnmpStatus.TIMEOUT
    return SnmpStatus.ERROR


def format_value(value: Any) -> str:
    """Render an SNMP value as text; binary octet strings become lowercase hex."""
    if hasattr(value, "asOctets"):
        raw = bytes(value.asOctets())
        if raw and all(32 <= b < 127 or b in (9, 10, 13) for b in raw):
            return raw.decode("ascii")
        return raw.hex() if raw else ""
    return value.prettyPrint()


class SnmpClient:
    """Base SNMP capability. Subclasses implement :meth:`_get` / :meth:`_get_next`."""

    def __init__(self):
        self.last_status: SnmpStatus = SnmpStatus.OK
        self.last_error: str | None = None

    def _record(self, response: SnmpResponse) -> SnmpResponse:
        self.last_status = response.status
        self.last_error = response.error
        return response

    async def get(self, target: SnmpTarget, oid: str) -> SnmpResponse:
        numeric = translate_oid(oid)
        if numeric is None:
            return self._record(SnmpResponse(SnmpStatus.ERROR, oid=oid, error=f"Unknown OID {oid}"))
        return self._record(await self._get(target, numeric))

    async def get_value(self, target: SnmpTarget, oid: str) -> str | None:
        """Value of ``oid`` or ``None`` for any non-ok outcome."""
        response = await self.get(target, oid)
        return response.value if response.ok else None

    async def get_next(self, target: SnmpTarget, oid: str) -> SnmpResponse:
        numeric = translate_oid(oid)
        if numeric is None:
            return self._record(SnmpResponse(SnmpStatus.ERROR, oid=oid, error=f"Unknown OID {oid}"))
        return self._record(await self._get_next(target, numeric))

    async def walk(self, target: SnmpTarget, oid: str, max_rows: int = 10000) -> WalkResult:
        """Repeated GETNEXT below ``oid`` until the subtree ends."""
        base = translate_oid(oid)
        if base is None:
            self._record(SnmpResponse(SnmpStatus.ERROR, oid=oid, error=f"Unknown OID {oid}"))
            return WalkResult(SnmpStatus.ERROR, error=f"Unknown OID {oid}")

        values: dict[str, str] = {}
        current = base
        for _ in range(max_rows):
            response = await self._get_next(target, current)
            if response.status is SnmpStatus.EMPTY:
                break
            if not response.ok:
                self._record(response)
                if values:
                    break
                return WalkResult(response.status, error=response.error)
            if not oid_startswith(response.oid, base) or response.oid == current:
                break
            values[response.oid] = response.value
            current = response.oid

        status = SnmpStatus.OK if values else SnmpStatus.EMPTY
        self._record(SnmpResponse(status, oid=base))
        return WalkResult(status, values)

    async def _get(self, target: SnmpTarget, oid: str) -> SnmpResponse:
        raise NotImplementedError

    async def _get_next(self, target: SnmpTarget, oid: str) -> SnmpResponse:
        raise NotImplementedError


class PysnmpClient(SnmpClient):
    """SNMP client backed by the pysnmp asyncio high-level API."""

    def __init__(self, engine: SnmpEngine | None = None):
        super().__init__()
        self.engine = engine or SnmpEngine()

    def _auth_data(self, target: SnmpTarget):
        if target.version == "v3":
            level = target.authlevel or "noAuthNoPriv"
            if level == "noAuthNoPriv":
                return UsmUserData(target.authname or "")
            auth_protocol = AUTH_PROTOCOLS.get((target.authalgo or "MD5").upper(), usmHMACMD5AuthProtocol)
            if level == "authNoPriv":
                return UsmUserData(target.authname or "", authKey=target.authpass, authProtocol=auth_protocol)
            priv_protocol = PRIV_PROTOCOLS.get((target.cryptoalgo or "AES").upper(), usmAesCfb128Protocol)
            return UsmUserData(
                target.authname or "",
                authKey=target.authpass,
                privKey=target.cryptopass,
                authProtocol=auth_protocol,
                privProtocol=priv_protocol,
            )

        community = target.community or ""
        if target.context:
            # v1/v2c agents select a context by community suffix
            community = f"{community}@{target.context}"
        return CommunityData(community, mpModel=0 if target.version == "v1" else 1)

    def _context(self, target: SnmpTarget) -> ContextData:
        if target.version == "v3" and target.context:
            return ContextData(contextName=target.context)
        return ContextData()

    async def _transport(self, target: SnmpTarget):
        if target.transport == "udp6":
            return await Udp6TransportTarget.create(
                (target.address, target.port), timeout=target.timeout, retries=target.retries,
            )
        return await UdpTransportTarget.create(
            (target.address, target.port), timeout=target.timeout, retries=target.retries,
        )

    async def _request(self, command, target: SnmpTarget, oid: str) -> SnmpResponse:
        if target.transport not in ("udp", "udp6"):
            return SnmpResponse(SnmpStatus.ERROR, oid=oid, error=f"Transport {target.transport} is not supported")
        if target.version not in ("v1", "v2c", "v3"):
            return SnmpResponse(SnmpStatus.ERROR, oid=oid, error=f"Unsupported SNMP version {target.version}")

        deadline = target.timeout * (target.retries + 1) + 2
        try:
            transport = await self._transport(target)
            error_indication, error_status, error_index, var_binds = await asyncio.wait_for(
                command(
                    self.engine,
                    self._auth_data(target),
                    transport,
                    self._context(target),
                    ObjectType(ObjectIdentity(oid)),
                    lookupMib=False,
                ),
                timeout=deadline,
            )
        except asyncio.TimeoutError:
            return SnmpResponse(SnmpStatus.TIMEOUT, oid=oid, error="Request timed out")
        except OSError as exc:
            # DNS failure or unusable address while building the transport
            return SnmpResponse(SnmpStatus.ERROR, oid=oid, error=str(exc))

        if error_indication:
            message = str(error_indication)
            return SnmpResponse(classify_error(message), oid=oid, error=message)
        if error_status:
            message = error_status.prettyPrint()
            if message in ("noSuchName", "endOfMib"):
                return SnmpResponse(SnmpStatus.EMPTY, oid=oid, error=message)
            status = SnmpStatus.AUTH if message == "authorizationError" else SnmpStatus.ERROR
            return SnmpResponse(status, oid=oid, error=message)
        if not var_binds:
            return SnmpResponse(SnmpStatus.EMPTY, oid=oid)

        var_bind = var_binds[0]
        # next_cmd may return a table row (list of binds) on older pysnmp releases
        if isinstance(var_bind, (list, tuple)) and var_bind and isinstance(var_bind[0], (list, tuple)):
            var_bind = var_bind[0]
        name, value = var_bind[0], var_bind[1]
        if isinstance(value, (NoSuchObject, NoSuchInstance, EndOfMibView)):
            return SnmpResponse(SnmpStatus.EMPTY, oid=str(name))
        return SnmpResponse(SnmpStatus.OK, oid=str(name), value=format_value(value))

    async def _get(self, target: SnmpTarget, oid: str) -> SnmpResponse:
        response = await self._request(get_cmd, target, oid)
        log.debug("snmp_get", host=target.address, oid=oid, status=response.status.value)
        return response

    async def _get_next(self, target: SnmpTarget, oid: str) -> SnmpResponse:
        return await self._request(next_cmd, target, oid)


async def compare_device_oids(
    client: SnmpClient,
    candidate: SnmpTarget,
    existing: SnmpTarget,
    threshold: float = 1.0,
) -> bool:
    """Decide whether two agents look like the same system from their system OIDs.

    Each OID in :data:`COMPARE_OIDS` is fetched from both agents. OIDs neither
    agent answers are skipped; the remaining pairs must agree in at least
    ``threshold`` of cases. No comparable OIDs means "not the same".
    """
    compared = matched = 0
    for oid in COMPARE_OIDS:
        ours = await client.get_value(candidate, oid)
        theirs = await client.get_value(existing, oid)
        if ours is None and theirs is None:
            continue
        compared += 1
        if ours is not None and theirs is not None and ours.strip() == theirs.strip():
            matched += 1

    if compared == 0:
        return False
    ratio = matched / compared
    log.debug("device_oids_compared", candidate=candidate.hostname, existing=existing.hostname,
              compared=compared, matched=matched, ratio=ratio)
    return ratio >= threshold
