"""Domain exceptions raised by the discovery services."""

from __future__ import annotations


class DiscoveryError(Exception):
    """Base class for every add/delete/detect failure."""

    #: legacy return code for the operation that hit this error
    legacy_code: int | bool = False
    http_status: int = 422
    #: the host could not be reached, as opposed to being refused
    unreachable: bool = False

    def __init__(self, message: str, hostname: str | None = None):
        super().__init__(message)
        self.message = message
        self.hostname = hostname
        #: an operator message for this failure was already emitted
        self.reported = False


class InvalidHostname(DiscoveryError):
    pass


class DnsFailure(DiscoveryError):
    unreachable = True
    http_status = 502


class Unreachable(DiscoveryError):
    """ICMP gave no answer."""
    unreachable = True
    http_status = 502


class SnmpUnreachable(DiscoveryError):
    """No credential set produced an SNMP reply."""
    legacy_code = 0
    unreachable = True
    http_status = 502


class UnsupportedSnmpVersion(DiscoveryError):
    legacy_code = 0
    unreachable = True


class InvalidOidSpecification(DiscoveryError):
    pass


class DuplicateDevice(DiscoveryError):
    http_status = 409

    def __init__(self, message: str, hostname: str | None = None, device_ids: list[int] | None = None):
        super().__init__(message, hostname)
        self.device_ids = device_ids or []


class DuplicateHostname(DuplicateDevice):
    pass


class DuplicateNetworkIdentity(DuplicateDevice):
    pass


class DuplicateSystemIdentity(DuplicateDevice):
    pass


class RrdDirectoryExists(DiscoveryError):
    http_status = 409


class PersistenceFailure(DiscoveryError):
    """Insert failed; a unique-violation here is a late duplicate."""
    http_status = 409


class UnknownPoller(DiscoveryError):
    pass


class AlreadyQueued(DiscoveryError):
    http_status = 409


class AddCancelled(DiscoveryError):
    """The add request was cancelled between credential attempts."""
    http_status = 409
