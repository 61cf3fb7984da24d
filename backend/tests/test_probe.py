"""Network probe tests — hostname/IP helpers, fping parsing and DNS → ICMP → SNMP."""

from __future__ import annotations

import gc
from unittest.mock import AsyncMock, patch

import pytest

from device_inventory.services import probe as probe_module
from device_inventory.services.probe import (
    DnsFlag,
    dns_flags_for,
    get_ip_version,
    ip_compress,
    is_pingable,
    is_valid_hostname,
    resolve_hostname,
)
from device_inventory.services.snmp import OID_SYS_DESCR, OID_SYS_NAME, SnmpStatus, SnmpTarget

FPING_OK = "10.0.0.10 : xmt/rcv/%loss = 1/1/0%, min/avg/max = 0.31/0.35/0.39\n"
FPING_LOSS = "10.0.0.10 : xmt/rcv/%loss = 1/0/100%\n"


class TestAddressHelpers:
    @pytest.mark.parametrize("name,fqdn,expected", [
        ("switch1.example.com", True, True),
        ("switch1", False, True),
        ("switch1", True, False),
        ("sw_1.lab", True, True),
        ("-bad.example.com", False, False),
        ("10.0.0.1", False, False),
        ("a" * 64 + ".example.com", False, False),
        ("", False, False),
    ])
    def test_is_valid_hostname(self, name, fqdn, expected):
        assert is_valid_hostname(name, fqdn=fqdn) is expected

    def test_get_ip_version(self):
        assert get_ip_version("10.0.0.1") == 4
        assert get_ip_version("[2001:db8::1]") == 6
        assert get_ip_version("switch1") is None
        assert get_ip_version(None) is None

    def test_ip_compress(self):
        assert ip_compress("2001:0db8:0000:0000::0001") == "2001:db8::1"
        assert ip_compress("switch1") == "switch1"

    def test_dns_flags(self):
        assert dns_flags_for("udp") is DnsFlag.ALL
        assert dns_flags_for("udp", force_ipv4=True) is DnsFlag.A
        assert dns_flags_for("udp6", force_ipv4=True) is DnsFlag.AAAA


@pytest.mark.asyncio
class TestResolveAndPing:
    async def test_literal_ip_is_not_looked_up(self):
        assert await resolve_hostname("2001:db8:0::10") == "2001:db8::10"

    async def test_fping_average(self):
        with patch.object(probe_module, "_run_cmd", new=AsyncMock(return_value=("", FPING_OK, 0))) as run_cmd:
            assert await is_pingable("10.0.0.10", fping_path="/usr/bin/fping", ip_version=4) == 0.35
        cmd = run_cmd.call_args.args[0]
        assert cmd[:2] == ["/usr/bin/fping", "-4"]
        assert cmd[-1] == "10.0.0.10"

    async def test_fping_loss(self):
        with patch.object(probe_module, "_run_cmd", new=AsyncMock(return_value=("", FPING_LOSS, 1))):
            assert await is_pingable("10.0.0.10") is None

    async def test_fping_missing(self):
        with patch.object(probe_module, "_run_cmd", new=AsyncMock(side_effect=FileNotFoundError("fping"))):
            assert await is_pingable("10.0.0.10", fping_path="/nonexistent/fping") is None


@pytest.mark.asyncio
class TestNetworkProbe:
    async def test_dns_failure(self, probe):
        result = await probe.probe(SnmpTarget(hostname="missing.example.com", community="public"))
        assert result.error == "dns"
        assert not result.snmpable

    async def test_icmp_failure(self, probe, network):
        network.down.add("10.0.0.10")
        result = await probe.probe(SnmpTarget(hostname="switch1.example.com", community="public"))
        assert result.error == "icmp"
        assert result.ip == "10.0.0.10"

    async def test_ping_skip(self, probe, network, snmp, cisco_agent):
        network.down.add("10.0.0.10")
        snmp.add_agent("10.0.0.10", "public", cisco_agent())
        result = await probe.probe(SnmpTarget(hostname="switch1.example.com", community="public"), ping_skip=True)
        assert result.snmpable
        assert network.pinged == []

    async def test_snmp_ok(self, probe, snmp, cisco_agent):
        snmp.add_agent("10.0.0.10", "public", cisco_agent())
        result = await probe.probe(SnmpTarget(hostname="switch1.example.com", community="public"))
        assert result.snmpable
        assert result.ping_ms == 0.42
        assert result.status is SnmpStatus.OK
        assert result.rtt_ms is not None

    async def test_wrong_community(self, probe, snmp, cisco_agent):
        snmp.add_agent("10.0.0.10", "public", cisco_agent())
        result = await probe.probe(SnmpTarget(hostname="switch1.example.com", community="private"))
        assert not result.snmpable
        assert result.status is SnmpStatus.TIMEOUT

    async def test_empty_sysdescr_still_answers(self, probe, snmp):
        snmp.add_agent("10.0.0.10", "public", {OID_SYS_NAME: "bare"})
        target = SnmpTarget(hostname="switch1.example.com", ip="10.0.0.10", community="public")
        assert (await probe.check_snmp(target)).snmpable

    async def test_custom_snmpable_oids_all_required(self, probe, snmp):
        snmp.add_agent("10.0.0.10", "public", {OID_SYS_NAME: "bare", OID_SYS_DESCR: "x"})
        target = SnmpTarget(hostname="switch1.example.com", ip="10.0.0.10", community="public")
        assert (await probe.check_snmp(target, [OID_SYS_NAME, OID_SYS_DESCR])).snmpable
        result = await probe.check_snmp(target, [OID_SYS_NAME, "1.3.6.1.4.1.9.9.1.0"])
        assert not result.snmpable
        assert result.status is SnmpStatus.EMPTY

    async def test_host_lock_shared_per_hostname(self, probe):
        assert probe.host_lock("Switch1") is probe.host_lock("switch1")
        assert probe.host_lock("switch1") is not probe.host_lock("switch2")

    async def test_host_locks_are_released(self, probe, snmp, cisco_agent):
        snmp.add_agent("10.0.0.10", "public", cisco_agent())
        lock = probe.host_lock("switch1.example.com")
        async with lock:
            assert probe.host_lock("switch1.example.com") is lock
        del lock
        gc.collect()
        await probe.probe(SnmpTarget(hostname="switch1.example.com", community="public"))
        gc.collect()
        assert len(probe._locks) == 0

    async def test_fingerprint(self, probe, snmp, cisco_agent):
        snmp.add_agent("10.0.0.10", "public", cisco_agent())
        facts = await probe.fingerprint(SnmpTarget(hostname="switch1", ip="10.0.0.10", community="public"))
        assert facts["sys_name"] == "switch1"
        assert facts["sys_object_id"] == "1.3.6.1.4.1.9.1.1"
        assert facts["location"] is None
