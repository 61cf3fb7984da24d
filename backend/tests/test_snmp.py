"""SNMP helper tests — OID handling, error classification, targets and walks."""

from __future__ import annotations

import pytest

from device_inventory.models import Device
from device_inventory.services.snmp import (
    OID_SYS_NAME,
    PysnmpClient,
    SnmpStatus,
    SnmpTarget,
    classify_error,
    is_numeric_oid,
    oid_startswith,
    translate_oid,
)


class TestOidHelpers:
    def test_numeric_passthrough(self):
        assert translate_oid(".1.3.6.1.2.1.1.5.0") == "1.3.6.1.2.1.1.5.0"

    def test_known_names(self):
        assert translate_oid("SNMPv2-MIB::sysName.0") == "1.3.6.1.2.1.1.5.0"
        assert translate_oid("sysDescr.0") == "1.3.6.1.2.1.1.1.0"
        assert translate_oid("ENTITY-MIB::entPhysicalSerialNum.1001") == "1.3.6.1.2.1.47.1.1.1.1.11.1001"

    def test_unknown_bare_name(self):
        assert translate_oid("definitelyNotAnObject") is None
        assert translate_oid("not an oid") is None

    def test_is_numeric(self):
        assert is_numeric_oid("1.3.6.1")
        assert is_numeric_oid(".1.3.6.1")
        assert not is_numeric_oid("1")
        assert not is_numeric_oid("IF-MIB::ifNumber.0")

    def test_oid_startswith_respects_boundaries(self):
        assert oid_startswith("1.3.6.1.4.1.9.1.1", "1.3.6.1.4.1.9")
        assert oid_startswith("1.3.6.1.4.1.9", ".1.3.6.1.4.1.9")
        assert not oid_startswith("1.3.6.1.4.1.99", "1.3.6.1.4.1.9")


class TestClassifyError:
    @pytest.mark.parametrize("message,status", [
        ("No SNMP response received before timeout", SnmpStatus.TIMEOUT),
        ("Unknown USM user", SnmpStatus.AUTH),
        ("Wrong SNMP PDU digest", SnmpStatus.AUTH),
        ("unsupportedSecLevel", SnmpStatus.AUTH),
        ("Bad PDU", SnmpStatus.ERROR),
    ])
    def test_classify(self, message, status):
        assert classify_error(message) is status


class TestSnmpTarget:
    def test_v2c_device_fields(self):
        target = SnmpTarget(hostname="a", ip="10.0.0.1", community="public", context="")
        fields = target.device_fields()
        assert fields["snmp_community"] == "public"
        assert fields["snmp_context"] is None
        assert "snmp_authname" not in fields

    def test_v3_device_fields(self):
        target = SnmpTarget(hostname="a", version="v3", authlevel="authPriv", authname="u",
                            authpass="p", authalgo="SHA", cryptopass="c", cryptoalgo="AES")
        fields = target.device_fields()
        assert fields["snmp_authlevel"] == "authPriv"
        assert fields["snmp_cryptoalgo"] == "AES"
        assert "snmp_community" not in fields

    def test_from_device(self):
        device = Device(hostname="r1", ip="10.0.0.1", snmp_version="v2c", snmp_port=1161,
                        snmp_transport="udp", snmp_community="c", snmp_context="", snmp_retries=0)
        target = SnmpTarget.from_device(device, timeout=2.5, retries=3)
        assert target.address == "10.0.0.1"
        assert target.port == 1161
        assert target.context is None
        assert target.timeout == 2.5
        assert target.retries == 0

    def test_describe_hides_community(self):
        target = SnmpTarget(hostname="a", community="secret")
        assert target.describe() == "***"
        assert target.describe(hide_auth=False) == "secret"
        v3 = SnmpTarget(hostname="a", version="v3", authname="observium")
        assert v3.describe() == "observium/noAuthNoPriv"


@pytest.mark.asyncio
class TestClient:
    async def test_get_translates_and_records_status(self, snmp):
        snmp.add_agent("10.0.0.1", "public", {OID_SYS_NAME: "r1"})
        target = SnmpTarget(hostname="r1", ip="10.0.0.1", community="public")

        assert await snmp.get_value(target, "SNMPv2-MIB::sysName.0") == "r1"
        assert snmp.last_status is SnmpStatus.OK

        response = await snmp.get(target, "definitelyNotAnObject")
        assert response.status is SnmpStatus.ERROR
        assert snmp.last_status is SnmpStatus.ERROR

    async def test_timeout_is_reported_not_raised(self, snmp):
        target = SnmpTarget(hostname="r1", ip="10.0.0.1", community="wrong")
        assert await snmp.get_value(target, OID_SYS_NAME) is None
        assert snmp.last_status is SnmpStatus.TIMEOUT

    async def test_walk_stays_in_subtree(self, snmp):
        snmp.add_agent("10.0.0.1", "public", {
            "1.3.6.1.2.1.47.1.1.1.1.11.1": "SN1",
            "1.3.6.1.2.1.47.1.1.1.1.11.2": "SN2",
            "1.3.6.1.2.1.47.1.1.1.1.11.10": "SN10",
            "1.3.6.1.2.1.47.1.1.1.1.12.1": "Cisco",
        })
        target = SnmpTarget(hostname="r1", ip="10.0.0.1", community="public")

        result = await snmp.walk(target, "ENTITY-MIB::entPhysicalSerialNum")

        assert result.status is SnmpStatus.OK
        assert list(result.values) == [
            "1.3.6.1.2.1.47.1.1.1.1.11.1",
            "1.3.6.1.2.1.47.1.1.1.1.11.2",
            "1.3.6.1.2.1.47.1.1.1.1.11.10",
        ]

    async def test_walk_empty_and_unreachable(self, snmp):
        snmp.add_agent("10.0.0.1", "public", {OID_SYS_NAME: "r1"})
        target = SnmpTarget(hostname="r1", ip="10.0.0.1", community="public")
        assert (await snmp.walk(target, "1.3.6.1.2.1.47")).status is SnmpStatus.EMPTY

        silent = SnmpTarget(hostname="r2", ip="10.0.0.2", community="public")
        assert (await snmp.walk(silent, "1.3.6.1.2.1.47")).status is SnmpStatus.TIMEOUT

    async def test_pysnmp_rejects_tcp_transport(self):
        client = PysnmpClient()
        target = SnmpTarget(hostname="r1", ip="127.0.0.1", transport="tcp", community="public")
        response = await client.get(target, OID_SYS_NAME)
        assert response.status is SnmpStatus.ERROR
        assert "tcp" in response.error

    async def test_pysnmp_rejects_unknown_version(self):
        client = PysnmpClient()
        target = SnmpTarget(hostname="r1", ip="127.0.0.1", version="v4", community="public")
        assert (await client.get(target, OID_SYS_NAME)).status is SnmpStatus.ERROR


class TestAuthData:
    def test_community_with_context(self):
        data = PysnmpClient()._auth_data(SnmpTarget(hostname="a", community="public", context="vlan10"))
        assert data.communityName == "public@vlan10"

    def test_v3_levels(self):
        client = PysnmpClient()
        no_auth = client._auth_data(SnmpTarget(hostname="a", version="v3", authname="observium"))
        assert no_auth.userName == "observium"
        priv = client._auth_data(SnmpTarget(hostname="a", version="v3", authlevel="authPriv", authname="u",
                                            authpass="authpass1", authalgo="sha", cryptopass="privpass1"))
        assert priv.authKey == "authpass1"
        assert priv.privKey == "privpass1"
