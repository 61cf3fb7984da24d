"""Command line front end tests."""

from __future__ import annotations

import pytest

from device_inventory.cli import build_parser, run


class TestParser:
    def test_add_device_options(self):
        args = build_parser().parse_args([
            "add-device", "switch1", "--snmp-version", "v3", "--authlevel", "authPriv",
            "--authname", "ops", "--port", "1161", "--ping-skip",
        ])
        assert args.command == "add-device"
        assert args.snmp_version == "v3"
        assert args.snmp_authlevel == "authPriv"
        assert args.snmp_port == 1161
        assert args.ping_skip is True
        assert args.test is False

    def test_rejects_unknown_version(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["add-device", "switch1", "--snmp-version", "v4"])


@pytest.mark.asyncio
class TestCommands:
    async def test_add_then_delete_by_hostname(self, runtime, session_factory, snmp, cisco_agent, capsys):
        snmp.add_agent("10.0.0.10", "public", cisco_agent())
        parser = build_parser()

        code = await run(parser.parse_args(["add-device", "switch1.example.com"]), runtime, session_factory)
        out = capsys.readouterr().out
        assert code == 0
        assert "Device added: switch1.example.com" in out
        assert "os = ios" in out

        code = await run(parser.parse_args(["delete-device", "switch1.example.com"]), runtime, session_factory)
        out = capsys.readouterr().out
        assert code == 0
        assert " * Deleted device: switch1.example.com" in out

    async def test_add_without_version_falls_back_to_v3(self, runtime, session_factory, snmp, cisco_agent, capsys):
        snmp.add_agent("10.0.0.10", "observium", cisco_agent())

        code = await run(build_parser().parse_args(["add-device", "switch1.example.com"]), runtime, session_factory)
        out = capsys.readouterr().out
        assert code == 0
        assert "Adding host switch1.example.com port 161" in out
        assert "Trying v3 parameters *** / ### [0] ..." in out
        assert "Device added: switch1.example.com" in out

    async def test_add_failure_exit_code(self, runtime, session_factory, capsys):
        code = await run(build_parser().parse_args(["add-device", "missing.example.com"]), runtime, session_factory)
        assert code == 1
        assert "[!] Could not resolve missing.example.com." in capsys.readouterr().out

    async def test_test_mode_succeeds_without_adding(self, runtime, session_factory, snmp, cisco_agent, capsys):
        snmp.add_agent("10.0.0.10", "public", cisco_agent())
        code = await run(build_parser().parse_args(["add-device", "switch1.example.com", "--test"]),
                         runtime, session_factory)
        assert code == 0
        assert "Device added" not in capsys.readouterr().out

    async def test_delete_unknown(self, runtime, session_factory, capsys):
        code = await run(build_parser().parse_args(["delete-device", "9999"]), runtime, session_factory)
        assert code == 1
        assert "not found" in capsys.readouterr().out

    async def test_detect_auth(self, runtime, session_factory, snmp, cisco_agent, capsys):
        parser = build_parser()
        assert await run(parser.parse_args(["detect-auth", "switch1.example.com"]), runtime, session_factory) == 1

        snmp.add_agent("10.0.0.10", "public", cisco_agent())
        assert await run(parser.parse_args(["detect-auth", "switch1.example.com"]), runtime, session_factory) == 0
        assert "Found: ***" in capsys.readouterr().out
