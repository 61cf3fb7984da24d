"""
Command line front end for the add / delete / detect workflows.

    inventory add-device switch1.example.com --snmp-version v2c --community public
    inventory delete-device 42 --delete-rrd
    inventory detect-auth switch1.example.com
    inventory recheck-os 42
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from sqlalchemy.ext.asyncio import async_sessionmaker

from device_inventory.config import SNMP_TRANSPORTS, SNMP_VERSIONS, settings
from device_inventory.database import async_session
from device_inventory.services.messages import MessageTrail
from device_inventory.services.runtime import DiscoveryRuntime, get_runtime
from device_inventory.utils.logging import configure_logging, get_logger

log = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="inventory", description="SNMP device inventory management")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines instead of console output")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add-device", help="Add a device (or test its credentials)")
    add.add_argument("hostname")
    add.add_argument("--snmp-version", choices=SNMP_VERSIONS)
    add.add_argument("--port", type=int, default=161, dest="snmp_port")
    add.add_argument("--transport", choices=SNMP_TRANSPORTS, default="udp", dest="snmp_transport")
    add.add_argument("--community", dest="snmp_community")
    add.add_argument("--authlevel", dest="snmp_authlevel", choices=("noAuthNoPriv", "authNoPriv", "authPriv"))
    add.add_argument("--authname", dest="snmp_authname")
    add.add_argument("--authpass", dest="snmp_authpass")
    add.add_argument("--authalgo", dest="snmp_authalgo")
    add.add_argument("--cryptopass", dest="snmp_cryptopass")
    add.add_argument("--cryptoalgo", dest="snmp_cryptoalgo")
    add.add_argument("--context", dest="snmp_context")
    add.add_argument("--timeout", type=float, dest="snmp_timeout")
    add.add_argument("--retries", type=int, dest="snmp_retries")
    add.add_argument("--snmpable", help="Space separated OIDs that must answer instead of sysDescr")
    add.add_argument("--poller-id", type=int, help="Queue the add on a remote poller")
    add.add_argument("--ping-skip", action="store_true")
    add.add_argument("--ignorerrd", action="store_true")
    add.add_argument("--test", action="store_true", help="Only test credentials; do not add")

    delete = sub.add_parser("delete-device", help="Delete a device and its dependent rows")
    delete.add_argument("device", help="device_id or hostname")
    delete.add_argument("--delete-rrd", action="store_true")

    detect = sub.add_parser("detect-auth", help="Find working SNMP credentials for a host")
    detect.add_argument("hostname")
    detect.add_argument("--port", type=int, default=161)
    detect.add_argument("--transport", choices=SNMP_TRANSPORTS, default="udp")
    detect.add_argument("--detect-ip-version", action="store_true")

    recheck = sub.add_parser("recheck-os", help="Re-run OS detection on a device")
    recheck.add_argument("device_id", type=int)
    return parser


def _print_messages(messages):
    for m in messages:
        prefix = {"error": "[!] ", "warning": "[-] "}.get(m.level, "")
        print(f"{prefix}{m.text}")


async def cmd_add(args: argparse.Namespace, runtime: DiscoveryRuntime, session_factory: async_sessionmaker) -> int:
    keys = (
        "hostname", "snmp_version", "snmp_port", "snmp_transport", "snmp_community", "snmp_authlevel",
        "snmp_authname", "snmp_authpass", "snmp_authalgo", "snmp_cryptopass", "snmp_cryptoalgo",
        "snmp_context", "snmp_timeout", "snmp_retries", "snmpable", "poller_id", "ping_skip", "ignorerrd", "test",
    )
    vars = {k: getattr(args, k) for k in keys if getattr(args, k) not in (None, False)}
    async with session_factory() as db:
        result = await runtime.manager(db).add_device_vars(vars)
        if result.ok:
            await db.commit()
        else:
            await db.rollback()
    _print_messages(result.messages)
    code = result.legacy_code
    if result.device_id:
        print(f"Device added: {result.hostname} (id = {result.device_id}, os = {result.os})")
    # device_id, -1 (tested) and True (queued) are success
    return 0 if code not in (0, False) else 1


async def cmd_delete(args: argparse.Namespace, runtime: DiscoveryRuntime, session_factory: async_sessionmaker) -> int:
    async with session_factory() as db:
        manager = runtime.manager(db)
        device_id = int(args.device) if args.device.isdigit() else await manager.get_device_id_by_hostname(args.device)
        report = await manager.delete_device(device_id, args.delete_rrd) if device_id else None
        if report is None:
            print(f"[!] Device {args.device} not found.")
            return 1
        await db.commit()
    print(report)
    return 0


async def cmd_detect(args: argparse.Namespace, runtime: DiscoveryRuntime, session_factory: async_sessionmaker) -> int:
    trail = MessageTrail(args.hostname)
    async with session_factory() as db:
        target = await runtime.manager(db).detect_device_snmpauth(
            args.hostname, args.port, args.transport, args.detect_ip_version, trail,
        )
    _print_messages(trail)
    if target is None:
        print(f"[!] No working SNMP credentials for {args.hostname}.")
        return 1
    print(f"Found: {target.describe(runtime.config.hide_auth)}")
    return 0


async def cmd_recheck(args: argparse.Namespace, runtime: DiscoveryRuntime, session_factory: async_sessionmaker) -> int:
    async with session_factory() as db:
        match = await runtime.manager(db).recheck_device_os(args.device_id)
        if match is None:
            print(f"[!] Device {args.device_id} not found.")
            return 1
        await db.commit()
    print(f"{args.device_id}: os = {match.os} ({match.matched_by})")
    return 0


COMMANDS = {
    "add-device": cmd_add,
    "delete-device": cmd_delete,
    "detect-auth": cmd_detect,
    "recheck-os": cmd_recheck,
}


async def run(
    args: argparse.Namespace,
    runtime: DiscoveryRuntime | None = None,
    session_factory: async_sessionmaker = async_session,
) -> int:
    runtime = runtime or get_runtime()
    try:
        return await COMMANDS[args.command](args, runtime, session_factory)
    finally:
        if runtime.scheduler is not None:
            await runtime.scheduler.stop()


def main(argv: list[str] | None = None):
    args = build_parser().parse_args(argv)
    configure_logging("debug" if args.verbose else settings.log_level,
                      hide_auth=settings.snmp_hide_auth, json=args.json_logs)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
