"""
Seed data script — registers the local poller and (optionally) sample
devices for development.

Usage:
    python seed_data.py          # pollers only
    python seed_data.py --demo   # pollers + demo devices
"""

from __future__ import annotations

import asyncio
import sys

from sqlalchemy import select

# Ensure device_inventory is importable
sys.path.insert(0, ".")

from device_inventory.config import settings
from device_inventory.database import async_session, engine, Base
from device_inventory.models import Device, EntPhysical, Poller, Port


DEFAULT_POLLERS = [
    {"poller_id": 0, "poller_name": "Default Poller", "host_id": None},
]


async def seed_pollers():
    """Insert the default poller, plus the configured one when it differs."""
    pollers = list(DEFAULT_POLLERS)
    if settings.poller_id and settings.poller_name:
        pollers.append({"poller_id": settings.poller_id, "poller_name": settings.poller_name, "host_id": None})
    async with async_session() as db:
        for poller_data in pollers:
            existing = await db.get(Poller, poller_data["poller_id"])
            if not existing:
                db.add(Poller(**poller_data))
                print(f"  + Poller: {poller_data['poller_name']} [{poller_data['poller_id']}]")
        await db.commit()
    print("Pollers seeded.")


async def seed_demo_data():
    """Create a few devices with ports and inventory for UI development."""
    async with async_session() as db:
        existing = (await db.execute(select(Device).where(Device.hostname == "gw1.demo.local"))).scalar_one_or_none()
        if existing:
            print("Demo data already exists, skipping.")
            return

        demo_devices = [
            {
                "hostname": "gw1.demo.local", "ip": "192.168.1.1", "os": "ios",
                "sys_object_id": "1.3.6.1.4.1.9.1.1208", "sys_name": "gw1",
                "sys_descr": "Cisco IOS Software, C2960X Software (C2960X-UNIVERSALK9-M), Version 15.2(7)E4",
                "serial": "FOC1234X0AB", "ports": ["GigabitEthernet1/0/1", "GigabitEthernet1/0/2"],
            },
            {
                "hostname": "web1.demo.local", "ip": "192.168.1.10", "os": "linux",
                "sys_object_id": "1.3.6.1.4.1.8072.3.2.10", "sys_name": "web1",
                "sys_descr": "Linux web1 5.15.0-91-generic #101-Ubuntu SMP x86_64",
                "serial": None, "ports": ["lo", "eth0"],
            },
            {
                "hostname": "ups1.demo.local", "ip": "192.168.1.30", "os": "apc",
                "sys_object_id": "1.3.6.1.4.1.318.1.3.27", "sys_name": "ups1",
                "sys_descr": "APC Web/SNMP Management Card (MB:v4.1.0 PF:v6.8.2 PN:apc_hw05_aos_682.bin)",
                "serial": None, "ports": [],
            },
        ]

        for dd in demo_devices:
            device = Device(
                hostname=dd["hostname"],
                ip=dd["ip"],
                os=dd["os"],
                sys_object_id=dd["sys_object_id"],
                sys_name=dd["sys_name"],
                sys_descr=dd["sys_descr"],
                snmp_version="v2c",
                snmp_community="public",
                status=1,
            )
            db.add(device)
            await db.flush()

            for if_index, if_descr in enumerate(dd["ports"], 1):
                db.add(Port(device_id=device.device_id, if_index=if_index, if_descr=if_descr))
            if dd["serial"]:
                db.add(EntPhysical(
                    device_id=device.device_id,
                    ent_physical_index=1,
                    ent_physical_class="chassis",
                    ent_physical_serial_num=dd["serial"],
                ))
            print(f"  + Device: {dd['hostname']}")

        await db.commit()
    print("Demo data seeded.")


async def create_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def main():
    demo = "--demo" in sys.argv
    print("Seeding database...")
    if "--create" in sys.argv:
        await create_tables()
    await seed_pollers()
    if demo:
        await seed_demo_data()
    print("Done.")


if __name__ == "__main__":
    asyncio.run(main())
