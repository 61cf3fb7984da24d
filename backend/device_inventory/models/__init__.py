"""ORM Models package — import all models so Alembic can discover them."""

from device_inventory.models.device import Device, DeviceAttrib          # noqa: F401
from device_inventory.models.port import Port                            # noqa: F401
from device_inventory.models.entity import EntPhysical, EntityAttrib, GroupMember  # noqa: F401
from device_inventory.models.autodiscovery import Autodiscovery          # noqa: F401
from device_inventory.models.poller import Poller, PollerAction          # noqa: F401
from device_inventory.models.eventlog import EventLog                    # noqa: F401

__all__ = [
    "Device", "DeviceAttrib", "Port", "EntPhysical", "EntityAttrib", "GroupMember",
    "Autodiscovery", "Poller", "PollerAction", "EventLog",
]
