"""FastAPI dependencies shared by the routers."""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from device_inventory.database import get_db
from device_inventory.services.devices import DeviceManager
from device_inventory.services.runtime import get_runtime


async def get_device_manager(db: AsyncSession = Depends(get_db)) -> DeviceManager:
    return get_runtime().manager(db)
