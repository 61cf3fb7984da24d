"""Neighbour links found by discovery protocols (CDP, LLDP, ...)."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from device_inventory.database import Base


class Autodiscovery(Base):
    __tablename__ = "autodiscovery"

    autodiscovery_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    port_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    protocol: Mapped[str | None] = mapped_column(String(16), nullable=True)
    remote_hostname: Mapped[str | None] = mapped_column(String(128), nullable=True)
    remote_ip: Mapped[str | None] = mapped_column(String(45), nullable=True)
    # no FK: the remote device may be removed while the link stays
    remote_device_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    last_checked: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<Autodiscovery {self.device_id} -> {self.remote_hostname} ({self.remote_device_id})>"
