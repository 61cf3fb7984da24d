"""Port ORM model."""

from __future__ import annotations

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from device_inventory.database import Base


class Port(Base):
    __tablename__ = "ports"

    port_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    if_index: Mapped[int] = mapped_column("ifIndex", Integer, nullable=False)
    if_descr: Mapped[str | None] = mapped_column("ifDescr", Text, nullable=True)
    if_phys_address: Mapped[str | None] = mapped_column("ifPhysAddress", String(32), nullable=True)
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Port {self.port_id} device={self.device_id} ifIndex={self.if_index} {self.if_descr}>"
