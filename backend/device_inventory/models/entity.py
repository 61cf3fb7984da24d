"""Physical inventory and polymorphic entity tables."""

from __future__ import annotations

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from device_inventory.database import Base


class EntPhysical(Base):
    """ENTITY-MIB entPhysicalTable rows collected by discovery."""
    __tablename__ = "entPhysical"

    ent_physical_id: Mapped[int] = mapped_column("entPhysical_id", Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    ent_physical_index: Mapped[int] = mapped_column("entPhysicalIndex", Integer, nullable=False)
    ent_physical_class: Mapped[str | None] = mapped_column("entPhysicalClass", String(64), nullable=True)
    ent_physical_descr: Mapped[str | None] = mapped_column("entPhysicalDescr", Text, nullable=True)
    ent_physical_serial_num: Mapped[str | None] = mapped_column("entPhysicalSerialNum", String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<EntPhysical {self.ent_physical_index} device={self.device_id} serial={self.ent_physical_serial_num}>"


class EntityAttrib(Base):
    """Key/value attributes for any entity (port, sensor, ...)."""
    __tablename__ = "entity_attribs"

    attrib_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    attrib_type: Mapped[str] = mapped_column(String(64), nullable=False)
    attrib_value: Mapped[str] = mapped_column(Text, nullable=False, default="")


class GroupMember(Base):
    """Membership of an entity in an operator-defined group."""
    __tablename__ = "group_table"

    group_member_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    device_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)


# Tables holding rows addressed by (entity_type, entity_id)
ENTITY_TABLES = (EntityAttrib, GroupMember)
