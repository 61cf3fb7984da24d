"""Device ORM model — one row per monitored SNMP agent."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from device_inventory.database import Base


class Device(Base):
    __tablename__ = "devices"

    device_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    hostname: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)
    ip: Mapped[str | None] = mapped_column(String(45), nullable=True, index=True)

    # ── SNMP access ─────────────────────────────
    snmp_version: Mapped[str] = mapped_column(String(4), nullable=False, default="v2c")
    snmp_transport: Mapped[str] = mapped_column(String(8), nullable=False, default="udp")
    snmp_port: Mapped[int] = mapped_column(Integer, nullable=False, default=161)
    snmp_community: Mapped[str | None] = mapped_column(String(255), nullable=True)
    snmp_authlevel: Mapped[str | None] = mapped_column(String(16), nullable=True)
    snmp_authname: Mapped[str | None] = mapped_column(String(64), nullable=True)
    snmp_authpass: Mapped[str | None] = mapped_column(String(64), nullable=True)
    snmp_authalgo: Mapped[str | None] = mapped_column(String(8), nullable=True)
    snmp_cryptopass: Mapped[str | None] = mapped_column(String(64), nullable=True)
    snmp_cryptoalgo: Mapped[str | None] = mapped_column(String(8), nullable=True)
    snmp_context: Mapped[str | None] = mapped_column(String(64), nullable=True)
    snmp_timeout: Mapped[float | None] = mapped_column(Float, nullable=True)
    snmp_retries: Mapped[int | None] = mapped_column(Integer, nullable=True)
    snmp_maxrep: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # space separated OIDs used instead of sysDescr.0 for reachability checks
    snmpable: Mapped[str | None] = mapped_column(Text, nullable=True)

    # ── Fingerprint ─────────────────────────────
    sys_object_id: Mapped[str | None] = mapped_column("sysObjectID", String(128), nullable=True)
    sys_descr: Mapped[str | None] = mapped_column("sysDescr", Text, nullable=True)
    sys_name: Mapped[str | None] = mapped_column("sysName", String(128), nullable=True, index=True)
    snmp_engine_id: Mapped[str | None] = mapped_column("snmpEngineID", String(128), nullable=True, index=True)
    location: Mapped[str | None] = mapped_column(Text, nullable=True)
    sys_contact: Mapped[str | None] = mapped_column("sysContact", Text, nullable=True)
    os: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # ── Operational state ───────────────────────
    status: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    poller_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    uptime: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_polled: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_discovered: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    attribs: Mapped[list["DeviceAttrib"]] = relationship(
        "DeviceAttrib", back_populates="device", cascade="all, delete-orphan", lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Device {self.device_id} {self.hostname} os={self.os}>"


class DeviceAttrib(Base):
    __tablename__ = "devices_attribs"
    __table_args__ = (UniqueConstraint("device_id", "attrib_type", name="uq_devices_attribs_type"),)

    attrib_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("devices.device_id", ondelete="CASCADE"), nullable=False, index=True,
    )
    attrib_type: Mapped[str] = mapped_column(String(64), nullable=False)
    attrib_value: Mapped[str] = mapped_column(Text, nullable=False, default="")
    updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    device: Mapped["Device"] = relationship("Device", back_populates="attribs")

    def __repr__(self) -> str:
        return f"<DeviceAttrib {self.device_id} {self.attrib_type}={self.attrib_value}>"
