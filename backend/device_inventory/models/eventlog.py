"""Audit trail entries."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from device_inventory.database import Base


class EventLog(Base):
    __tablename__ = "eventlog"

    event_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # kept after the device row is removed
    device_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    entity_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    entity_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False, default="info")
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)

    def __repr__(self) -> str:
        return f"<EventLog {self.event_id} [{self.severity}] {self.message[:40]}>"
