"""Poller registry and the action queue addressed to pollers."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from device_inventory.database import Base


class Poller(Base):
    __tablename__ = "pollers"

    poller_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    poller_name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    host_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<Poller {self.poller_id} {self.poller_name}>"


class PollerAction(Base):
    """A queued request (e.g. ``device_add``) for a specific poller to execute."""
    __tablename__ = "observium_actions"

    action_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    identifier: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    poller_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)
    vars: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    # pending / running / done / failed
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    result: Mapped[str | None] = mapped_column(Text, nullable=True)
    added: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<PollerAction {self.action_id} {self.action}:{self.identifier} poller={self.poller_id} {self.status}>"
