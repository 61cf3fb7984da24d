"""Initial schema — devices, attributes, ports, entities, pollers, actions, eventlog

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── devices ──────────────────────────────
    op.create_table(
        "devices",
        sa.Column("device_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("hostname", sa.String(128), nullable=False, unique=True, index=True),
        sa.Column("ip", sa.String(45), nullable=True, index=True),
        sa.Column("snmp_version", sa.String(4), nullable=False, server_default="v2c"),
        sa.Column("snmp_transport", sa.String(8), nullable=False, server_default="udp"),
        sa.Column("snmp_port", sa.Integer, nullable=False, server_default="161"),
        sa.Column("snmp_community", sa.String(255), nullable=True),
        sa.Column("snmp_authlevel", sa.String(16), nullable=True),
        sa.Column("snmp_authname", sa.String(64), nullable=True),
        sa.Column("snmp_authpass", sa.String(64), nullable=True),
        sa.Column("snmp_authalgo", sa.String(8), nullable=True),
        sa.Column("snmp_cryptopass", sa.String(64), nullable=True),
        sa.Column("snmp_cryptoalgo", sa.String(8), nullable=True),
        sa.Column("snmp_context", sa.String(64), nullable=True),
        sa.Column("snmp_timeout", sa.Float, nullable=True),
        sa.Column("snmp_retries", sa.Integer, nullable=True),
        sa.Column("snmp_maxrep", sa.Integer, nullable=True),
        sa.Column("snmpable", sa.Text, nullable=True),
        sa.Column("sysObjectID", sa.String(128), nullable=True),
        sa.Column("sysDescr", sa.Text, nullable=True),
        sa.Column("sysName", sa.String(128), nullable=True, index=True),
        sa.Column("snmpEngineID", sa.String(128), nullable=True, index=True),
        sa.Column("location", sa.Text, nullable=True),
        sa.Column("sysContact", sa.Text, nullable=True),
        sa.Column("os", sa.String(64), nullable=True),
        sa.Column("status", sa.Integer, nullable=False, server_default="0"),
        sa.Column("disabled", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("poller_id", sa.Integer, nullable=False, server_default="0"),
        sa.Column("uptime", sa.Integer, nullable=True),
        sa.Column("last_polled", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_discovered", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ── devices_attribs ──────────────────────
    op.create_table(
        "devices_attribs",
        sa.Column("attrib_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("device_id", sa.Integer, sa.ForeignKey("devices.device_id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("attrib_type", sa.String(64), nullable=False),
        sa.Column("attrib_value", sa.Text, nullable=False, server_default=""),
        sa.Column("updated", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("device_id", "attrib_type", name="uq_devices_attribs_type"),
    )

    # ── ports ────────────────────────────────
    op.create_table(
        "ports",
        sa.Column("port_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("device_id", sa.Integer, nullable=False, index=True),
        sa.Column("ifIndex", sa.Integer, nullable=False),
        sa.Column("ifDescr", sa.Text, nullable=True),
        sa.Column("ifPhysAddress", sa.String(32), nullable=True),
        sa.Column("deleted", sa.Boolean, nullable=False, server_default=sa.false()),
    )

    # ── entPhysical ──────────────────────────
    op.create_table(
        "entPhysical",
        sa.Column("entPhysical_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("device_id", sa.Integer, nullable=False, index=True),
        sa.Column("entPhysicalIndex", sa.Integer, nullable=False),
        sa.Column("entPhysicalClass", sa.String(64), nullable=True),
        sa.Column("entPhysicalDescr", sa.Text, nullable=True),
        sa.Column("entPhysicalSerialNum", sa.String(64), nullable=True),
    )

    # ── entity_attribs / group_table ─────────
    op.create_table(
        "entity_attribs",
        sa.Column("attrib_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("device_id", sa.Integer, nullable=True, index=True),
        sa.Column("entity_type", sa.String(32), nullable=False, index=True),
        sa.Column("entity_id", sa.Integer, nullable=False, index=True),
        sa.Column("attrib_type", sa.String(64), nullable=False),
        sa.Column("attrib_value", sa.Text, nullable=False, server_default=""),
    )
    op.create_table(
        "group_table",
        sa.Column("group_member_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("group_id", sa.Integer, nullable=False, index=True),
        sa.Column("device_id", sa.Integer, nullable=True, index=True),
        sa.Column("entity_type", sa.String(32), nullable=False, index=True),
        sa.Column("entity_id", sa.Integer, nullable=False, index=True),
    )

    # ── autodiscovery ────────────────────────
    op.create_table(
        "autodiscovery",
        sa.Column("autodiscovery_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("device_id", sa.Integer, nullable=False, index=True),
        sa.Column("port_id", sa.Integer, nullable=True),
        sa.Column("protocol", sa.String(16), nullable=True),
        sa.Column("remote_hostname", sa.String(128), nullable=True),
        sa.Column("remote_ip", sa.String(45), nullable=True),
        sa.Column("remote_device_id", sa.Integer, nullable=True, index=True),
        sa.Column("last_checked", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ── pollers / observium_actions ──────────
    op.create_table(
        "pollers",
        sa.Column("poller_id", sa.Integer, primary_key=True),
        sa.Column("poller_name", sa.String(128), nullable=False, unique=True),
        sa.Column("host_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "observium_actions",
        sa.Column("action_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("action", sa.String(32), nullable=False, index=True),
        sa.Column("identifier", sa.String(128), nullable=False, index=True),
        sa.Column("poller_id", sa.Integer, nullable=False, server_default="0", index=True),
        sa.Column("vars", sa.JSON, nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("result", sa.Text, nullable=True),
        sa.Column("added", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ── eventlog ─────────────────────────────
    op.create_table(
        "eventlog",
        sa.Column("event_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("device_id", sa.Integer, nullable=True, index=True),
        sa.Column("entity_type", sa.String(32), nullable=True),
        sa.Column("entity_id", sa.Integer, nullable=True),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("severity", sa.String(16), nullable=False, server_default="info"),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
    )


def downgrade() -> None:
    op.drop_table("eventlog")
    op.drop_table("observium_actions")
    op.drop_table("pollers")
    op.drop_table("autodiscovery")
    op.drop_table("group_table")
    op.drop_table("entity_attribs")
    op.drop_table("entPhysical")
    op.drop_table("ports")
    op.drop_table("devices_attribs")
    op.drop_table("devices")
