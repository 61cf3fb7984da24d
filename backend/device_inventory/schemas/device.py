"""Device Pydantic schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from device_inventory.config import SNMP_TRANSPORTS, SNMP_VERSIONS


class DeviceOut(BaseModel):
    """Device response. Credentials are never returned."""
    device_id: int
    hostname: str
    ip: str | None = None
    snmp_version: str
    snmp_transport: str
    snmp_port: int
    snmp_context: str | None = None
    sys_object_id: str | None = None
    sys_descr: str | None = None
    sys_name: str | None = None
    snmp_engine_id: str | None = None
    location: str | None = None
    os: str | None = None
    status: int = 0
    disabled: bool = False
    poller_id: int = 0
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class DeviceListOut(BaseModel):
    items: list[DeviceOut]
    total: int
    page: int
    page_size: int


class DeviceCreate(BaseModel):
    """Add-device request. Field names follow the web form variables."""
    hostname: str = Field(..., min_length=1, max_length=128)
    poller_id: int | None = None
    snmp_version: str | None = None
    snmp_transport: str = "udp"
    snmp_port: int = Field(161, ge=1, le=65535)
    snmp_community: str | None = None
    snmp_authlevel: str | None = None
    snmp_authname: str | None = None
    snmp_authpass: str | None = None
    snmp_authalgo: str | None = None
    snmp_cryptopass: str | None = None
    snmp_cryptoalgo: str | None = None
    snmp_context: str | None = None
    snmp_timeout: float | None = Field(None, gt=0)
    snmp_retries: int | None = Field(None, ge=0, le=10)
    snmp_maxrep: int | None = Field(None, ge=0, le=500)
    snmpable: str | None = None
    ping_skip: bool = False
    ignorerrd: bool = False
    test: bool = False
    request_id: str | None = None

    @field_validator("snmp_version")
    @classmethod
    def check_version(cls, v: str | None) -> str | None:
        if v is not None and v not in SNMP_VERSIONS:
            raise ValueError(f"snmp_version must be one of {', '.join(SNMP_VERSIONS)}")
        return v

    @field_validator("snmp_transport")
    @classmethod
    def check_transport(cls, v: str) -> str:
        v = v.lower()
        if v not in SNMP_TRANSPORTS:
            raise ValueError(f"snmp_transport must be one of {', '.join(SNMP_TRANSPORTS)}")
        return v


class MessageOut(BaseModel):
    level: str
    text: str


class AddDeviceOut(BaseModel):
    outcome: str
    hostname: str
    device_id: int | None = None
    os: str | None = None
    action_id: int | None = None
    error: str | None = None
    messages: list[MessageOut] = []


class DetectAuthRequest(BaseModel):
    hostname: str = Field(..., min_length=1, max_length=128)
    snmp_port: int = Field(161, ge=1, le=65535)
    snmp_transport: str = "udp"
    detect_ip_version: bool = False


class DetectAuthOut(BaseModel):
    hostname: str
    found: bool
    snmp_version: str | None = None
    snmp_transport: str | None = None
    snmp_port: int | None = None
    credentials: dict[str, str | None] = {}
    messages: list[MessageOut] = []


class DeleteOut(BaseModel):
    device_id: int
    hostname: str
    ports: list[dict] = []
    entities: dict[str, int] = {}
    tables: dict[str, int] = {}
    failed: dict[str, str] = {}
    rrd_removed: str | None = None
    summary: str


class OsRecheckOut(BaseModel):
    device_id: int
    os: str
    matched_by: str


class AttribUpdate(BaseModel):
    value: str


class DuplicatesOut(BaseModel):
    device_id: int
    kind: str
    device_ids: list[int] = []
    possible_ids: list[int] = []
    reason: str | None = None
    messages: list[MessageOut] = []
