"""Device add, detect, recheck, attribute and delete endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import ORJSONResponse
from redis.exceptions import RedisError

from device_inventory.api.deps import get_device_manager
from device_inventory.schemas.device import (
    AddDeviceOut,
    AttribUpdate,
    DeleteOut,
    DetectAuthOut,
    DetectAuthRequest,
    DeviceCreate,
    DeviceListOut,
    DeviceOut,
    DuplicatesOut,
    MessageOut,
    OsRecheckOut,
)
from device_inventory.services.devices import AddDeviceResult, AddOutcome, DeviceManager
from device_inventory.services.duplicates import DeviceCandidate
from device_inventory.services.messages import MessageTrail
from device_inventory.services.snmp import SnmpTarget
from device_inventory.utils.logging import get_logger

log = get_logger("api.devices")

router = APIRouter(prefix="/devices", tags=["devices"])

_OUTCOME_STATUS = {AddOutcome.ADDED: 201, AddOutcome.TESTED: 200, AddOutcome.QUEUED: 202}


def _add_response(result: AddDeviceResult) -> ORJSONResponse:
    body = AddDeviceOut(
        outcome=result.outcome.value,
        hostname=result.hostname,
        device_id=result.device_id,
        os=result.os,
        action_id=result.action_id,
        error=result.error,
        messages=[MessageOut(**m.as_dict()) for m in result.messages],
    )
    status = _OUTCOME_STATUS.get(result.outcome, result.http_status)
    return ORJSONResponse(status_code=status, content=body.model_dump())


async def _get_or_404(manager: DeviceManager, device_id: int):
    device = await manager.repo.fetch_device(device_id)
    if device is None:
        raise HTTPException(404, "Device not found")
    return device


@router.get("", response_model=DeviceListOut)
async def list_devices(
    os: str | None = None,
    poller_id: int | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    manager: DeviceManager = Depends(get_device_manager),
):
    devices, total = await manager.repo.list_devices((page - 1) * page_size, page_size, os, poller_id)
    return DeviceListOut(
        items=[DeviceOut.model_validate(d) for d in devices], total=total, page=page, page_size=page_size,
    )


@router.post("", response_model=AddDeviceOut, status_code=201)
async def add_device(body: DeviceCreate, manager: DeviceManager = Depends(get_device_manager)):
    """Add a device, test its credentials only, or queue it for a remote poller."""
    result = await manager.add_device_vars(body.model_dump(exclude_none=True))
    if result.ok:
        await manager.session.commit()
    else:
        await manager.session.rollback()
    return _add_response(result)


@router.post("/detect-auth", response_model=DetectAuthOut)
async def detect_auth(body: DetectAuthRequest, manager: DeviceManager = Depends(get_device_manager)):
    """Find the first configured credential set the agent answers to."""
    trail = MessageTrail(body.hostname)
    target = await manager.detect_device_snmpauth(
        body.hostname, body.snmp_port, body.snmp_transport, body.detect_ip_version, trail,
    )
    messages = [MessageOut(**m.as_dict()) for m in trail]
    if target is None:
        return DetectAuthOut(hostname=body.hostname, found=False, messages=messages)

    credentials = {
        k: v for k, v in target.device_fields().items()
        if k in ("snmp_community", "snmp_authlevel", "snmp_authname", "snmp_authalgo", "snmp_cryptoalgo")
    }
    if manager.config.hide_auth:
        credentials = {k: ("***" if v and k == "snmp_community" else v) for k, v in credentials.items()}
    return DetectAuthOut(
        hostname=target.hostname,
        found=True,
        snmp_version=target.version,
        snmp_transport=target.transport,
        snmp_port=target.port,
        credentials=credentials,
        messages=messages,
    )


@router.post("/requests/{request_id}/cancel", status_code=204)
async def cancel_add(request_id: str, manager: DeviceManager = Depends(get_device_manager)):
    """Stop an in-flight add before its next credential attempt."""
    if manager.scheduler is None:
        raise HTTPException(503, "Cancellation is not available")
    try:
        await manager.scheduler.cancel_request(request_id)
    except RedisError as exc:
        log.warning("cancel_request_failed", request_id=request_id, error=str(exc))
        raise HTTPException(503, "Cancellation is not available") from exc


@router.get("/{device_id}", response_model=DeviceOut)
async def get_device(device_id: int, manager: DeviceManager = Depends(get_device_manager)):
    return DeviceOut.model_validate(await _get_or_404(manager, device_id))


@router.delete("/{device_id}", response_model=DeleteOut)
async def delete_device(
    device_id: int,
    delete_rrd: bool = False,
    manager: DeviceManager = Depends(get_device_manager),
):
    """Remove a device with its ports, entity rows and optionally its RRD directory."""
    report = await manager.delete_device(device_id, delete_rrd)
    if report is None:
        raise HTTPException(404, "Device not found")
    await manager.session.commit()
    return DeleteOut(**report.as_dict(), summary=str(report))


@router.get("/{device_id}/duplicates", response_model=DuplicatesOut)
async def find_duplicates(device_id: int, manager: DeviceManager = Depends(get_device_manager)):
    """Other inventory rows that look like the same agent as this device."""
    device = await _get_or_404(manager, device_id)
    target = SnmpTarget.from_device(device, manager.config.snmp_timeout, manager.config.snmp_retries)
    trail = MessageTrail(device.hostname)
    verdict = await manager.resolver.check(DeviceCandidate(target, device_id=device_id, os=device.os), trail)
    return DuplicatesOut(
        device_id=device_id,
        kind=verdict.kind.value,
        device_ids=verdict.device_ids,
        possible_ids=[d.device_id for d in verdict.possible],
        reason=verdict.reason,
        messages=[MessageOut(**m.as_dict()) for m in trail],
    )


@router.post("/{device_id}/recheck-os", response_model=OsRecheckOut)
async def recheck_os(device_id: int, manager: DeviceManager = Depends(get_device_manager)):
    match = await manager.recheck_device_os(device_id)
    if match is None:
        raise HTTPException(404, "Device not found")
    await manager.session.commit()
    return OsRecheckOut(device_id=device_id, os=match.os, matched_by=match.matched_by)


# ── Attributes ──────────────────────────────────

@router.get("/{device_id}/attribs", response_model=dict[str, str])
async def list_attribs(device_id: int, manager: DeviceManager = Depends(get_device_manager)):
    await _get_or_404(manager, device_id)
    return await manager.get_dev_attribs(device_id)


@router.put("/{device_id}/attribs/{attrib_type}", status_code=204)
async def set_attrib(
    device_id: int, attrib_type: str, body: AttribUpdate, manager: DeviceManager = Depends(get_device_manager),
):
    await _get_or_404(manager, device_id)
    await manager.set_dev_attrib(device_id, attrib_type, body.value)
    await manager.session.commit()


@router.delete("/{device_id}/attribs/{attrib_type}", status_code=204)
async def del_attrib(device_id: int, attrib_type: str, manager: DeviceManager = Depends(get_device_manager)):
    if not await manager.del_dev_attrib(device_id, attrib_type):
        raise HTTPException(404, "Attribute not found")
    await manager.session.commit()
