"""Connected device management API endpoints (web dashboard)."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session

from timetable_server.api.deps import require_session
from timetable_server.database import get_session
from timetable_server.models.device_token import DeviceToken
from timetable_server.schemas.devices import DeviceListResponse, DeviceResponse, DeviceUpdateRequest
from timetable_server.services.identity import SessionIdentity
from timetable_server.services.token_service import (
    get_user_device,
    list_user_devices,
    revoke_device,
)
from timetable_server.utils.clock import isoformat

router = APIRouter(prefix="/user/devices", tags=["user-devices"])


def _to_response(d: DeviceToken) -> DeviceResponse:
    return DeviceResponse(
        device_id=d.device_id,
        device_name=d.device_name,
        connected_at=isoformat(d.issued_at),
        last_used=isoformat(d.last_used_at) if d.last_used_at else None,
        expires_at=isoformat(d.expires_at),
        is_active=not d.is_expired(),
    )


@router.get("", response_model=DeviceListResponse)
def list_devices(
    identity: SessionIdentity = Depends(require_session),
    session: Session = Depends(get_session),
):
    """List all devices paired to the signed-in user."""
    devices = [_to_response(d) for d in list_user_devices(session, identity.user_id)]
    return DeviceListResponse(
        devices=devices,
        total_devices=len(devices),
        active_devices=sum(1 for d in devices if d.is_active),
    )


@router.patch("/{device_id}", response_model=DeviceResponse)
def rename_device(
    device_id: str,
    request: DeviceUpdateRequest,
    identity: SessionIdentity = Depends(require_session),
    session: Session = Depends(get_session),
):
    """Rename a device."""
    device = get_user_device(session, identity.user_id, device_id)
    if not device:
        raise HTTPException(status_code=404, detail="Device not found")

    device.device_name = request.device_name
    session.add(device)
    session.commit()
    session.refresh(device)
    return _to_response(device)


@router.delete("/{device_id}", status_code=status.HTTP_204_NO_CONTENT)
def revoke(
    device_id: str,
    identity: SessionIdentity = Depends(require_session),
    session: Session = Depends(get_session),
):
    """Revoke (unpair) a device. Its token stops working immediately."""
    if not revoke_device(session, identity.user_id, device_id):
        raise HTTPException(status_code=404, detail="Device not found")
