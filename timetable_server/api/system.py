"""System status API endpoints."""

from fastapi import APIRouter, Depends

from timetable_server.api.deps import require_identity
from timetable_server.schemas.auth import PingResponse
from timetable_server.services.identity import DeviceIdentity, Identity

router = APIRouter(tags=["system"])


@router.get("/health")
def health():
    """Lightweight health check (no auth required)."""
    return {"status": "ok"}


@router.get("/protected/ping", response_model=PingResponse)
def protected_ping(identity: Identity = Depends(require_identity)):
    """Echo the caller's identity. Accepts a web session or a device token."""
    return PingResponse(
        kind=identity.kind.value,
        user_id=identity.user_id,
        email=identity.email,
        device_id=identity.device_id if isinstance(identity, DeviceIdentity) else None,
    )
