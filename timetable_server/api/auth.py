"""Device pairing & token API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlmodel import Session

from timetable_server.api.deps import bearer_scheme, limit_registrations, require_session, unauthenticated_error
from timetable_server.database import get_session
from timetable_server.schemas.auth import (
    ExchangeRequest,
    LinkRequest,
    LinkResponse,
    PairErrorResponse,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
)
from timetable_server.services.errors import InvalidToken, PairingError
from timetable_server.services.identity import SessionIdentity
from timetable_server.services.pairing_service import (
    exchange_code,
    link_device,
    register_device,
)
from timetable_server.services.token_service import rotate_token
from timetable_server.utils.clock import isoformat

router = APIRouter(prefix="/devices", tags=["devices"])

_PAIR_ERRORS = {code: {"model": PairErrorResponse} for code in (400, 404, 409, 410, 425)}


def _http_error(e: PairingError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/register", response_model=RegisterResponse, dependencies=[Depends(limit_registrations)])
def register(request: RegisterRequest | None = None, session: Session = Depends(get_session)):
    """Start pairing. Anonymous; returns the device id and a one-time code."""
    fingerprint = request.device_fingerprint if request else None
    registration = register_device(session, device_fingerprint=fingerprint)
    return RegisterResponse(
        device_id=registration.device_id,
        code=registration.code,
        expires_at=isoformat(registration.expires_at),
    )


@router.post("/link", response_model=LinkResponse, responses=_PAIR_ERRORS)
def link(
    request: LinkRequest,
    identity: SessionIdentity = Depends(require_session),
    session: Session = Depends(get_session),
):
    """Link a pairing code to the signed-in user."""
    try:
        device_id = link_device(session, request.code, identity)
    except PairingError as e:
        raise _http_error(e)
    return LinkResponse(device_id=device_id)


@router.post("/exchange", response_model=TokenResponse, responses=_PAIR_ERRORS)
def exchange(request: ExchangeRequest, request_obj: Request, session: Session = Depends(get_session)):
    """Exchange a linked code for a device token. 425 until the user has signed in."""
    try:
        issued = exchange_code(
            session,
            device_id=request.device_id,
            code=request.code,
            user_agent=request_obj.headers.get("User-Agent"),
        )
    except PairingError as e:
        raise _http_error(e)
    return TokenResponse(token=issued.token, expires_at=isoformat(issued.expires_at))


@router.post("/refresh", response_model=TokenResponse)
def refresh(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: Session = Depends(get_session),
):
    """Rotate the presented bearer token. The old token stops working."""
    if credentials is None:
        raise unauthenticated_error()
    try:
        issued = rotate_token(session, credentials.credentials)
    except InvalidToken:
        raise unauthenticated_error()
    return TokenResponse(token=issued.token, expires_at=isoformat(issued.expires_at))
