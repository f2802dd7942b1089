"""Common API dependencies: credential extraction, identity resolution per auth policy."""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyCookie, APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from timetable_server.config import settings
from timetable_server.database import get_session
from timetable_server.services.identity import (
    AuthPolicy,
    DeviceIdentity,
    Identity,
    RequestCredentials,
    RequestGuard,
    SessionIdentity,
    SessionVerifier,
    default_session_verifier,
)
from timetable_server.services.rate_limit import SlidingWindowLimiter

# One body for every authentication failure, whatever the reason
UNAUTHENTICATED = {"error": "unauthenticated"}

SESSION_HEADER = "X-Session-Token"

bearer_scheme = HTTPBearer(auto_error=False)
session_cookie_scheme = APIKeyCookie(name=settings.session_cookie_name, auto_error=False)
session_header_scheme = APIKeyHeader(name=SESSION_HEADER, auto_error=False)

register_limiter = SlidingWindowLimiter(
    settings.register_rate_limit,
    settings.register_rate_window_seconds,
)


def get_session_verifier() -> SessionVerifier:
    """Overridable in tests via app.dependency_overrides."""
    return default_session_verifier()


def get_request_guard(
    verifier: SessionVerifier = Depends(get_session_verifier),
    session: Session = Depends(get_session),
) -> RequestGuard:
    return RequestGuard(verifier, session)


def get_credentials(
    bearer: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session_cookie: Optional[str] = Depends(session_cookie_scheme),
    session_header: Optional[str] = Depends(session_header_scheme),
) -> RequestCredentials:
    """Collect whatever credentials the request carries. Cookie wins over header."""
    return RequestCredentials(
        session_token=session_cookie or session_header,
        bearer_token=bearer.credentials if bearer else None,
    )


def unauthenticated_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=UNAUTHENTICATED,
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_session(
    credentials: RequestCredentials = Depends(get_credentials),
    guard: RequestGuard = Depends(get_request_guard),
) -> SessionIdentity:
    """Require a signed-in web session."""
    identity = guard.resolve(credentials, AuthPolicy.SESSION_ONLY)
    if identity is None:
        raise unauthenticated_error()
    return identity


def require_device(
    credentials: RequestCredentials = Depends(get_credentials),
    guard: RequestGuard = Depends(get_request_guard),
) -> DeviceIdentity:
    """Require a valid device bearer token."""
    identity = guard.resolve(credentials, AuthPolicy.DEVICE_ONLY)
    if identity is None:
        raise unauthenticated_error()
    return identity


def require_identity(
    credentials: RequestCredentials = Depends(get_credentials),
    guard: RequestGuard = Depends(get_request_guard),
) -> Identity:
    """Accept either credential, session first."""
    identity = guard.resolve(credentials, AuthPolicy.SESSION_OR_DEVICE)
    if identity is None:
        raise unauthenticated_error()
    return identity


def client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def limit_registrations(request: Request) -> None:
    if not register_limiter.allow(client_address(request)):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"error": "rate_limited", "message": "Too many registrations, try again later"},
        )
