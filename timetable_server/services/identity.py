"""Request identity resolution.

A protected request is authenticated either by the identity provider's
session (the web dashboard) or by a device bearer token (the extension).
Both resolve to an ``Identity``; code that needs to treat them differently
branches on ``Identity.kind``.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Union

import jwt
from sqlmodel import Session

from timetable_server.config import settings
from timetable_server.services.token_service import validate_token

logger = logging.getLogger(__name__)


class IdentityKind(str, enum.Enum):
    SESSION = "session"
    DEVICE = "device"


@dataclass(frozen=True)
class SessionIdentity:
    user_id: str
    email: Optional[str] = None
    kind: IdentityKind = IdentityKind.SESSION


@dataclass(frozen=True)
class DeviceIdentity:
    user_id: str
    email: Optional[str]
    device_id: str
    device_name: str
    kind: IdentityKind = IdentityKind.DEVICE


Identity = Union[SessionIdentity, DeviceIdentity]


class AuthPolicy(str, enum.Enum):
    SESSION_ONLY = "session_only"
    DEVICE_ONLY = "device_only"
    SESSION_OR_DEVICE = "session_or_device"


class SessionVerifier(Protocol):
    def verify(self, session_token: str) -> Optional[SessionIdentity]:
        ...


class JwtSessionVerifier:
    """Verifies identity-provider session JWTs signed with a shared secret."""

    def __init__(self, secret: str, algorithm: str = "HS256", audience: Optional[str] = None):
        self._secret = secret
        self._algorithm = algorithm
        self._audience = audience

    def verify(self, session_token: str) -> Optional[SessionIdentity]:
        options = {"require": ["exp", "sub"], "verify_aud": bool(self._audience)}
        try:
            payload = jwt.decode(
                session_token,
                self._secret,
                algorithms=[self._algorithm],
                audience=self._audience or None,
                options=options,
            )
        except jwt.PyJWTError as e:
            logger.debug("Session token rejected: %s", e)
            return None

        user_id = payload.get("sub")
        if not user_id:
            return None
        return SessionIdentity(user_id=str(user_id), email=payload.get("email"))


def default_session_verifier() -> JwtSessionVerifier:
    return JwtSessionVerifier(
        settings.session_jwt_secret,
        algorithm=settings.session_jwt_algorithm,
        audience=settings.session_jwt_audience,
    )


@dataclass(frozen=True)
class RequestCredentials:
    """Raw credentials a request carried, as extracted by the API's security schemes."""

    session_token: Optional[str] = None
    bearer_token: Optional[str] = None


class RequestGuard:
    """Resolves request credentials to an Identity according to an AuthPolicy."""

    def __init__(self, verifier: SessionVerifier, session: Session):
        self._verifier = verifier
        self._session = session

    def _resolve_session(self, credentials: RequestCredentials) -> Optional[SessionIdentity]:
        if not credentials.session_token:
            return None
        return self._verifier.verify(credentials.session_token)

    def _resolve_device(self, credentials: RequestCredentials) -> Optional[DeviceIdentity]:
        if not credentials.bearer_token:
            return None
        token = validate_token(self._session, credentials.bearer_token)
        if token is None:
            return None
        return DeviceIdentity(
            user_id=token.user_id,
            email=token.user_email,
            device_id=token.device_id,
            device_name=token.device_name,
        )

    def resolve(self, credentials: RequestCredentials, policy: AuthPolicy) -> Optional[Identity]:
        if policy in (AuthPolicy.SESSION_ONLY, AuthPolicy.SESSION_OR_DEVICE):
            identity = self._resolve_session(credentials)
            if identity is not None:
                return identity
        if policy in (AuthPolicy.DEVICE_ONLY, AuthPolicy.SESSION_OR_DEVICE):
            return self._resolve_device(credentials)
        return None
