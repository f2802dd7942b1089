"""Device token issuance, validation and rotation.

Only the SHA-256 hash of a bearer token is stored. The raw value exists
outside the caller's hands only inside ``issue_token``'s return value.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, update
from sqlmodel import Session, select

from timetable_server.config import settings
from timetable_server.database import execute_rowcount
from timetable_server.models.device_token import DeviceToken
from timetable_server.services.errors import InvalidToken
from timetable_server.utils.clock import utcnow
from timetable_server.utils.security import generate_device_token, hash_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime
    device_id: str
    user_id: str


def issue_token(
    session: Session,
    *,
    device_id: str,
    user_id: str,
    user_email: Optional[str],
    device_name: str,
    device_fingerprint: Optional[str] = None,
) -> IssuedToken:
    """Stage a fresh token row for a device. The caller commits.

    Any previous row for the same device is removed so only one token per
    device session stays valid.
    """
    now = utcnow()
    expires_at = now + timedelta(seconds=settings.device_token_ttl_seconds)
    raw_token = generate_device_token()

    execute_rowcount(session, delete(DeviceToken).where(DeviceToken.device_id == device_id))
    session.add(
        DeviceToken(
            token_hash=hash_token(raw_token),
            device_id=device_id,
            user_id=user_id,
            user_email=user_email,
            device_name=device_name,
            device_fingerprint=device_fingerprint,
            issued_at=now,
            expires_at=expires_at,
            last_used_at=now,
        )
    )
    return IssuedToken(token=raw_token, expires_at=expires_at, device_id=device_id, user_id=user_id)


def _find_by_token(session: Session, raw_token: str) -> Optional[DeviceToken]:
    if not raw_token:
        return None
    return session.exec(
        select(DeviceToken).where(DeviceToken.token_hash == hash_token(raw_token))
    ).first()


def validate_token(session: Session, raw_token: str) -> Optional[DeviceToken]:
    """Return the token row for a valid bearer token and touch ``last_used_at``.

    Unknown, expired and malformed tokens all return None, and so does a
    token rotated or revoked between the lookup and the touch.
    """
    now = utcnow()
    token = _find_by_token(session, raw_token)
    if token is None or token.is_expired(now):
        return None

    touched = execute_rowcount(
        session,
        update(DeviceToken)
        .where(
            DeviceToken.id == token.id,
            DeviceToken.token_hash == token.token_hash,
            DeviceToken.expires_at > now,
        )
        .values(last_used_at=now),
    )
    if touched != 1:
        session.rollback()
        return None

    session.expunge(token)
    session.commit()
    token.last_used_at = now
    return token


def rotate_token(session: Session, raw_token: str) -> IssuedToken:
    """Swap a valid token for a new one. The presented token stops validating.

    Raises InvalidToken for unknown or expired tokens and for the loser of
    two concurrent rotations of the same token.
    """
    now = utcnow()
    current = _find_by_token(session, raw_token)
    if current is None:
        raise InvalidToken()

    token_id = current.id
    if current.is_expired(now):
        execute_rowcount(session, delete(DeviceToken).where(DeviceToken.id == token_id))
        session.commit()
        raise InvalidToken()

    carried = {
        "device_id": current.device_id,
        "user_id": current.user_id,
        "user_email": current.user_email,
        "device_name": current.device_name,
        "device_fingerprint": current.device_fingerprint,
    }

    removed = execute_rowcount(
        session,
        delete(DeviceToken).where(
            DeviceToken.id == token_id,
            DeviceToken.token_hash == current.token_hash,
        ),
    )
    if removed != 1:
        session.rollback()
        raise InvalidToken()
    session.expunge(current)

    issued = issue_token(session, **carried)
    session.commit()

    logger.info("Rotated token for device %s (user %s)", issued.device_id, issued.user_id)
    return issued


def list_user_devices(session: Session, user_id: str) -> list[DeviceToken]:
    return list(
        session.exec(
            select(DeviceToken)
            .where(DeviceToken.user_id == user_id)
            .order_by(DeviceToken.issued_at.desc())
        ).all()
    )


def get_user_device(session: Session, user_id: str, device_id: str) -> Optional[DeviceToken]:
    return session.exec(
        select(DeviceToken).where(
            DeviceToken.device_id == device_id,
            DeviceToken.user_id == user_id,
        )
    ).first()


def revoke_device(session: Session, user_id: str, device_id: str) -> bool:
    removed = execute_rowcount(
        session,
        delete(DeviceToken).where(
            DeviceToken.device_id == device_id,
            DeviceToken.user_id == user_id,
        ),
    )
    session.commit()
    if removed:
        logger.info("Revoked device %s for user %s", device_id, user_id)
    return removed > 0


def purge_expired_tokens(session: Session) -> int:
    removed = execute_rowcount(session, delete(DeviceToken).where(DeviceToken.expires_at <= utcnow()))
    session.commit()
    if removed:
        logger.info("Removed %d expired device tokens", removed)
    return removed
