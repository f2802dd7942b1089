"""Device pairing business logic.

A browser extension registers anonymously and receives a pairing code.
The user opens the web app with that code and signs in; the web app links
the code to the signed-in identity. The extension polls the exchange until
the link lands and then receives its device token, exactly once.

Pairing state lives in the ``device_registrations`` table. Every state
change is a conditional UPDATE/DELETE so racing tabs and devices cannot
both win.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from timetable_server.config import settings
from timetable_server.database import execute_rowcount
from timetable_server.models.pairing import PairingRecord, PairingState, can_transition
from timetable_server.services.errors import (
    AlreadyLinked,
    CodeExpired,
    CodeNotFound,
    CodeSpaceExhausted,
    DeviceIdMismatch,
    PairingPending,
)
from timetable_server.services.identity import Identity
from timetable_server.services.token_service import IssuedToken, issue_token
from timetable_server.utils.clock import utcnow
from timetable_server.utils.security import generate_pairing_code, hash_code
from timetable_server.utils.user_agent import derive_device_name

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 5


@dataclass(frozen=True)
class Registration:
    device_id: str
    code: str
    expires_at: datetime


def _find_by_code(session: Session, code_hash: str) -> Optional[PairingRecord]:
    return session.exec(select(PairingRecord).where(PairingRecord.code_hash == code_hash)).first()


def _delete_record(session: Session, device_id: str) -> None:
    execute_rowcount(session, delete(PairingRecord).where(PairingRecord.device_id == device_id))
    session.commit()


def register_device(session: Session, device_fingerprint: Optional[str] = None) -> Registration:
    """Create a pairing record and return its one-time code."""
    now = utcnow()
    expires_at = now + timedelta(seconds=settings.pairing_ttl_seconds)

    for _ in range(MAX_CODE_ATTEMPTS):
        code = generate_pairing_code()
        code_hash = hash_code(code)

        # An expired record holding the same code no longer owns it
        execute_rowcount(
            session,
            delete(PairingRecord).where(
                PairingRecord.code_hash == code_hash,
                PairingRecord.expires_at <= now,
            ),
        )
        record = PairingRecord(
            code_hash=code_hash,
            device_fingerprint=device_fingerprint,
            expires_at=expires_at,
        )
        device_id = record.device_id
        session.add(record)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.warning("Pairing code collision, retrying")
            continue

        logger.info("Registered device %s, code valid until %s", device_id, expires_at.isoformat())
        return Registration(device_id=device_id, code=code, expires_at=expires_at)

    logger.error("Gave up allocating a pairing code after %d collisions", MAX_CODE_ATTEMPTS)
    raise CodeSpaceExhausted()


def link_device(session: Session, code: str, identity: Identity) -> str:
    """Bind a signed-in identity to a pending pairing code. Returns the device id.

    Linking the same code to the same user again succeeds; linking it to a
    different user raises AlreadyLinked.
    """
    now = utcnow()
    code_hash = hash_code(code)

    record = _find_by_code(session, code_hash)
    if record is None:
        raise CodeNotFound()

    device_id = record.device_id
    if record.is_expired(now):
        _delete_record(session, device_id)
        logger.info("Removed expired pairing for device %s", device_id)
        raise CodeExpired()

    if can_transition(record.state, PairingState.LINKED):
        claimed = execute_rowcount(
            session,
            update(PairingRecord)
            .where(
                PairingRecord.device_id == device_id,
                PairingRecord.state == PairingState.CREATED,
                PairingRecord.expires_at > now,
            )
            .values(
                state=PairingState.LINKED,
                linked_user_id=identity.user_id,
                linked_user_email=identity.email,
                linked_at=now,
            ),
        )
        if claimed == 1:
            session.commit()
            logger.info("Linked device %s to user %s", device_id, identity.user_id)
            return device_id

        # Someone else moved the record first; re-read what they committed
        session.rollback()
        record = _find_by_code(session, code_hash)
        if record is None:
            raise CodeNotFound()

    if record.state == PairingState.LINKED and record.linked_user_id == identity.user_id:
        return device_id

    logger.warning(
        "Refused to relink device %s (owned by %s) to user %s",
        device_id,
        record.linked_user_id,
        identity.user_id,
    )
    raise AlreadyLinked()


def exchange_code(
    session: Session,
    device_id: str,
    code: str,
    user_agent: Optional[str] = None,
) -> IssuedToken:
    """Turn a linked pairing record into a device token, at most once.

    Claiming the record, deleting it and writing the token row happen in one
    transaction. If anything fails before commit the record stays linked
    and no token exists.
    """
    now = utcnow()
    code_hash = hash_code(code)

    record = _find_by_code(session, code_hash)
    if record is None:
        raise CodeNotFound()

    if record.is_expired(now):
        _delete_record(session, record.device_id)
        raise CodeNotFound("Code expired")

    if record.device_id != device_id:
        logger.warning("Exchange for device %s presented a code issued to another device", device_id)
        raise DeviceIdMismatch()

    if record.state == PairingState.CREATED:
        raise PairingPending()
    if not can_transition(record.state, PairingState.EXCHANGED):
        raise CodeNotFound()

    user_id = record.linked_user_id
    user_email = record.linked_user_email
    fingerprint = record.device_fingerprint

    claimed = execute_rowcount(
        session,
        update(PairingRecord)
        .where(
            PairingRecord.device_id == device_id,
            PairingRecord.code_hash == code_hash,
            PairingRecord.state == PairingState.LINKED,
        )
        .values(state=PairingState.EXCHANGED),
    )
    if claimed != 1:
        session.rollback()
        raise CodeNotFound()

    execute_rowcount(session, delete(PairingRecord).where(PairingRecord.device_id == device_id))
    session.expunge(record)

    issued = issue_token(
        session,
        device_id=device_id,
        user_id=user_id,
        user_email=user_email,
        device_name=derive_device_name(user_agent, device_id),
        device_fingerprint=fingerprint,
    )
    session.commit()

    logger.info("Issued device token for device %s (user %s)", device_id, user_id)
    return issued


def purge_expired_registrations(session: Session) -> int:
    removed = execute_rowcount(session, delete(PairingRecord).where(PairingRecord.expires_at <= utcnow()))
    session.commit()
    if removed:
        logger.info("Removed %d expired pairing records", removed)
    return removed
