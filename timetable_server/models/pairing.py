"""Pairing record model: an in-flight device registration."""

import enum
import secrets
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from timetable_server.utils.clock import as_utc, utcnow


class PairingState(str, enum.Enum):
    CREATED = "created"
    LINKED = "linked"
    EXCHANGED = "exchanged"


ALLOWED_TRANSITIONS: dict[PairingState, frozenset[PairingState]] = {
    PairingState.CREATED: frozenset({PairingState.LINKED}),
    PairingState.LINKED: frozenset({PairingState.EXCHANGED}),
    PairingState.EXCHANGED: frozenset(),
}


def can_transition(current: PairingState, target: PairingState) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class PairingRecord(SQLModel, table=True):
    __tablename__ = "device_registrations"

    device_id: str = Field(default_factory=lambda: f"dev_{secrets.token_hex(8)}", primary_key=True)
    code_hash: str = Field(unique=True, index=True)  # sha256 of the pairing code
    state: PairingState = Field(default=PairingState.CREATED)
    device_fingerprint: Optional[str] = None
    linked_user_id: Optional[str] = None
    linked_user_email: Optional[str] = None
    expires_at: datetime
    linked_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def linked(self) -> bool:
        return self.state == PairingState.LINKED

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return as_utc(self.expires_at) <= (now or utcnow())
