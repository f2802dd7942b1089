"""Device token model."""

import secrets
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from timetable_server.utils.clock import as_utc, utcnow


class DeviceToken(SQLModel, table=True):
    __tablename__ = "device_tokens"

    id: str = Field(default_factory=lambda: f"dtk_{secrets.token_hex(6)}", primary_key=True)
    token_hash: str = Field(unique=True, index=True)  # sha256 of the bearer token
    device_id: str = Field(unique=True, index=True)
    user_id: str = Field(index=True)
    user_email: Optional[str] = None
    device_name: str
    device_fingerprint: Optional[str] = None
    issued_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime
    last_used_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return as_utc(self.expires_at) <= (now or utcnow())
