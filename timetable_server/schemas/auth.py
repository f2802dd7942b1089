"""Pairing and token request/response schemas.

The extension speaks camelCase JSON; fields are snake_case in Python.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Pairing ---

class RegisterRequest(CamelModel):
    device_fingerprint: Optional[str] = Field(default=None, max_length=256)


class RegisterResponse(CamelModel):
    device_id: str
    code: str
    expires_at: str


class LinkRequest(CamelModel):
    code: str = Field(min_length=1, max_length=64)


class LinkResponse(CamelModel):
    device_id: str


class ExchangeRequest(CamelModel):
    device_id: str = Field(min_length=1, max_length=64)
    code: str = Field(min_length=1, max_length=64)


# --- Tokens ---

class TokenResponse(CamelModel):
    token: str
    expires_at: str


class PairErrorDetail(BaseModel):
    error: str
    message: str


class PairErrorResponse(BaseModel):
    detail: PairErrorDetail


# --- Protected ---

class PingResponse(CamelModel):
    ok: bool = True
    kind: str
    user_id: str
    email: Optional[str] = None
    device_id: Optional[str] = None
