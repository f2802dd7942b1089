"""Connected device schemas."""

from typing import Optional

from pydantic import Field, field_validator

from timetable_server.schemas.auth import CamelModel


class DeviceResponse(CamelModel):
    device_id: str
    device_name: str
    connected_at: str
    last_used: Optional[str]
    expires_at: str
    is_active: bool


class DeviceListResponse(CamelModel):
    devices: list[DeviceResponse]
    total_devices: int
    active_devices: int


class DeviceUpdateRequest(CamelModel):
    device_name: str = Field(max_length=200)

    @field_validator("device_name")
    @classmethod
    def _trimmed_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Device name cannot be empty")
        if len(value) > 100:
            raise ValueError("Device name cannot exceed 100 characters")
        return value
