"""Gamma Timetable Database Models."""

from timetable_server.models.pairing import PairingRecord, PairingState
from timetable_server.models.device_token import DeviceToken

__all__ = [
    "PairingRecord",
    "PairingState",
    "DeviceToken",
]
