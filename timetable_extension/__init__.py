"""Extension-side device pairing client for Gamma Timetable."""

from timetable_extension.client import DeviceAuthClient, DeviceInfo, StoredToken
from timetable_extension.device_auth import DeviceAuth
from timetable_extension.poller import DevicePoller, PollerState, PollResult
from timetable_extension.storage import JsonFileStore, MemoryStore

__all__ = [
    "DeviceAuth",
    "DeviceAuthClient",
    "DeviceInfo",
    "DevicePoller",
    "JsonFileStore",
    "MemoryStore",
    "PollResult",
    "PollerState",
    "StoredToken",
]
