"""Derive a human-readable device label from request metadata."""

from typing import Optional

# Order matters: Edge and Opera also advertise "Chrome", Chrome advertises "Safari"
_BROWSERS = [
    ("Edg/", "Edge"),
    ("OPR/", "Opera"),
    ("Firefox/", "Firefox"),
    ("Chrome/", "Chrome"),
    ("Safari/", "Safari"),
]

_PLATFORMS = [
    ("CrOS", "ChromeOS"),
    ("Android", "Android"),
    ("iPhone", "iOS"),
    ("iPad", "iOS"),
    ("Mac OS X", "macOS"),
    ("Macintosh", "macOS"),
    ("Windows", "Windows"),
    ("Linux", "Linux"),
]


def _first_match(user_agent: str, table: list[tuple[str, str]]) -> Optional[str]:
    for needle, label in table:
        if needle in user_agent:
            return label
    return None


def derive_device_name(user_agent: Optional[str], device_id: str) -> str:
    """'Chrome on macOS' style label, or a fallback built from the device id."""
    ua = user_agent or ""
    browser = _first_match(ua, _BROWSERS)
    platform = _first_match(ua, _PLATFORMS)

    if browser and platform:
        return f"{browser} on {platform}"
    if browser:
        return f"{browser} Extension"

    short_id = device_id.removeprefix("dev_")[:8]
    return f"Chrome Extension ({short_id}...)"
