"""Extension-side client configuration."""

from pathlib import Path

from pydantic_settings import BaseSettings


class ClientSettings(BaseSettings):
    api_base_url: str = "http://localhost:8080"
    web_base_url: str = "http://localhost:3000"
    storage_path: Path = Path.home() / "gamma-timetable" / "extension" / "storage.json"

    # Polling (matches the server's 5 minute pairing window)
    poll_interval_seconds: float = 2.5
    max_wait_seconds: float = 300
    request_timeout_seconds: float = 10.0

    # Rotate a stored token when it has less than this left
    refresh_margin_seconds: float = 3600

    model_config = {"env_prefix": "TIMETABLE_EXTENSION_"}
