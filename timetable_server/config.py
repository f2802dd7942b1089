"""Gamma Timetable Server Configuration."""

import secrets
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Server
    server_name: str = "Gamma Timetable"
    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]

    # Paths
    data_dir: Path = Path.home() / "gamma-timetable" / "data"

    # Database
    db_path: Path = Path.home() / "gamma-timetable" / "data" / "timetable.db"
    database_url: str = ""  # overrides db_path when set

    # Pairing
    pairing_ttl_seconds: float = 300  # 5 minutes
    register_rate_limit: int = 10
    register_rate_window_seconds: float = 60

    # Device tokens
    device_token_ttl_seconds: float = 86400  # 24 hours

    # Identity provider session (HS256 JWT shared secret)
    session_jwt_secret: str = ""
    session_jwt_algorithm: str = "HS256"
    session_jwt_audience: str = "authenticated"
    session_cookie_name: str = "sb-access-token"

    model_config = {"env_prefix": "TIMETABLE_"}

    @property
    def sqlalchemy_url(self) -> str:
        return self.database_url or f"sqlite:///{self.db_path}"

    def ensure_dirs(self) -> None:
        """Create all required directories."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def ensure_secrets(self) -> None:
        """Generate secrets if not set, persist to file so they survive restarts."""
        secrets_file = self.data_dir / ".secrets"
        saved = {}
        if secrets_file.exists():
            for line in secrets_file.read_text().strip().splitlines():
                if "=" in line:
                    k, v = line.split("=", 1)
                    saved[k.strip()] = v.strip()

        if not self.session_jwt_secret:
            self.session_jwt_secret = saved.get("session_jwt_secret", "") or secrets.token_urlsafe(32)

        # Persist for next restart
        secrets_file.write_text(f"session_jwt_secret={self.session_jwt_secret}\n")


settings = Settings()
settings.ensure_dirs()
settings.ensure_secrets()
