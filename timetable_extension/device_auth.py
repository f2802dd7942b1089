"""Extension device authentication: pairing, stored token, rotation."""

import logging
import webbrowser
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from timetable_extension.client import (
    DeviceAuthClient,
    DeviceInfo,
    InvalidTokenError,
    StoredToken,
)
from timetable_extension.config import ClientSettings
from timetable_extension.poller import DevicePoller, PollResult
from timetable_extension.storage import DEVICE_INFO_KEY, DEVICE_TOKEN_KEY, JsonFileStore

logger = logging.getLogger(__name__)


class DeviceAuth:
    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        *,
        store=None,
        client: Optional[DeviceAuthClient] = None,
        open_url: Callable[[str], object] = webbrowser.open,
    ):
        self.settings = settings or ClientSettings()
        self.store = store if store is not None else JsonFileStore(self.settings.storage_path)
        self.client = client or DeviceAuthClient(
            self.settings.api_base_url,
            timeout=self.settings.request_timeout_seconds,
        )
        self._open_url = open_url
        self.poller: Optional[DevicePoller] = None

    def stored_device_info(self) -> Optional[DeviceInfo]:
        data = self.store.load(DEVICE_INFO_KEY)
        return DeviceInfo.from_dict(data) if data else None

    def stored_token(self) -> Optional[StoredToken]:
        data = self.store.load(DEVICE_TOKEN_KEY)
        return StoredToken.from_dict(data) if data else None

    def pair(self, device_fingerprint: Optional[str] = None) -> PollResult:
        """Run a pairing attempt, resuming a stored live code. Blocks until a final state."""
        self.poller = DevicePoller(
            self.client,
            self.store,
            web_base_url=self.settings.web_base_url,
            interval=self.settings.poll_interval_seconds,
            max_wait=self.settings.max_wait_seconds,
            open_url=self._open_url,
        )
        return self.poller.run(device_fingerprint)

    def cancel(self) -> None:
        if self.poller is not None and not self.poller.finished:
            self.poller.cancel()

    def ensure_token(self, now: Optional[datetime] = None) -> Optional[StoredToken]:
        """Return a usable token, rotating it when close to expiry.

        A rejected or expired token is cleared and None is returned; the
        caller then has to pair again. Transient failures propagate.
        """
        token = self.stored_token()
        if token is None:
            return None

        now = now or datetime.now(timezone.utc)
        if token.expires <= now:
            logger.info("Stored device token expired")
            self.store.clear(DEVICE_TOKEN_KEY)
            return None

        if token.expires - now > timedelta(seconds=self.settings.refresh_margin_seconds):
            return token

        try:
            rotated = self.client.rotate(token.token)
        except InvalidTokenError:
            logger.info("Device token rejected during rotation, pairing required")
            self.store.clear(DEVICE_TOKEN_KEY)
            return None

        self.store.save(DEVICE_TOKEN_KEY, rotated.to_dict())
        return rotated

    def sign_out(self) -> None:
        self.store.clear(DEVICE_TOKEN_KEY)
        self.store.clear(DEVICE_INFO_KEY)
