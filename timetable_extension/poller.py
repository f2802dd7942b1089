"""Device pairing poller.

Registers the device, opens the sign-in tab and polls the exchange
endpoint until the user has linked the code in the browser.

    idle -> registered -> polling -> authenticated | timed_out | errored | cancelled

Only one exchange call is ever in flight; the next poll starts after the
previous one has returned and the interval has passed.
"""

import enum
import logging
import threading
import time
import webbrowser
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from timetable_extension.client import (
    DeviceAuthClient,
    DeviceAuthError,
    DeviceInfo,
    PendingError,
    StoredToken,
    TransientError,
    build_sign_in_url,
)
from timetable_extension.storage import DEVICE_INFO_KEY, DEVICE_TOKEN_KEY

logger = logging.getLogger(__name__)


class PollerState(str, enum.Enum):
    IDLE = "idle"
    REGISTERED = "registered"
    POLLING = "polling"
    AUTHENTICATED = "authenticated"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"
    CANCELLED = "cancelled"


FINAL_STATES = frozenset({
    PollerState.AUTHENTICATED,
    PollerState.TIMED_OUT,
    PollerState.ERRORED,
    PollerState.CANCELLED,
})


@dataclass(frozen=True)
class PollResult:
    state: PollerState
    token: Optional[StoredToken] = None
    error: Optional[str] = None

    @property
    def message(self) -> str:
        """What the extension UI shows for this outcome."""
        if self.state == PollerState.AUTHENTICATED:
            return "Connected"
        if self.state == PollerState.TIMED_OUT:
            return "Timed out waiting for sign-in, please try again"
        if self.state == PollerState.CANCELLED:
            return "Pairing cancelled"
        return "Something went wrong, please restart pairing"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DevicePoller:
    def __init__(
        self,
        client: DeviceAuthClient,
        store,
        *,
        web_base_url: str,
        interval: float = 2.5,
        max_wait: float = 300,
        open_url: Callable[[str], object] = webbrowser.open,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.client = client
        self.store = store
        self.web_base_url = web_base_url
        self.interval = interval
        self.max_wait = max_wait
        self._open_url = open_url
        self._clock = clock
        self._now = now
        self._cancelled = threading.Event()
        self._state = PollerState.IDLE
        self.device_info: Optional[DeviceInfo] = None

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def finished(self) -> bool:
        return self._state in FINAL_STATES

    @property
    def waiting_for_sign_in(self) -> bool:
        return self._state in (PollerState.REGISTERED, PollerState.POLLING)

    def cancel(self) -> None:
        """Stop polling. Safe to call from another thread; wakes the delay at once."""
        self._cancelled.set()

    def _pending_registration(self) -> Optional[DeviceInfo]:
        """A stored registration whose code is still live, if any. Stale ones are cleared."""
        data = self.store.load(DEVICE_INFO_KEY)
        if not data:
            return None
        try:
            info = DeviceInfo.from_dict(data)
            live = info.expires > self._now()
        except (KeyError, TypeError, ValueError):
            logger.warning("Discarding unreadable stored device info")
            live = False
        if not live:
            self.store.clear(DEVICE_INFO_KEY)
            return None
        return info

    def start(self, device_fingerprint: Optional[str] = None) -> DeviceInfo:
        """Resume a pending registration or register anew, then open the sign-in tab.

        A TransientError from registration propagates and leaves the poller idle.
        """
        if self._state != PollerState.IDLE:
            raise RuntimeError(f"Poller already started (state={self._state.value})")

        info = self._pending_registration()
        if info is not None:
            logger.info("Resuming pairing for device %s", info.device_id)
        else:
            info = self.client.register(device_fingerprint)
            self.store.save(DEVICE_INFO_KEY, info.to_dict())
            logger.info("Registered device %s, waiting for sign-in", info.device_id)
        self.device_info = info
        self._state = PollerState.REGISTERED

        self._open_url(build_sign_in_url(self.web_base_url, info.code))
        return info

    def _finish(self, state: PollerState, token: Optional[StoredToken] = None, error: Optional[str] = None) -> PollResult:
        self._state = state
        if state != PollerState.CANCELLED:
            self.store.clear(DEVICE_INFO_KEY)
        logger.info("Pairing finished: %s%s", state.value, f" ({error})" if error else "")
        return PollResult(state=state, token=token, error=error)

    def poll(self) -> PollResult:
        """Poll the exchange endpoint until a final state is reached."""
        if self._state != PollerState.REGISTERED or self.device_info is None:
            raise RuntimeError("Call start() before poll()")

        info = self.device_info
        started = self._clock()
        # Never poll past the code's own expiry
        code_lifetime = (info.expires - self._now()).total_seconds()
        deadline = started + min(self.max_wait, code_lifetime)
        bounded_by_expiry = code_lifetime < self.max_wait

        self._state = PollerState.POLLING
        while True:
            if self._cancelled.is_set():
                return self._finish(PollerState.CANCELLED)

            if self._clock() >= deadline:
                if bounded_by_expiry:
                    return self._finish(PollerState.ERRORED, error="code_expired")
                return self._finish(PollerState.TIMED_OUT)

            try:
                token = self.client.exchange(info.device_id, info.code)
            except PendingError:
                logger.debug("Device %s not linked yet", info.device_id)
            except TransientError as e:
                logger.warning("Exchange error (will retry): %s", e)
            except DeviceAuthError as e:
                return self._finish(PollerState.ERRORED, error=e.error_code or str(e))
            else:
                self.store.save(DEVICE_TOKEN_KEY, token.to_dict())
                return self._finish(PollerState.AUTHENTICATED, token=token)

            remaining = deadline - self._clock()
            if remaining > 0 and self._cancelled.wait(min(self.interval, remaining)):
                return self._finish(PollerState.CANCELLED)

    def run(self, device_fingerprint: Optional[str] = None) -> PollResult:
        self.start(device_fingerprint)
        return self.poll()
