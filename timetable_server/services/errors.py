"""Pairing and token error taxonomy.

Each error carries the wire error code and the HTTP status the routers
answer with. All of them are terminal for the caller except
``PairingPending``, which is the normal steady state while polling.
"""

from fastapi import status


class PairingError(Exception):
    code = "pairing_error"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Pairing failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_detail(self) -> dict:
        return {"error": self.code, "message": self.message}


class CodeNotFound(PairingError):
    code = "code_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Invalid or expired code"


class CodeExpired(PairingError):
    code = "code_expired"
    status_code = status.HTTP_410_GONE
    message = "Code expired"


class AlreadyLinked(PairingError):
    code = "already_linked"
    status_code = status.HTTP_409_CONFLICT
    message = "Code is already linked to another account"


class DeviceIdMismatch(PairingError):
    code = "device_mismatch"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid device ID"


class PairingPending(PairingError):
    code = "not_ready"
    status_code = status.HTTP_425_TOO_EARLY
    message = "Device not linked yet"


class InvalidToken(PairingError):
    code = "invalid_token"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid or expired token"


class CodeSpaceExhausted(PairingError):
    """No free pairing code after repeated collisions. Answered like a store failure."""

    code = "server_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Could not allocate a unique pairing code"
