"""Security utilities: pairing codes, device tokens, one-way hashing."""

import hashlib
import secrets

# No 0/O or 1/I: codes are read off a screen and sometimes retyped
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 8


# --- Pairing code ---

def generate_pairing_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    return code.strip().upper()


def hash_code(code: str) -> str:
    return hashlib.sha256(normalize_code(code).encode()).hexdigest()


# --- Device token ---

def generate_device_token() -> str:
    """256 bits of randomness, URL-safe."""
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    """Hash a token for storage. The raw token is never persisted."""
    return hashlib.sha256(token.encode()).hexdigest()
