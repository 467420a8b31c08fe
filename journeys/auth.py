"""Password hashing, session tokens and the single role check.

Hashes use the ``pbkdf2_sha256$<iterations>$<salt>$<digest>`` layout so they
stay readable by any PBKDF2 verifier.
"""
from __future__ import annotations

import base64
import secrets
from collections.abc import Mapping
from typing import Any

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

ADMIN_ROLE = "admin"
USER_ROLE = "user"

_ALGORITHM = "pbkdf2_sha256"
_ITERATIONS = 600_000
_LENGTH = 32


def _kdf(salt: str, iterations: int) -> PBKDF2HMAC:
    return PBKDF2HMAC(algorithm=hashes.SHA256(), length=_LENGTH, salt=salt.encode("utf-8"), iterations=iterations)


def hash_password(password: str, *, salt: str | None = None, iterations: int = _ITERATIONS) -> str:
    salt = salt or secrets.token_hex(12)
    digest = _kdf(salt, iterations).derive(password.encode("utf-8"))
    encoded = base64.b64encode(digest).decode("ascii")
    return f"{_ALGORITHM}${iterations}${salt}${encoded}"


def verify_password(password: str, stored: str) -> bool:
    try:
        algorithm, iterations, salt, encoded = stored.split("$", 3)
        expected = base64.b64decode(encoded, validate=True)
    except ValueError:
        return False
    if algorithm != _ALGORITHM or not iterations.isdigit():
        return False
    try:
        _kdf(salt, int(iterations)).verify(password.encode("utf-8"), expected)
    except InvalidKey:
        return False
    return True


def new_token() -> str:
    return secrets.token_urlsafe(32)


def is_admin(user: Any) -> bool:
    """Capability check gating every journey mutation."""
    if user is None:
        return False
    role = user.get("role") if isinstance(user, Mapping) else getattr(user, "role", None)
    return role == ADMIN_ROLE
