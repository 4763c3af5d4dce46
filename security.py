"""Password hashing and signed access tokens.

Passwords are stored as salted PBKDF2-SHA256 hashes in the form
``pbkdf2_sha256$<iterations>$<salt hex>$<digest hex>``.

Access tokens are ``<user id>.<expiry epoch seconds>.<signature>`` where the
signature is an HMAC-SHA256 of the first two parts keyed with the configured
secret. They carry no other claims.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import os
from datetime import datetime, timedelta
from typing import Optional

PBKDF2_ITERATIONS = 240_000
_SCHEME = "pbkdf2_sha256"


def hash_password(password: str, salt: Optional[bytes] = None, iterations: int = PBKDF2_ITERATIONS) -> str:
    salt = salt or os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8", "surrogatepass"), salt, iterations)
    return f"{_SCHEME}${iterations}${salt.hex()}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        scheme, iterations, salt_hex, digest_hex = password_hash.split("$")
        if scheme != _SCHEME:
            return False
        salt = bytes.fromhex(salt_hex)
        rounds = int(iterations)
    except ValueError:
        return False
    candidate = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8", "surrogatepass"), salt, rounds)
    return hmac.compare_digest(candidate.hex(), digest_hex)


def _sign(payload: str, secret: str) -> str:
    mac = hmac.new(secret.encode("utf-8"), payload.encode("utf-8", "surrogatepass"), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(mac).decode("ascii").rstrip("=")


def issue_token(user_id: str, secret: str, ttl: timedelta, now: datetime) -> str:
    expires = int((now + ttl).timestamp())
    payload = f"{user_id}.{expires}"
    return f"{payload}.{_sign(payload, secret)}"


def verify_token(token: str, secret: str, now: datetime) -> Optional[str]:
    """Return the user id carried by a valid, unexpired token, else None."""
    parts = token.split(".")
    if len(parts) != 3:
        return None
    user_id, expires, signature = parts
    expected = _sign(f"{user_id}.{expires}", secret).encode("ascii")
    if not user_id or not hmac.compare_digest(expected, signature.encode("utf-8", "surrogateescape")):
        return None
    try:
        if int(expires) <= now.timestamp():
            return None
    except ValueError:
        return None
    return user_id
