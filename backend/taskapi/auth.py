from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass
from typing import Any

import jwt

from . import config
from .models import Account

ACCESS = "access"
REFRESH = "refresh"

# hashes that start with this never verify (federated-only accounts)
UNUSABLE_PASSWORD_PREFIX = "!"


def now_s() -> int:
    return int(time.time())


def _b64(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).decode("utf-8").rstrip("=")


def _b64d(s: str) -> bytes:
    pad = "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode((s + pad).encode("utf-8"))


def hash_password(pw: str) -> str:
    # Format: pbkdf2_sha256$iters$salt$hash
    salt = secrets.token_bytes(16)
    dk = hashlib.pbkdf2_hmac("sha256", pw.encode("utf-8"), salt, config.PBKDF2_ITERS, dklen=32)
    return f"pbkdf2_sha256${config.PBKDF2_ITERS}${_b64(salt)}${_b64(dk)}"


def verify_password(pw: str, pw_hash: str | None) -> bool:
    if not pw_hash or pw_hash.startswith(UNUSABLE_PASSWORD_PREFIX):
        return False
    try:
        algo, iters_s, salt_s, hash_s = pw_hash.split("$", 3)
        if algo != "pbkdf2_sha256":
            return False
        iters = int(iters_s)
        salt = _b64d(salt_s)
        expected = _b64d(hash_s)
    except ValueError:
        return False
    dk = hashlib.pbkdf2_hmac("sha256", pw.encode("utf-8"), salt, iters, dklen=len(expected))
    return hmac.compare_digest(dk, expected)


def unusable_password() -> str:
    return UNUSABLE_PASSWORD_PREFIX + secrets.token_hex(16)


def token_digest(token: str) -> str:
    """sha256 hex of an opaque token, for storage and lookup."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def digest_matches(token: str, stored: str | None) -> bool:
    if not stored:
        return False
    return hmac.compare_digest(token_digest(token), stored)


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str


def make_token(account_id: int, token_type: str, ttl_seconds: int) -> str:
    now = now_s()
    payload: dict[str, Any] = {
        "sub": str(account_id),
        "type": token_type,
        "jti": secrets.token_hex(16),
        "iat": now,
        "exp": now + ttl_seconds,
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALG)


def decode_token(token: str, token_type: str) -> dict[str, Any]:
    """Verify signature, expiry and token type.

    Raises jwt.InvalidTokenError on any failure.
    """
    payload = jwt.decode(
        token,
        config.JWT_SECRET,
        algorithms=[config.JWT_ALG],
        options={"require": ["sub", "exp", "iat"]},
    )
    if payload.get("type") != token_type:
        raise jwt.InvalidTokenError(f"expected {token_type} token")
    return payload


def token_subject(payload: dict[str, Any]) -> int:
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise jwt.InvalidTokenError("bad subject") from exc


def issue_token_pair(account: Account) -> TokenPair:
    """Mint a fresh access/refresh pair and make it the account's only session.

    The caller commits.
    """
    pair = TokenPair(
        access_token=make_token(int(account.id), ACCESS, config.ACCESS_TOKEN_TTL_SECONDS),
        refresh_token=make_token(int(account.id), REFRESH, config.REFRESH_TOKEN_TTL_SECONDS),
    )
    account.refresh_token_hash = token_digest(pair.refresh_token)
    return pair


def refresh_matches(account: Account, refresh_token: str) -> bool:
    return digest_matches(refresh_token, account.refresh_token_hash)


def revoke_refresh_token(account: Account) -> None:
    account.refresh_token_hash = None
