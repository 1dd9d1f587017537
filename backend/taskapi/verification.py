"""One-time codes for email verification and password reset links.

Both are single use: a successful check clears the stored secret. The
helpers only mutate the Account; callers own the session and commit.
"""

from __future__ import annotations

import logging
import secrets

from fastapi import HTTPException

from . import config
from .auth import digest_matches, hash_password, now_s, revoke_refresh_token, token_digest, verify_password
from .models import Account

logger = logging.getLogger(__name__)

OTP_DIGITS = 6


def new_otp() -> str:
    return f"{secrets.randbelow(10**OTP_DIGITS):0{OTP_DIGITS}d}"


def issue_otp(account: Account) -> str:
    """Store a fresh code on the account, replacing any previous one."""
    code = new_otp()
    account.otp_hash = hash_password(code)
    account.otp_expires_at = now_s() + config.OTP_TTL_SECONDS
    return code


def verify_otp(account: Account, code: str) -> None:
    exp = int(account.otp_expires_at or 0)
    if not account.otp_hash or not exp or now_s() > exp or not verify_password(code, account.otp_hash):
        logger.info("otp rejected for account %s", account.id)
        raise HTTPException(status_code=400, detail="invalid or expired otp")

    account.email_verified = True
    account.otp_hash = None
    account.otp_expires_at = None


def new_reset_token() -> str:
    return secrets.token_hex(32)


def issue_reset_token(account: Account) -> str:
    token = new_reset_token()
    account.reset_token_hash = token_digest(token)
    account.reset_token_expires_at = now_s() + config.RESET_TOKEN_TTL_SECONDS
    return token


def consume_reset_token(account: Account | None, token: str, new_password: str) -> Account:
    if account is None or not digest_matches(token, account.reset_token_hash):
        raise HTTPException(status_code=400, detail="invalid or expired token")
    exp = int(account.reset_token_expires_at or 0)
    if not exp or now_s() > exp:
        raise HTTPException(status_code=400, detail="invalid or expired token")

    account.password_hash = hash_password(new_password)
    account.reset_token_hash = None
    account.reset_token_expires_at = None
    # a reset also ends the active session
    revoke_refresh_token(account)
    return account


def reset_link(token: str) -> str:
    return f"{config.FRONTEND_URL}/reset-password?token={token}"
