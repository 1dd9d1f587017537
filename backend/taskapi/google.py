"""Sign-in with Google: ID token verification and local account mapping."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

import jwt
from fastapi import HTTPException
from jwt import PyJWKClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from . import config
from .auth import now_s, unusable_password
from .models import Account

logger = logging.getLogger(__name__)

GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


class GoogleTokenError(Exception):
    pass


class GoogleIdentityVerifier:
    def __init__(self, client_id: str, jwks_url: str = GOOGLE_JWKS_URL):
        self.client_id = client_id
        self.jwks_client = PyJWKClient(jwks_url, cache_keys=True, lifespan=3600)

    def verify(self, id_token: str) -> dict[str, Any]:
        """Return the token's claims once signature, audience and issuer check out."""
        if not self.client_id:
            raise GoogleTokenError("google sign-in is not configured")
        try:
            signing_key = self.jwks_client.get_signing_key_from_jwt(id_token)
            claims = jwt.decode(
                id_token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self.client_id,
                options={"require": ["exp", "iat", "iss", "aud", "sub"]},
            )
        except jwt.PyJWTError as exc:
            raise GoogleTokenError(str(exc)) from exc

        if claims.get("iss") not in GOOGLE_ISSUERS:
            raise GoogleTokenError("unexpected issuer")
        if not claims.get("email"):
            raise GoogleTokenError("token has no email")
        return claims


@lru_cache(maxsize=1)
def get_google_verifier() -> GoogleIdentityVerifier:
    return GoogleIdentityVerifier(config.GOOGLE_CLIENT_ID)


def _email_verified(claims: dict[str, Any]) -> bool:
    v = claims.get("email_verified")
    # google has sent this both as a bool and as a string
    return v is True or str(v).lower() == "true"


def find_or_provision_account(s: Session, claims: dict[str, Any]) -> Account:
    """Map verified Google claims to a local account, creating it if needed.

    An email Google has not verified is never linked or provisioned.
    """
    email = str(claims["email"]).strip().lower()
    if not _email_verified(claims):
        logger.info("google sign-in refused: email not verified by google")
        raise HTTPException(status_code=403, detail="google email not verified")

    acct = s.execute(select(Account).where(Account.email == email)).scalars().first()
    if acct is None:
        acct = Account(
            email=email,
            password_hash=unusable_password(),
            created_at=now_s(),
            email_verified=True,
        )
        s.add(acct)
        s.flush()
        logger.info("provisioned account %s from google sign-in", acct.id)
        return acct

    if not acct.email_verified:
        # nobody proved ownership of the password set at registration
        acct.password_hash = unusable_password()
        acct.email_verified = True
        acct.otp_hash = None
        acct.otp_expires_at = None
        logger.info("account %s verified through google sign-in", acct.id)
    return acct
