from __future__ import annotations

import jwt
from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .auth import ACCESS, decode_token, token_subject
from .db import get_session
from .models import Account


def get_current_account(
    authorization: str | None = Header(default=None),
    s: Session = Depends(get_session),
) -> Account:
    if not authorization:
        raise HTTPException(status_code=401, detail="missing auth")
    if not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="invalid auth")
    token = authorization.split(" ", 1)[1].strip()
    try:
        account_id = token_subject(decode_token(token, ACCESS))
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="invalid token")
    acct = s.get(Account, account_id)
    if acct is None:
        raise HTTPException(status_code=401, detail="invalid token")
    return acct
