from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import jwt
import redis
from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import config
from .auth import REFRESH, decode_token, hash_password, issue_token_pair, now_s, refresh_matches, revoke_refresh_token, token_digest, token_subject, verify_password
from .db import dispose_db, get_session, init_db
from .deps import get_current_account
from .errors import install_error_handlers
from .google import GoogleIdentityVerifier, GoogleTokenError, find_or_provision_account, get_google_verifier
from .mailer import SmtpMailer, get_mailer, send_otp_email, send_reset_email
from .models import Account
from .ratelimit import get_redis, rate_limit
from .schemas import (
    AccountOut,
    ForgotPasswordIn,
    GoogleAuthIn,
    LoginIn,
    LoginOut,
    LogoutIn,
    MessageOut,
    RefreshIn,
    RegisterIn,
    RegisterOut,
    ResendOtpIn,
    ResendOtpOut,
    ResetPasswordIn,
    TokensOut,
    VerifyOtpIn,
    VerifyOtpOut,
)
from .verification import consume_reset_token, issue_otp, issue_reset_token, reset_link, verify_otp

logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "If that email is registered, a reset link has been sent."


@asynccontextmanager
async def lifespan(_app: FastAPI):
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config.check_config()
    init_db()
    yield
    dispose_db()


app = FastAPI(title="Todo API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
install_error_handlers(app)

api_router = APIRouter(prefix="/api", dependencies=[Depends(rate_limit)])
auth_router = APIRouter(prefix="/auth", tags=["auth"])

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


def _account_by_email(s: Session, email: str) -> Account | None:
    return s.execute(select(Account).where(Account.email == email)).scalars().first()


def _account_out(acct: Account) -> AccountOut:
    return AccountOut(id=int(acct.id), email=acct.email, email_verified=bool(acct.email_verified))


@app.get("/health")
def health(r: redis.Redis = Depends(get_redis)):
    try:
        r.ping()
        redis_ok = True
    except redis.RedisError:
        redis_ok = False
    return {"ok": True, "redis": redis_ok}


@app.get("/healthz")
async def healthz():
    # super cheap liveness probe
    return {"ok": True}


@auth_router.get("/health")
def auth_health():
    return {"status": "ok", "message": "Auth service is running"}


@auth_router.post("/register", response_model=RegisterOut, status_code=201)
def register(body: RegisterIn, s: Session = Depends(get_session), mailer: SmtpMailer = Depends(get_mailer)):
    if _account_by_email(s, body.email) is not None:
        raise HTTPException(status_code=409, detail="email already registered")

    acct = Account(
        email=body.email,
        password_hash=hash_password(body.password),
        created_at=now_s(),
        email_verified=False,
    )
    code = issue_otp(acct)
    s.add(acct)
    try:
        s.commit()
    except IntegrityError:
        # lost a race with a concurrent registration
        s.rollback()
        raise HTTPException(status_code=409, detail="email already registered")

    try:
        send_otp_email(mailer, acct.email, code)
    except Exception:  # noqa: BLE001
        # registration stands; the user can ask for a resend
        logger.exception("failed to send otp email to account %s", acct.id)

    logger.info("registered account %s", acct.id)
    return RegisterOut(
        message="Registration successful. Please check your email for verification code.",
        email=acct.email,
        requires_verification=True,
    )


@auth_router.post("/verify-otp", response_model=VerifyOtpOut)
def verify_otp_route(body: VerifyOtpIn, s: Session = Depends(get_session)):
    acct = _account_by_email(s, body.email)
    if acct is None:
        raise HTTPException(status_code=404, detail="user not found")

    verify_otp(acct, body.otp.strip())
    s.commit()
    logger.info("email verified for account %s", acct.id)
    return VerifyOtpOut(message="Email verified successfully", verified=True)


@auth_router.post("/resend-otp", response_model=ResendOtpOut)
def resend_otp(body: ResendOtpIn, s: Session = Depends(get_session), mailer: SmtpMailer = Depends(get_mailer)):
    acct = _account_by_email(s, body.email)
    if acct is None:
        raise HTTPException(status_code=404, detail="user not found")
    if bool(acct.email_verified):
        raise HTTPException(status_code=400, detail="email is already verified")

    code = issue_otp(acct)
    s.commit()

    try:
        send_otp_email(mailer, acct.email, code, resent=True)
    except Exception:  # noqa: BLE001
        logger.exception("failed to resend otp email to account %s", acct.id)
        raise HTTPException(status_code=500, detail="failed to send otp email")

    return ResendOtpOut(message="OTP resent successfully", email=acct.email)


@auth_router.post("/login", response_model=LoginOut)
def login(body: LoginIn, s: Session = Depends(get_session)):
    acct = _account_by_email(s, body.email)
    if acct is None or not verify_password(body.password, acct.password_hash):
        logger.info("failed login")
        raise HTTPException(status_code=401, detail="invalid credentials")

    if not bool(acct.email_verified):
        raise HTTPException(
            status_code=403,
            detail={
                "message": "Please verify your email before logging in.",
                "requires_verification": True,
                "email": acct.email,
            },
        )

    pair = issue_token_pair(acct)
    s.commit()
    logger.info("login for account %s", acct.id)
    return LoginOut(
        message="Logged in",
        user=_account_out(acct),
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
    )


@auth_router.post("/refresh", response_model=TokensOut)
def refresh(body: RefreshIn, s: Session = Depends(get_session)):
    try:
        account_id = token_subject(decode_token(body.refresh_token, REFRESH))
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="invalid refresh token")

    acct = s.get(Account, account_id)
    if acct is None or not refresh_matches(acct, body.refresh_token):
        logger.warning("refresh token mismatch for account %s", account_id)
        raise HTTPException(status_code=401, detail="invalid refresh token")

    pair = issue_token_pair(acct)
    s.commit()
    return TokensOut(
        message="Tokens refreshed",
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
    )


@auth_router.post("/logout", response_model=MessageOut)
def logout(body: LogoutIn | None = None, s: Session = Depends(get_session)):
    token = body.refresh_token if body else None
    if token:
        try:
            account_id = token_subject(decode_token(token, REFRESH))
        except jwt.InvalidTokenError:
            logger.info("logout with invalid refresh token")
        else:
            acct = s.get(Account, account_id)
            # only the current session's token may end it
            if acct is not None and refresh_matches(acct, token):
                revoke_refresh_token(acct)
                s.commit()
                logger.info("logout for account %s", acct.id)
    return MessageOut(message="Logged out")


@auth_router.post("/google", response_model=LoginOut)
def google_auth(
    body: GoogleAuthIn,
    s: Session = Depends(get_session),
    verifier: GoogleIdentityVerifier = Depends(get_google_verifier),
):
    try:
        claims = verifier.verify(body.token)
    except GoogleTokenError as exc:
        logger.info("google token rejected: %s", exc)
        raise HTTPException(status_code=401, detail="invalid google token")

    try:
        acct = find_or_provision_account(s, claims)
        pair = issue_token_pair(acct)
        s.commit()
    except IntegrityError:
        s.rollback()
        raise HTTPException(status_code=409, detail="account already exists")

    logger.info("google sign-in for account %s", acct.id)
    return LoginOut(
        message="Signed in with Google",
        user=_account_out(acct),
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
    )


def _deliver_reset_email(mailer: SmtpMailer, account_id: int, to: str, link: str) -> None:
    try:
        send_reset_email(mailer, to, link)
    except Exception:  # noqa: BLE001
        logger.exception("failed to send reset email to account %s", account_id)


@auth_router.post("/forgot-password", response_model=MessageOut)
def forgot_password(
    body: ForgotPasswordIn,
    background: BackgroundTasks,
    s: Session = Depends(get_session),
    mailer: SmtpMailer = Depends(get_mailer),
):
    acct = _account_by_email(s, body.email)
    if acct is not None:
        token = issue_reset_token(acct)
        s.commit()
        # mail goes out after the response
        background.add_task(_deliver_reset_email, mailer, int(acct.id), acct.email, reset_link(token))
    return MessageOut(message=FORGOT_PASSWORD_MESSAGE)


@auth_router.post("/reset-password", response_model=MessageOut)
def reset_password(body: ResetPasswordIn, s: Session = Depends(get_session)):
    acct = s.execute(select(Account).where(Account.reset_token_hash == token_digest(body.token))).scalars().first()
    consume_reset_token(acct, body.token, body.new_password)
    s.commit()
    logger.info("password reset for account %s", acct.id)
    return MessageOut(message="Password has been reset")


@auth_router.get("/me", response_model=AccountOut)
def me(acct: Account = Depends(get_current_account)):
    return _account_out(acct)


api_router.include_router(auth_router)
app.include_router(api_router)
