from __future__ import annotations

import os

APP_ENV = os.environ.get("APP_ENV", "dev")

DATABASE_URL = os.environ.get("DATABASE_URL", "")
DB_INIT_RETRIES = int(os.environ.get("DB_INIT_RETRIES", "30"))

REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

DEFAULT_JWT_SECRET = "dev-secret-change-me"
JWT_SECRET = os.environ.get("JWT_SECRET", DEFAULT_JWT_SECRET)
JWT_ALG = "HS256"
ACCESS_TOKEN_TTL_SECONDS = int(os.environ.get("ACCESS_TOKEN_TTL_SECONDS", "900"))  # 15m
REFRESH_TOKEN_TTL_SECONDS = int(os.environ.get("REFRESH_TOKEN_TTL_SECONDS", "2592000"))  # 30d

OTP_TTL_SECONDS = int(os.environ.get("OTP_TTL_SECONDS", "600"))  # 10m
RESET_TOKEN_TTL_SECONDS = int(os.environ.get("RESET_TOKEN_TTL_SECONDS", "3600"))

PBKDF2_ITERS = int(os.environ.get("PBKDF2_ITERS", "200000"))

FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173").rstrip("/")

MAIL_HOST = os.environ.get("MAIL_HOST", "").strip()
MAIL_PORT = int(os.environ.get("MAIL_PORT", "587"))
MAIL_USER = os.environ.get("MAIL_USER", "")
MAIL_PASS = os.environ.get("MAIL_PASS", "")
MAIL_FROM = os.environ.get("MAIL_FROM", "TodoApp <no-reply@localhost>")

GOOGLE_CLIENT_ID = os.environ.get("GOOGLE_CLIENT_ID", "").strip()

CORS_ORIGINS = [
    o.strip()
    for o in os.environ.get("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    if o.strip()
]

# fixed window, per client ip
RATE_LIMIT_MAX = int(os.environ.get("RATE_LIMIT_MAX", "100"))
RATE_LIMIT_WINDOW_SECONDS = int(os.environ.get("RATE_LIMIT_WINDOW_SECONDS", "900"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()


def check_config() -> None:
    if not DATABASE_URL:
        raise RuntimeError("DATABASE_URL is required")
    if APP_ENV != "dev" and JWT_SECRET == DEFAULT_JWT_SECRET:
        raise RuntimeError("JWT_SECRET must be set outside dev")
