"""
Shared pytest fixtures for the API tests.

The app runs against an in-memory SQLite database that is created fresh
for every test client. Redis, SMTP and Google are replaced through
``app.dependency_overrides``.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_INIT_RETRIES"] = "1"
os.environ["JWT_SECRET"] = "test-secret-0123456789abcdef0123456789abcdef"
os.environ["PBKDF2_ITERS"] = "1000"
os.environ["MAIL_HOST"] = ""
os.environ["GOOGLE_CLIENT_ID"] = "test-client.apps.googleusercontent.com"

import re
from typing import Any

import pytest
import redis
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from taskapi import db
from taskapi.google import GoogleTokenError, get_google_verifier
from taskapi.mailer import get_mailer
from taskapi.main import app
from taskapi.models import Account
from taskapi.ratelimit import get_redis

PASSWORD = "s3cret-pass"


class FakeRedis:
    """Just enough of redis.Redis for the rate limiter and health check."""

    def __init__(self):
        self.values: dict[str, int] = {}
        self.ttls: dict[str, int] = {}
        self.down = False

    def _check(self):
        if self.down:
            raise redis.ConnectionError("redis is down")

    def set(self, key, value, ex=None, nx=False):
        self._check()
        if nx and key in self.values:
            return None
        self.values[key] = int(value)
        if ex is not None:
            self.ttls[key] = ex
        return True

    def incr(self, key):
        self._check()
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    def ping(self):
        self._check()
        return True

    def pipeline(self):
        return FakePipeline(self)


class FakePipeline:
    """Queues commands and runs them together on execute()."""

    def __init__(self, r):
        self.r = r
        self.calls = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.calls = []
        return False

    def set(self, *args, **kwargs):
        self.calls.append(("set", args, kwargs))

    def incr(self, *args, **kwargs):
        self.calls.append(("incr", args, kwargs))

    def execute(self):
        self.r._check()
        results = [getattr(self.r, name)(*args, **kwargs) for name, args, kwargs in self.calls]
        self.calls = []
        return results


class Outbox:
    """Records outgoing mail instead of talking to SMTP."""

    def __init__(self):
        self.messages: list[dict[str, Any]] = []
        self.fail = False

    def send(self, to, subject, text, html=None):
        if self.fail:
            raise OSError("smtp unavailable")
        self.messages.append({"to": to, "subject": subject, "text": text, "html": html})

    def to(self, address) -> list[dict[str, Any]]:
        return [m for m in self.messages if m["to"] == address]

    def last_otp(self, address) -> str:
        for m in reversed(self.to(address)):
            found = re.search(r"code is: (\d{6})", m["text"])
            if found:
                return found.group(1)
        raise AssertionError(f"no otp mailed to {address}")

    def last_reset_token(self, address) -> str:
        for m in reversed(self.to(address)):
            found = re.search(r"token=([0-9a-f]+)", m["text"])
            if found:
                return found.group(1)
        raise AssertionError(f"no reset link mailed to {address}")


class FakeGoogleVerifier:
    GOOD_TOKEN = "google-id-token"

    def __init__(self):
        self.claims: dict[str, Any] | None = None

    def verify(self, token):
        if self.claims is None or token != self.GOOD_TOKEN:
            raise GoogleTokenError("bad token")
        return dict(self.claims)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def outbox():
    return Outbox()


@pytest.fixture
def google():
    return FakeGoogleVerifier()


@pytest.fixture
def client(fake_redis, outbox, google):
    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.dependency_overrides[get_mailer] = lambda: outbox
    app.dependency_overrides[get_google_verifier] = lambda: google
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def load_account(client):
    """Read an account row straight from the database."""

    def _load(email) -> Account | None:
        with Session(db.engine) as s:
            acct = s.execute(select(Account).where(Account.email == email)).scalars().first()
            if acct is not None:
                s.expunge(acct)
            return acct

    return _load


@pytest.fixture
def update_account(client):
    def _update(email, **fields):
        with Session(db.engine) as s:
            acct = s.execute(select(Account).where(Account.email == email)).scalars().one()
            for name, value in fields.items():
                setattr(acct, name, value)
            s.commit()

    return _update


@pytest.fixture
def signup(client, outbox):
    """Register, verify and log in; returns the login response body."""

    def _signup(email="alice@example.com", password=PASSWORD) -> dict[str, Any]:
        resp = client.post("/api/auth/register", json={"email": email, "password": password})
        assert resp.status_code == 201, resp.text
        resp = client.post("/api/auth/verify-otp", json={"email": email, "otp": outbox.last_otp(email)})
        assert resp.status_code == 200, resp.text
        resp = client.post("/api/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        return resp.json()

    return _signup
