import jwt
import pytest

from taskapi import config
from taskapi.auth import (
    ACCESS,
    REFRESH,
    decode_token,
    hash_password,
    issue_token_pair,
    make_token,
    refresh_matches,
    revoke_refresh_token,
    token_subject,
    unusable_password,
    verify_password,
)
from taskapi.models import Account


def test_password_hash_roundtrip():
    h = hash_password("correct horse")
    assert h.startswith("pbkdf2_sha256$")
    assert verify_password("correct horse", h)
    assert not verify_password("wrong horse", h)


def test_password_hashes_are_salted():
    assert hash_password("same") != hash_password("same")


@pytest.mark.parametrize("stored", [None, "", "garbage", "md5$1$abc$def", "pbkdf2_sha256$x$y$z"])
def test_verify_password_rejects_malformed_hashes(stored):
    assert not verify_password("anything", stored)


def test_unusable_password_never_verifies():
    placeholder = unusable_password()
    assert not verify_password(placeholder, placeholder)
    assert not verify_password("", placeholder)


def test_token_carries_subject_and_type():
    token = make_token(42, ACCESS, 60)
    payload = decode_token(token, ACCESS)
    assert token_subject(payload) == 42
    assert payload["type"] == ACCESS


def test_token_type_is_enforced():
    refresh = make_token(1, REFRESH, 60)
    with pytest.raises(jwt.InvalidTokenError):
        decode_token(refresh, ACCESS)


def test_expired_token_is_rejected():
    token = make_token(1, ACCESS, -30)
    with pytest.raises(jwt.ExpiredSignatureError):
        decode_token(token, ACCESS)


def test_token_signed_with_other_secret_is_rejected():
    forged = jwt.encode({"sub": "1", "type": ACCESS, "iat": 0, "exp": 2**31}, "not-the-secret", algorithm="HS256")
    with pytest.raises(jwt.InvalidTokenError):
        decode_token(forged, ACCESS)


def test_tokens_issued_in_the_same_second_differ():
    assert make_token(1, REFRESH, 60) != make_token(1, REFRESH, 60)


def test_issue_token_pair_replaces_the_stored_session(monkeypatch):
    monkeypatch.setattr(config, "ACCESS_TOKEN_TTL_SECONDS", 60)
    monkeypatch.setattr(config, "REFRESH_TOKEN_TTL_SECONDS", 3600)
    acct = Account(id=7, email="a@example.com", password_hash="x")

    first = issue_token_pair(acct)
    assert refresh_matches(acct, first.refresh_token)
    assert first.refresh_token not in (acct.refresh_token_hash or "")

    second = issue_token_pair(acct)
    assert refresh_matches(acct, second.refresh_token)
    assert not refresh_matches(acct, first.refresh_token)

    access = decode_token(second.access_token, ACCESS)
    refresh = decode_token(second.refresh_token, REFRESH)
    assert access["exp"] - access["iat"] == 60
    assert refresh["exp"] - refresh["iat"] == 3600

    revoke_refresh_token(acct)
    assert not refresh_matches(acct, second.refresh_token)
