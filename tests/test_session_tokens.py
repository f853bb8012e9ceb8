from __future__ import annotations

import time

import jwt
import pytest

from conftest import TEST_SECRET, make_config
from portal.auth.errors import InvalidSubject, InvalidToken
from portal.auth.session import (
    SESSION_COOKIE_NAME,
    clear_session_cookie_kwargs,
    decode_session_claims,
    issue_session_token,
    session_cookie_kwargs,
    verify_session_token,
)

SECRET = TEST_SECRET.encode("utf-8")


def test_issue_then_verify_returns_subject() -> None:
    token = issue_session_token("user-1", SECRET, 60)
    assert verify_session_token(token, SECRET) == "user-1"


def test_claims_cover_ttl() -> None:
    token = issue_session_token("user-1", SECRET, 15, now=1_700_000_000)
    data = jwt.decode(token, SECRET, algorithms=["HS256"], options={"verify_exp": False})
    assert data == {"sub": "user-1", "iat": 1_700_000_000, "exp": 1_700_000_000 + 15 * 60}


def test_expired_token_is_invalid() -> None:
    token = issue_session_token("user-1", SECRET, 1, now=time.time() - 3600)
    with pytest.raises(InvalidToken):
        verify_session_token(token, SECRET)


def test_tampered_token_is_invalid() -> None:
    token = issue_session_token("user-1", SECRET, 60)
    head, payload, sig = token.split(".")
    tampered = ".".join([head, payload, ("A" if sig[0] != "A" else "B") + sig[1:]])
    with pytest.raises(InvalidToken):
        verify_session_token(tampered, SECRET)


def test_wrong_secret_and_garbage_are_invalid() -> None:
    token = issue_session_token("user-1", SECRET, 60)
    with pytest.raises(InvalidToken):
        verify_session_token(token, b"another-secret-that-is-long-enough-0000")
    with pytest.raises(InvalidToken):
        verify_session_token("not-a-jwt", SECRET)
    with pytest.raises(InvalidToken):
        verify_session_token("", SECRET)


def test_missing_claims_are_invalid() -> None:
    token = jwt.encode({"sub": "user-1", "exp": int(time.time()) + 60}, SECRET, algorithm="HS256")
    with pytest.raises(InvalidToken):
        decode_session_claims(token, SECRET)


def test_empty_subject_is_refused() -> None:
    with pytest.raises(InvalidSubject):
        issue_session_token("", SECRET, 60)


def test_cookie_kwargs() -> None:
    cfg = make_config(jwt_ttl_minutes=30, cookie_secure=True)
    kw = session_cookie_kwargs(cfg, "abc")
    assert kw["key"] == SESSION_COOKIE_NAME == "token"
    assert kw["max_age"] == 30 * 60
    assert kw["httponly"] is True
    assert kw["secure"] is True
    cleared = clear_session_cookie_kwargs(cfg)
    assert cleared["value"] == "" and cleared["max_age"] == 0
