from __future__ import annotations

import time
from typing import Optional

import jwt  # PyJWT

from portal.auth.config import AuthConfig
from portal.auth.errors import InvalidSubject, InvalidToken
from portal.auth.models import SessionClaims

SESSION_COOKIE_NAME = "token"
_ALGORITHM = "HS256"


def issue_session_token(subject: str, secret: bytes, ttl_minutes: int, *, now: Optional[float] = None) -> str:
    """
    Sign a bearer token for `subject` valid for `ttl_minutes`.

    Claims are `sub`, `iat` and `exp` (epoch seconds); nothing is stored server-side.
    """
    if not subject:
        raise InvalidSubject(detail="empty session subject")
    issued = int(time.time() if now is None else now)
    claims = SessionClaims(sub=str(subject), iat=issued, exp=issued + int(ttl_minutes) * 60)
    return jwt.encode({"sub": claims.sub, "iat": claims.iat, "exp": claims.exp}, secret, algorithm=_ALGORITHM)


def decode_session_claims(token: str, secret: bytes) -> SessionClaims:
    """
    Validate signature and expiry. Every failure collapses into `InvalidToken`.
    """
    if not token or not secret:
        raise InvalidToken()
    try:
        data = jwt.decode(
            token,
            key=secret,
            algorithms=[_ALGORITHM],
            options={"require": ["sub", "iat", "exp"]},
        )
        sub = str(data.get("sub") or "")
        if not sub:
            raise InvalidToken()
        return SessionClaims(sub=sub, iat=int(data["iat"]), exp=int(data["exp"]))
    except (jwt.PyJWTError, KeyError, TypeError, ValueError):
        raise InvalidToken() from None


def verify_session_token(token: str, secret: bytes) -> str:
    return decode_session_claims(token, secret).sub


def session_cookie_kwargs(cfg: AuthConfig, value: str) -> dict:
    return {
        "key": SESSION_COOKIE_NAME,
        "value": value,
        "max_age": cfg.session_ttl_seconds,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }


def clear_session_cookie_kwargs(cfg: AuthConfig) -> dict:
    return {
        "key": SESSION_COOKIE_NAME,
        "value": "",
        "max_age": 0,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }
