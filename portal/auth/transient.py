"""
OAuth transient state carried in two short-lived cookies (`csrf`, `pkce_verifier`).

Values are signed with itsdangerous so a forged or stale cookie reads as absent. Each
cookie is checked against its own max age.
"""
from __future__ import annotations

from typing import Optional

from itsdangerous import BadSignature, BadTimeSignature, SignatureExpired, URLSafeTimedSerializer

from portal.auth.config import AuthConfig
from portal.auth.models import OAuthTransientState

CSRF_COOKIE = "csrf"
PKCE_COOKIE = "pkce_verifier"
OAUTH_COOKIE_PATH = "/api/auth"

_CSRF_SALT = "portal-oauth-csrf-v1"
_PKCE_SALT = "portal-oauth-pkce-v1"


def _serializer(cfg: AuthConfig, salt: str) -> Optional[URLSafeTimedSerializer]:
    if not cfg.jwt_secret:
        return None
    return URLSafeTimedSerializer(secret_key=cfg.jwt_secret, salt=salt)


def _dump(cfg: AuthConfig, salt: str, value: str) -> str:
    s = _serializer(cfg, salt)
    if s is None:
        raise RuntimeError("JWT_SECRET is required to sign OAuth state")
    return s.dumps(value)


def _load(cfg: AuthConfig, salt: str, raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    s = _serializer(cfg, salt)
    if s is None:
        return None
    try:
        value = s.loads(raw, max_age=cfg.oauth_state_ttl_seconds)
    except (SignatureExpired, BadTimeSignature, BadSignature):
        return None
    return str(value) if value else None


def encode_transient(cfg: AuthConfig, state: OAuthTransientState) -> dict:
    """Return signed cookie values keyed by cookie name."""
    return {
        CSRF_COOKIE: _dump(cfg, _CSRF_SALT, state.csrf_token or ""),
        PKCE_COOKIE: _dump(cfg, _PKCE_SALT, state.pkce_verifier or ""),
    }


def decode_transient(cfg: AuthConfig, cookies: dict) -> OAuthTransientState:
    return OAuthTransientState(
        csrf_token=_load(cfg, _CSRF_SALT, cookies.get(CSRF_COOKIE)),
        pkce_verifier=_load(cfg, _PKCE_SALT, cookies.get(PKCE_COOKIE)),
    )


def transient_cookie_kwargs(cfg: AuthConfig, *, key: str, value: str) -> dict:
    return {
        "key": key,
        "value": value,
        "max_age": cfg.oauth_state_ttl_seconds,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": OAUTH_COOKIE_PATH,
    }


def clear_transient_cookie_kwargs(cfg: AuthConfig, *, key: str) -> dict:
    kwargs = transient_cookie_kwargs(cfg, key=key, value="")
    kwargs["max_age"] = 0
    return kwargs
