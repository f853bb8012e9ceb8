from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"

GITHUB_AUTH_URL = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_USERINFO_URL = "https://api.github.com/user"
GITHUB_EMAILS_URL = "https://api.github.com/user/emails"


@dataclass(frozen=True)
class OAuthProviderConfig:
    name: str  # google|github
    client_id: Optional[str]
    client_secret: Optional[str]
    redirect_url: Optional[str]
    auth_url: str
    token_url: str
    userinfo_url: str
    scopes: Tuple[str, ...]
    emails_url: Optional[str] = None  # Secondary endpoint for providers that hide the email

    @property
    def enabled(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_url)


@dataclass(frozen=True)
class AuthConfig:
    # Session configuration
    jwt_secret: Optional[str]  # Required for session signing
    jwt_ttl_minutes: int
    cookie_secure: bool
    public_base_url: str  # Used to build verification/reset links

    # Verification token windows
    verify_token_ttl_seconds: int
    reset_token_ttl_seconds: int

    # OAuth transient state (csrf + pkce_verifier cookies)
    oauth_state_ttl_seconds: int
    http_timeout_seconds: float

    google: OAuthProviderConfig
    github: OAuthProviderConfig

    # Failed-login limiter
    login_max_attempts: int = 5
    login_window_seconds: int = 300

    @property
    def session_ttl_seconds(self) -> int:
        return self.jwt_ttl_minutes * 60

    @property
    def jwt_secret_bytes(self) -> bytes:
        return (self.jwt_secret or "").encode("utf-8")

    def provider(self, name: str) -> Optional[OAuthProviderConfig]:
        key = (name or "").strip().lower()
        if key == "google":
            return self.google
        if key == "github":
            return self.github
        return None


def _env_str(name: str) -> Optional[str]:
    return (os.getenv(name, "") or "").strip() or None


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(float(raw))
    except ValueError:
        return default


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load authentication configuration from environment variables.

    Providers are enabled only when their client id, client secret and redirect URL are set.
    """
    public_base_url = (_env_str("AUTH_PUBLIC_BASE_URL") or "http://localhost:8080").rstrip("/")
    cookie_secure_env = (os.getenv("AUTH_COOKIE_SECURE", "") or "").strip().lower()
    if cookie_secure_env in ("1", "true", "yes", "on"):
        cookie_secure = True
    elif cookie_secure_env in ("0", "false", "no", "off"):
        cookie_secure = False
    else:
        # Default: secure cookies when base URL is https; otherwise allow local dev.
        cookie_secure = public_base_url.startswith("https://")

    ttl_minutes = _env_int("JWT_MAXAGE", 60)
    if ttl_minutes < 1:
        ttl_minutes = 1

    timeout = float(_env_int("AUTH_HTTP_TIMEOUT_SECONDS", 10))
    if timeout <= 0:
        timeout = 10.0

    return AuthConfig(
        jwt_secret=_env_str("JWT_SECRET"),
        jwt_ttl_minutes=ttl_minutes,
        cookie_secure=cookie_secure,
        public_base_url=public_base_url,
        verify_token_ttl_seconds=max(60, _env_int("AUTH_VERIFY_TOKEN_TTL_SECONDS", 24 * 3600)),
        reset_token_ttl_seconds=max(60, _env_int("AUTH_RESET_TOKEN_TTL_SECONDS", 30 * 60)),
        oauth_state_ttl_seconds=max(60, _env_int("AUTH_OAUTH_STATE_TTL_SECONDS", 10 * 60)),
        http_timeout_seconds=timeout,
        google=OAuthProviderConfig(
            name="google",
            client_id=_env_str("GOOGLE_CLIENT_ID"),
            client_secret=_env_str("GOOGLE_CLIENT_SECRET"),
            redirect_url=_env_str("GOOGLE_REDIRECT_URL"),
            auth_url=GOOGLE_AUTH_URL,
            token_url=GOOGLE_TOKEN_URL,
            userinfo_url=GOOGLE_USERINFO_URL,
            scopes=("openid", "email", "profile"),
        ),
        github=OAuthProviderConfig(
            name="github",
            client_id=_env_str("GITHUB_CLIENT_ID"),
            client_secret=_env_str("GITHUB_CLIENT_SECRET"),
            redirect_url=_env_str("GITHUB_REDIRECT_URL"),
            auth_url=GITHUB_AUTH_URL,
            token_url=GITHUB_TOKEN_URL,
            userinfo_url=GITHUB_USERINFO_URL,
            emails_url=GITHUB_EMAILS_URL,
            scopes=("read:user", "user:email"),
        ),
        login_max_attempts=max(1, _env_int("AUTH_LOGIN_MAX_ATTEMPTS", 5)),
        login_window_seconds=max(10, _env_int("AUTH_LOGIN_WINDOW_SECONDS", 300)),
    )
