"""
Identity providers for delegated login.

`IdentityProvider` is the capability interface the login flow depends on. Providers
differ only in how user-info is obtained: `BasicUserInfoProvider` reads everything
from one endpoint (Google), `UserInfoWithEmailFallbackProvider` falls back to a
separate emails endpoint when the profile hides the address (GitHub).
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import requests

from portal.auth.config import AuthConfig, OAuthProviderConfig
from portal.auth.errors import OAuthProtocolError, OAuthTransportError
from portal.auth.models import AuthProvider, ProviderProfile

logger = logging.getLogger(__name__)

USER_AGENT = "portal-auth"


class IdentityProvider:
    kind: AuthProvider

    def __init__(self, cfg: OAuthProviderConfig, *, timeout: float = 10.0) -> None:
        self.cfg = cfg
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self.cfg.name

    def authorize_url(self, *, state: str, code_challenge: str) -> str:
        """
        Build the provider authorization URL (authorization code + PKCE S256).
        """
        params = {
            "client_id": self.cfg.client_id or "",
            "redirect_uri": self.cfg.redirect_url or "",
            "response_type": "code",
            "scope": " ".join(self.cfg.scopes),
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{self.cfg.auth_url}?{urlencode(params)}"

    def exchange_code(self, code: str, code_verifier: str) -> str:
        """
        Exchange authorization code (+ PKCE verifier) for an access token.
        """
        payload = {
            "client_id": self.cfg.client_id,
            "client_secret": self.cfg.client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.cfg.redirect_url,
            "code_verifier": code_verifier,
        }
        data = self._request_json(
            "POST", self.cfg.token_url, data=payload, headers={"Accept": "application/json"}, what="token exchange"
        )
        if not isinstance(data, dict):
            raise OAuthProtocolError(detail=f"{self.name}: invalid token response")
        if data.get("error"):
            # GitHub reports a bad/expired code with HTTP 200 and an `error` field.
            raise OAuthProtocolError(detail=f"{self.name}: token error {data.get('error')}")
        access_token = str(data.get("access_token") or "").strip()
        if not access_token:
            raise OAuthProtocolError(detail=f"{self.name}: missing access_token")
        return access_token

    def fetch_profile(self, access_token: str) -> ProviderProfile:
        raise NotImplementedError

    def _auth_headers(self, access_token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

    def _request_json(self, method: str, url: str, *, what: str, **kwargs: Any) -> Any:
        try:
            r = requests.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", self.name, what, type(e).__name__)
            raise OAuthTransportError(detail=f"{self.name}: {what} transport error: {type(e).__name__}") from e
        if r.status_code >= 400:
            # Avoid leaking sensitive info; include minimal context.
            logger.warning("%s %s failed (status=%d)", self.name, what, r.status_code)
            raise OAuthProtocolError(detail=f"{self.name}: {what} failed (status={r.status_code})")
        try:
            return r.json()
        except ValueError as e:
            raise OAuthProtocolError(detail=f"{self.name}: {what} returned invalid JSON") from e


class BasicUserInfoProvider(IdentityProvider):
    """Email, name and verification flag all come from the user-info endpoint."""

    def fetch_profile(self, access_token: str) -> ProviderProfile:
        data = self._request_json(
            "GET", self.cfg.userinfo_url, headers=self._auth_headers(access_token), what="userinfo"
        )
        if not isinstance(data, dict):
            raise OAuthProtocolError(detail=f"{self.name}: invalid userinfo response")
        email = str(data.get("email") or "").strip() or None
        name = str(data.get("name") or "").strip() or (email.split("@", 1)[0] if email else "")
        return ProviderProfile(email=email, name=name, email_verified=data.get("email_verified") is True)


class UserInfoWithEmailFallbackProvider(IdentityProvider):
    """Profile may omit the email; a secondary endpoint lists the account's addresses."""

    def fetch_profile(self, access_token: str) -> ProviderProfile:
        data = self._request_json(
            "GET", self.cfg.userinfo_url, headers=self._auth_headers(access_token), what="userinfo"
        )
        if not isinstance(data, dict):
            raise OAuthProtocolError(detail=f"{self.name}: invalid userinfo response")
        login = str(data.get("login") or "").strip()
        name = str(data.get("name") or "").strip() or login

        email = str(data.get("email") or "").strip() or None
        if email:
            # A public profile email is one the provider has already verified.
            return ProviderProfile(email=email, name=name or email.split("@", 1)[0], email_verified=True)

        if not self.cfg.emails_url:
            return ProviderProfile(email=None, name=name, email_verified=False)
        emails = self._request_json(
            "GET", self.cfg.emails_url, headers=self._auth_headers(access_token), what="emails"
        )
        chosen = select_email(emails if isinstance(emails, list) else [])
        return ProviderProfile(
            email=chosen,
            name=name or (chosen.split("@", 1)[0] if chosen else ""),
            email_verified=chosen is not None,
        )


def select_email(entries: List[Dict[str, Any]]) -> Optional[str]:
    """
    Pick an address from a provider email list.

    Preference: primary and verified, then any verified; unverified addresses are never used.
    """
    valid = [e for e in entries if isinstance(e, dict) and str(e.get("email") or "").strip()]
    for e in valid:
        if e.get("primary") is True and e.get("verified") is True:
            return str(e["email"]).strip()
    for e in valid:
        if e.get("verified") is True:
            return str(e["email"]).strip()
    return None


class GoogleProvider(BasicUserInfoProvider):
    kind = AuthProvider.GOOGLE


class GithubProvider(UserInfoWithEmailFallbackProvider):
    kind = AuthProvider.GITHUB


def build_providers(cfg: AuthConfig) -> Dict[str, IdentityProvider]:
    """Return the configured providers keyed by URL name (`google`, `github`)."""
    out: Dict[str, IdentityProvider] = {}
    if cfg.google.enabled:
        out["google"] = GoogleProvider(cfg.google, timeout=cfg.http_timeout_seconds)
    if cfg.github.enabled:
        out["github"] = GithubProvider(cfg.github, timeout=cfg.http_timeout_seconds)
    return out
