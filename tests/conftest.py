"""
Pytest config.

Local imports like `import portal` rely on the repo root being on sys.path; pin that
here so tests run the same with or without an editable install.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List, Optional, Set

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

from portal.auth.config import (  # noqa: E402
    GITHUB_AUTH_URL,
    GITHUB_EMAILS_URL,
    GITHUB_TOKEN_URL,
    GITHUB_USERINFO_URL,
    GOOGLE_AUTH_URL,
    GOOGLE_TOKEN_URL,
    GOOGLE_USERINFO_URL,
    AuthConfig,
    OAuthProviderConfig,
    load_auth_config,
)
from portal.auth.errors import MailDeliveryError, OAuthTransportError  # noqa: E402
from portal.auth.models import AuthProvider, ProviderProfile  # noqa: E402
from portal.auth.providers import IdentityProvider  # noqa: E402
from portal.store.users import InMemoryUserStore  # noqa: E402

TEST_SECRET = "test-secret-key-for-testing-purposes-only-0123456789"


def make_config(**overrides) -> AuthConfig:
    values = dict(
        jwt_secret=TEST_SECRET,
        jwt_ttl_minutes=60,
        cookie_secure=False,
        public_base_url="http://testserver",
        verify_token_ttl_seconds=24 * 3600,
        reset_token_ttl_seconds=30 * 60,
        oauth_state_ttl_seconds=600,
        http_timeout_seconds=5.0,
        google=OAuthProviderConfig(
            name="google",
            client_id="gid",
            client_secret="gsecret",
            redirect_url="http://testserver/api/auth/google/callback",
            auth_url=GOOGLE_AUTH_URL,
            token_url=GOOGLE_TOKEN_URL,
            userinfo_url=GOOGLE_USERINFO_URL,
            scopes=("openid", "email", "profile"),
        ),
        github=OAuthProviderConfig(
            name="github",
            client_id="ghid",
            client_secret="ghsecret",
            redirect_url="http://testserver/api/auth/github/callback",
            auth_url=GITHUB_AUTH_URL,
            token_url=GITHUB_TOKEN_URL,
            userinfo_url=GITHUB_USERINFO_URL,
            emails_url=GITHUB_EMAILS_URL,
            scopes=("read:user", "user:email"),
        ),
    )
    values.update(overrides)
    return AuthConfig(**values)


class RecordingMailer:
    """Keeps every send request; templates listed in `fail_templates` raise instead."""

    def __init__(self, fail_templates: Optional[Set[str]] = None) -> None:
        self.sent: List[Dict[str, object]] = []
        self.fail_templates = set(fail_templates or ())

    def send(self, to: str, subject: str, template_id: str, placeholders: Dict[str, str]) -> None:
        if template_id in self.fail_templates:
            raise MailDeliveryError(detail=f"smtp down ({template_id})")
        self.sent.append({"to": to, "subject": subject, "template_id": template_id, "placeholders": dict(placeholders)})

    def last(self, template_id: str) -> Dict[str, object]:
        matches = [m for m in self.sent if m["template_id"] == template_id]
        assert matches, f"no {template_id} mail sent"
        return matches[-1]


class FakeProvider(IdentityProvider):
    """Identity provider double that never touches the network."""

    def __init__(
        self,
        cfg: OAuthProviderConfig,
        *,
        kind: AuthProvider = AuthProvider.GOOGLE,
        profile: Optional[ProviderProfile] = None,
        fail_exchange: bool = False,
    ) -> None:
        super().__init__(cfg, timeout=1.0)
        self.kind = kind
        self.profile = profile or ProviderProfile(email="bob@x.com", name="Bob", email_verified=True)
        self.fail_exchange = fail_exchange
        self.exchange_calls: List[Dict[str, str]] = []
        self.profile_calls = 0

    def exchange_code(self, code: str, code_verifier: str) -> str:
        self.exchange_calls.append({"code": code, "code_verifier": code_verifier})
        if self.fail_exchange:
            raise OAuthTransportError(detail="connection reset")
        return "access-token"

    def fetch_profile(self, access_token: str) -> ProviderProfile:
        self.profile_calls += 1
        return self.profile


@pytest.fixture(autouse=True)
def _clear_config_cache():
    load_auth_config.cache_clear()
    yield
    load_auth_config.cache_clear()


@pytest.fixture
def cfg() -> AuthConfig:
    return make_config()


@pytest.fixture
def store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def google(cfg: AuthConfig) -> FakeProvider:
    return FakeProvider(cfg.google, kind=AuthProvider.GOOGLE)
