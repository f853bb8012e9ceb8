"""
Delegated login (OAuth2 authorization code + PKCE, CSRF-protected).

State machine per attempt: Started -> AwaitingCallback -> Completed | Rejected.
Nothing is kept server-side between `start` and `callback`; the CSRF token and PKCE
verifier travel in short-lived cookies owned by the HTTP layer.
"""
from __future__ import annotations

import hmac
import logging
from typing import Callable, Optional, Tuple

from portal.auth.config import AuthConfig
from portal.auth.errors import CsrfMismatch, EmailExists, InternalError, MissingEmail, MissingVerifier, UpstreamError
from portal.auth.models import LoginOutcome, NewUser, OAuthTransientState, Role, User
from portal.auth.providers import IdentityProvider
from portal.auth.session import issue_session_token
from portal.auth.util import normalize_email, pkce_challenge, random_token
from portal.store.users import UserStore

logger = logging.getLogger(__name__)


class DelegatedLogin:
    def __init__(
        self,
        cfg: AuthConfig,
        store: UserStore,
        *,
        send_welcome: Optional[Callable[[User], None]] = None,
    ) -> None:
        self._cfg = cfg
        self._store = store
        self._send_welcome = send_welcome

    def start(self, provider: IdentityProvider) -> Tuple[str, OAuthTransientState]:
        """
        Begin a login attempt: returns the provider URL and the state to keep client-side.
        """
        csrf_token = random_token(32)
        verifier = random_token(32)  # 43 chars (base64url) -> valid PKCE verifier
        url = provider.authorize_url(state=csrf_token, code_challenge=pkce_challenge(verifier))
        logger.info("Starting %s login", provider.name)
        return url, OAuthTransientState(csrf_token=csrf_token, pkce_verifier=verifier)

    def callback(
        self,
        provider: IdentityProvider,
        *,
        code: str,
        state: str,
        transient: OAuthTransientState,
    ) -> LoginOutcome:
        """
        Complete a login attempt.

        CSRF and verifier checks run before any request reaches the provider.
        """
        stored_csrf = (transient.csrf_token or "").strip()
        returned_state = (state or "").strip()
        if not stored_csrf or not hmac.compare_digest(stored_csrf.encode(), returned_state.encode()):
            logger.warning("Rejected %s callback: CSRF state mismatch", provider.name)
            raise CsrfMismatch()
        verifier = (transient.pkce_verifier or "").strip()
        if not verifier:
            logger.warning("Rejected %s callback: missing PKCE verifier", provider.name)
            raise MissingVerifier()

        access_token = provider.exchange_code(code, verifier)
        profile = provider.fetch_profile(access_token)
        email = normalize_email(profile.email)
        if not email or "@" not in email or not profile.email_verified:
            logger.warning("Rejected %s callback: no verified email in profile", provider.name)
            raise MissingEmail()

        if not self._cfg.jwt_secret:
            raise InternalError(detail="Session signing is not configured (JWT_SECRET)")
        user, created = self._find_or_create(provider, email, profile.name)
        outcome = LoginOutcome(
            user=user,
            token=issue_session_token(user.id, self._cfg.jwt_secret_bytes, self._cfg.jwt_ttl_minutes),
            created=created,
        )
        if created and self._send_welcome is not None:
            try:
                self._send_welcome(user)
            except UpstreamError as e:
                # The account exists already; report instead of failing the login.
                logger.warning("Welcome email for %s failed: %s", user.id, e.detail or e.message)
                outcome.warnings.append("Failed to send welcome email")
        logger.info("%s login completed for user %s (created=%s)", provider.name, user.id, created)
        return outcome

    def _find_or_create(self, provider: IdentityProvider, email: str, name: str) -> Tuple[User, bool]:
        existing = self._store.find_by_email(email)
        if existing is not None:
            # Account linking by email, whatever provider created the record.
            return existing, False
        new_user = NewUser(
            name=name or email.split("@", 1)[0],
            email=email,
            password_hash="",
            provider=provider.kind,
            role=Role.USER,
            verified=True,
        )
        try:
            return self._store.insert(new_user), True
        except EmailExists:
            # Lost a race with a concurrent first login for the same email.
            user = self._store.find_by_email(email)
            if user is None:
                raise
            return user, False
