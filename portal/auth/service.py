"""
Auth use cases behind the HTTP surface.

Each method either returns its result or raises an `AuthError` subclass; the API layer
owns the mapping to status codes and response bodies.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from portal.auth.config import AuthConfig
from portal.auth.errors import (
    EmailExists,
    InternalError,
    InvalidHashFormat,
    MailDeliveryError,
    NotFound,
    TokenNotFound,
    TooManyAttempts,
    UpstreamError,
    ValidationFailed,
    WrongCredentials,
)
from portal.auth.models import AuthProvider, LoginOutcome, NewUser, OAuthTransientState, Role, TokenPurpose, User
from portal.auth.oauth import DelegatedLogin
from portal.auth.passwords import hash_password, verify_password
from portal.auth.providers import IdentityProvider
from portal.auth.rate_limit import RateLimiter
from portal.auth.session import issue_session_token
from portal.auth.tokens import VerificationTokens
from portal.auth.util import normalize_email, random_token, utcnow
from portal.mail.mailer import Mailer
from portal.mail.mails import build_link, send_forgot_password_email, send_verification_email, send_welcome_email
from portal.store.users import UserStore

logger = logging.getLogger(__name__)

VERIFY_PATH = "/api/auth/verify"
RESET_PATH = "/api/auth/reset-password"

# Verified against on unknown or password-less accounts so both paths cost one argon2 check.
_DUMMY_HASH = hash_password(random_token(16))


class AuthService:
    def __init__(
        self,
        cfg: AuthConfig,
        store: UserStore,
        mailer: Mailer,
        *,
        providers: Optional[Dict[str, IdentityProvider]] = None,
        rate_limiter: Optional[RateLimiter] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.cfg = cfg
        self.store = store
        self.mailer = mailer
        self.providers = dict(providers or {})
        self.rate_limiter = rate_limiter or RateLimiter(cfg.login_max_attempts, cfg.login_window_seconds)
        self.tokens = VerificationTokens(store, cfg, clock=clock)
        self.oauth = DelegatedLogin(cfg, store, send_welcome=self._send_welcome)

    # ---- local accounts ----

    def register(self, name: str, email: str, password: str) -> User:
        """
        Create an unverified local account and mail its verification link.

        A mail failure is raised after the user is committed; the account stays and can
        be verified once a new link is delivered.
        """
        email = normalize_email(email)
        if self.store.find_by_email(email) is not None:
            raise EmailExists()

        password_hash = hash_password(password)
        token, expires_at = self.tokens.new_token(TokenPurpose.VERIFY)
        user = self.store.insert(
            NewUser(
                name=name.strip(),
                email=email,
                password_hash=password_hash,
                provider=AuthProvider.LOCAL,
                role=Role.GUEST,
                verified=False,
                verification_token=token,
                token_expires_at=expires_at,
                token_purpose=TokenPurpose.VERIFY,
            )
        )
        logger.info("Registered user %s", user.id)

        link = build_link(self.cfg.public_base_url, VERIFY_PATH, token)
        try:
            send_verification_email(self.mailer, user.email, user.name, link)
        except MailDeliveryError:
            logger.error("Verification email for user %s was not delivered", user.id)
            raise
        return user

    def login(self, email: str, password: str) -> LoginOutcome:
        key = normalize_email(email)
        allowed, _ = self.rate_limiter.check(key)
        if not allowed:
            logger.warning("Login rate limit hit")
            raise TooManyAttempts()

        user = self.store.find_by_email(key)
        if user is not None and user.has_password:
            matched = self._password_matches(password, user)
        else:
            self._verify_dummy(password)
            matched = False
        if not matched:
            remaining = self.rate_limiter.record_failure(key)
            logger.info("Failed login (%d attempts remaining)", remaining)
            raise WrongCredentials()

        self.rate_limiter.reset(key)
        return LoginOutcome(user=user, token=self._issue_session(user))

    @staticmethod
    def _verify_dummy(password: str) -> None:
        try:
            verify_password(password, _DUMMY_HASH)
        except ValidationFailed:
            pass

    def _password_matches(self, password: str, user: User) -> bool:
        try:
            return verify_password(password, user.password_hash)
        except ValidationFailed:
            return False
        except InvalidHashFormat:
            logger.error("Stored password hash for user %s is unreadable", user.id)
            return False

    def verify_email(self, token: str) -> LoginOutcome:
        user = self.tokens.resolve(token, TokenPurpose.VERIFY)
        self.tokens.check_not_expired(user)
        self.tokens.consume(token, TokenPurpose.VERIFY)
        user = self.store.find_by_id(user.id) or user
        logger.info("Verified email for user %s", user.id)

        outcome = LoginOutcome(user=user, token=self._issue_session(user))
        try:
            self._send_welcome(user)
        except UpstreamError as e:
            logger.warning("Welcome email for %s failed: %s", user.id, e.detail or e.message)
            outcome.warnings.append("Failed to send welcome email")
        return outcome

    def forgot_password(self, email: str) -> None:
        """
        Mail a reset link to a local account.

        Unknown or OAuth-only addresses return silently so the endpoint cannot be used to
        enumerate accounts.
        """
        user = self.store.find_by_email(normalize_email(email))
        if user is None or user.provider != AuthProvider.LOCAL:
            logger.info("Password reset requested for an address with no local account")
            return
        token = self.tokens.issue_for(user.id, TokenPurpose.RESET)
        link = build_link(self.cfg.public_base_url, RESET_PATH, token)
        send_forgot_password_email(self.mailer, user.email, user.name, link)

    def reset_password(self, token: str, new_password: str) -> None:
        user = self.tokens.resolve(token, TokenPurpose.RESET)
        self.tokens.check_not_expired(user)
        if user.provider != AuthProvider.LOCAL:
            raise TokenNotFound()
        self.tokens.consume(token, TokenPurpose.RESET, password_hash=hash_password(new_password))
        logger.info("Password reset for user %s", user.id)

    # ---- delegated login ----

    def provider(self, name: str) -> IdentityProvider:
        p = self.providers.get((name or "").strip().lower())
        if p is None:
            raise NotFound("Login provider is not enabled")
        return p

    def start_delegated_login(self, provider_name: str) -> Tuple[str, OAuthTransientState]:
        return self.oauth.start(self.provider(provider_name))

    def delegated_login_callback(
        self, provider_name: str, *, code: str, state: str, transient: OAuthTransientState
    ) -> LoginOutcome:
        provider = self.provider(provider_name)
        try:
            return self.oauth.callback(provider, code=code, state=state, transient=transient)
        except UpstreamError as e:
            logger.error("%s login failed: %s", provider.name, e.detail or e.message)
            raise

    # ---- administration ----

    def update_role(self, user_id: str, role: Role) -> User:
        if self.store.find_by_id(user_id) is None:
            raise NotFound("User no longer exists")
        user = self.store.update_role(user_id, role)
        if user is None:
            raise NotFound("User no longer exists")
        logger.info("Role of user %s set to %s", user.id, role.value)
        return user

    # ---- helpers ----

    def _issue_session(self, user: User) -> str:
        if not self.cfg.jwt_secret:
            raise InternalError(detail="Session signing is not configured (JWT_SECRET)")
        return issue_session_token(user.id, self.cfg.jwt_secret_bytes, self.cfg.jwt_ttl_minutes)

    def _send_welcome(self, user: User) -> None:
        send_welcome_email(self.mailer, user.email, user.name)

