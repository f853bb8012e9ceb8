from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

from portal.auth.config import AuthConfig
from portal.auth.errors import TokenExpired, TokenNotFound
from portal.auth.models import Role, TokenPurpose, User
from portal.auth.util import random_token, utcnow
from portal.store.users import UserStore

logger = logging.getLogger(__name__)


class VerificationTokens:
    """
    Single-use, time-bounded tokens stored on the user record.

    Tokens are tagged with their purpose: a password-reset token never verifies an
    account through the verify path, and a verification token never resets a password.
    """

    def __init__(self, store: UserStore, cfg: AuthConfig, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock
        self._ttl = {
            TokenPurpose.VERIFY: timedelta(seconds=cfg.verify_token_ttl_seconds),
            TokenPurpose.RESET: timedelta(seconds=cfg.reset_token_ttl_seconds),
        }

    def new_token(self, purpose: TokenPurpose) -> Tuple[str, datetime]:
        """Return a fresh token and its absolute expiry (not yet stored)."""
        return random_token(32), self._clock() + self._ttl[purpose]

    def issue_for(self, user_id: str, purpose: TokenPurpose) -> str:
        token, expires_at = self.new_token(purpose)
        self._store.set_verification_token(user_id, token, expires_at, purpose)
        logger.info("Issued %s token for user %s (expires %s)", purpose.value, user_id, expires_at.isoformat())
        return token

    def resolve(self, token: str, purpose: Optional[TokenPurpose] = None) -> User:
        user = self._store.find_by_verification_token(token) if token else None
        if user is None:
            raise TokenNotFound()
        if purpose is not None and user.token_purpose != purpose:
            logger.warning("Rejected %s token presented on the %s path", user.token_purpose, purpose.value)
            raise TokenNotFound()
        return user

    def check_not_expired(self, user: User, now: Optional[datetime] = None) -> None:
        if user.token_expires_at is None:
            raise TokenNotFound()
        if (now or self._clock()) >= user.token_expires_at:
            raise TokenExpired()

    def consume(self, token: str, purpose: TokenPurpose, *, password_hash: Optional[str] = None) -> None:
        """
        Atomically clear the token and mark the user verified.

        Only the verify purpose promotes the user from guest to user. `password_hash`, when
        given, is written in the same store call, so a reset either lands whole or not at all.
        A second call with the same token finds nothing and raises `TokenNotFound`.
        """
        promote_to = Role.USER if purpose == TokenPurpose.VERIFY else None
        n = self._store.clear_verification_and_verify(
            token, purpose, self._clock(), promote_to, password_hash=password_hash
        )
        if n != 1:
            raise TokenNotFound()
