from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from fastapi import Request

from portal.auth.config import AuthConfig
from portal.auth.errors import Forbidden, InvalidToken, Unauthorized
from portal.auth.models import Role, User
from portal.auth.session import SESSION_COOKIE_NAME, verify_session_token
from portal.store.users import UserStore

logger = logging.getLogger(__name__)


def extract_token(request: Request) -> Optional[str]:
    """
    Session token from the `token` cookie, else from `Authorization: Bearer ...`.
    """
    cookie = (request.cookies.get(SESSION_COOKIE_NAME) or "").strip()
    if cookie:
        return cookie
    header = (request.headers.get("authorization") or "").strip()
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


class AccessGate:
    """The single enforcement point for authentication and role checks."""

    def __init__(self, cfg: AuthConfig, store: UserStore) -> None:
        self._cfg = cfg
        self._store = store

    def authenticate(self, token: Optional[str]) -> User:
        if not token:
            raise Unauthorized("Authorization token not provided")
        try:
            subject = verify_session_token(token, self._cfg.jwt_secret_bytes)
        except InvalidToken:
            raise Unauthorized("Token is invalid or malformed") from None
        user = self._store.find_by_id(subject)
        if user is None:
            logger.info("Session subject %s no longer exists", subject)
            raise Unauthorized("User no longer exists")
        return user

    def authorize(self, user: User, required_roles: Iterable[Role]) -> None:
        if user.role not in set(required_roles):
            logger.info("Denied user %s (role=%s)", user.id, user.role.value)
            raise Forbidden()


def _gate(request: Request) -> AccessGate:
    return request.app.state.gate


def current_user(request: Request) -> User:
    """FastAPI dependency: the authenticated user (any role)."""
    user = _gate(request).authenticate(extract_token(request))
    request.state.user = user
    return user


def require_roles(*roles: Role) -> Callable[[Request], User]:
    """FastAPI dependency factory: authenticated user holding one of `roles`."""
    allowed = frozenset(roles)

    def _dependency(request: Request) -> User:
        user = current_user(request)
        _gate(request).authorize(user, allowed)
        return user

    return _dependency
