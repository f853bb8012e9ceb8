"""
User-record store.

`UserStore` is the only persistence seam the auth core depends on. `PostgresUserStore`
is the production backend; `InMemoryUserStore` backs tests and local development.
Every mutation is a single-row, single-statement operation.
"""
from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Dict, Optional, Protocol

from portal.auth.errors import EmailExists, StoreError
from portal.auth.models import AuthProvider, NewUser, Role, TokenPurpose, User
from portal.auth.util import normalize_email, utcnow
from portal.store.config import StoreConfig, load_store_config

logger = logging.getLogger(__name__)


class UserStore(Protocol):
    def find_by_id(self, user_id: str) -> Optional[User]: ...

    def find_by_email(self, email: str) -> Optional[User]: ...

    def find_by_verification_token(self, token: str) -> Optional[User]: ...

    def insert(self, new_user: NewUser) -> User: ...

    def update_password(self, user_id: str, password_hash: str) -> None: ...

    def update_role(self, user_id: str, role: Role) -> Optional[User]: ...

    def set_verification_token(
        self, user_id: str, token: str, expires_at: datetime, purpose: TokenPurpose
    ) -> None: ...

    def clear_verification_and_verify(
        self,
        token: str,
        purpose: TokenPurpose,
        now: datetime,
        promote_to: Optional[Role],
        password_hash: Optional[str] = None,
    ) -> int: ...

    def count(self) -> int: ...


class InMemoryUserStore:
    """Thread-safe dict-backed store; mirrors the Postgres semantics."""

    def __init__(self) -> None:
        self._users: Dict[str, User] = {}
        self._lock = threading.Lock()

    def _copy(self, user: Optional[User]) -> Optional[User]:
        return replace(user) if user is not None else None

    def find_by_id(self, user_id: str) -> Optional[User]:
        with self._lock:
            return self._copy(self._users.get(str(user_id)))

    def find_by_email(self, email: str) -> Optional[User]:
        key = normalize_email(email)
        with self._lock:
            for u in self._users.values():
                if u.email == key:
                    return self._copy(u)
        return None

    def find_by_verification_token(self, token: str) -> Optional[User]:
        if not token:
            return None
        with self._lock:
            for u in self._users.values():
                if u.verification_token == token:
                    return self._copy(u)
        return None

    def insert(self, new_user: NewUser) -> User:
        email = normalize_email(new_user.email)
        now = utcnow()
        with self._lock:
            if any(u.email == email for u in self._users.values()):
                raise EmailExists()
            user = User(
                id=str(uuid.uuid4()),
                name=new_user.name,
                email=email,
                password_hash=new_user.password_hash,
                role=new_user.role,
                provider=new_user.provider,
                verified=new_user.verified,
                verification_token=new_user.verification_token,
                token_expires_at=new_user.token_expires_at,
                token_purpose=new_user.token_purpose,
                created_at=now,
                updated_at=now,
            )
            self._users[user.id] = user
            return self._copy(user)

    def update_password(self, user_id: str, password_hash: str) -> None:
        with self._lock:
            user = self._users.get(str(user_id))
            if user is None:
                raise StoreError(detail=f"user {user_id} not found")
            user.password_hash = password_hash
            user.updated_at = utcnow()

    def update_role(self, user_id: str, role: Role) -> Optional[User]:
        with self._lock:
            user = self._users.get(str(user_id))
            if user is None:
                return None
            user.role = role
            user.updated_at = utcnow()
            return self._copy(user)

    def set_verification_token(self, user_id: str, token: str, expires_at: datetime, purpose: TokenPurpose) -> None:
        with self._lock:
            user = self._users.get(str(user_id))
            if user is None:
                raise StoreError(detail=f"user {user_id} not found")
            user.verification_token = token
            user.token_expires_at = expires_at
            user.token_purpose = purpose
            user.updated_at = utcnow()

    def clear_verification_and_verify(
        self,
        token: str,
        purpose: TokenPurpose,
        now: datetime,
        promote_to: Optional[Role],
        password_hash: Optional[str] = None,
    ) -> int:
        with self._lock:
            for user in self._users.values():
                if user.verification_token != token or not token:
                    continue
                if user.token_purpose != purpose:
                    return 0
                if user.token_expires_at is None or user.token_expires_at <= now:
                    return 0
                user.verification_token = None
                user.token_expires_at = None
                user.token_purpose = None
                user.verified = True
                if promote_to is not None and user.role == Role.GUEST:
                    user.role = promote_to
                if password_hash is not None:
                    user.password_hash = password_hash
                user.updated_at = utcnow()
                return 1
        return 0

    def count(self) -> int:
        with self._lock:
            return len(self._users)


_USER_COLUMNS = (
    "id::text, name, email, password, role::text, provider::text, verified, "
    "verification_token, token_expires_at, token_purpose, created_at, updated_at"
)


def _row_to_user(row) -> User:
    (
        user_id,
        name,
        email,
        password_hash,
        role,
        provider,
        verified,
        token,
        expires_at,
        purpose,
        created_at,
        updated_at,
    ) = row
    return User(
        id=str(user_id),
        name=name,
        email=email,
        password_hash=password_hash or "",
        role=Role(role),
        provider=AuthProvider.parse(provider),
        verified=bool(verified),
        verification_token=token,
        token_expires_at=expires_at,
        token_purpose=TokenPurpose(purpose) if purpose else None,
        created_at=created_at,
        updated_at=updated_at,
    )


class PostgresUserStore:
    """psycopg-backed store; one short-lived connection per operation."""

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn

    def _connect(self):
        import psycopg

        return psycopg.connect(self._dsn)

    def _fetch_one(self, where: str, params: tuple) -> Optional[User]:
        import psycopg

        try:
            with self._connect() as conn:
                row = conn.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE {where}", params).fetchone()
        except psycopg.Error as e:
            raise StoreError(detail=str(e)) from e
        return _row_to_user(row) if row else None

    def find_by_id(self, user_id: str) -> Optional[User]:
        try:
            uuid.UUID(str(user_id))
        except ValueError:
            return None
        return self._fetch_one("id = %s", (str(user_id),))

    def find_by_email(self, email: str) -> Optional[User]:
        return self._fetch_one("email = %s", (normalize_email(email),))

    def find_by_verification_token(self, token: str) -> Optional[User]:
        if not token:
            return None
        return self._fetch_one("verification_token = %s", (token,))

    def insert(self, new_user: NewUser) -> User:
        import psycopg

        try:
            with self._connect() as conn:
                row = conn.execute(
                    f"""
                    INSERT INTO users (name, email, password, role, provider, verified,
                                       verification_token, token_expires_at, token_purpose)
                    VALUES (%s, %s, %s, %s::user_role, %s::auth_provider, %s, %s, %s, %s)
                    RETURNING {_USER_COLUMNS}
                    """,
                    (
                        new_user.name,
                        normalize_email(new_user.email),
                        new_user.password_hash,
                        new_user.role.value,
                        new_user.provider.value,
                        new_user.verified,
                        new_user.verification_token,
                        new_user.token_expires_at,
                        new_user.token_purpose.value if new_user.token_purpose else None,
                    ),
                ).fetchone()
        except psycopg.errors.UniqueViolation as e:
            raise EmailExists() from e
        except psycopg.Error as e:
            raise StoreError(detail=str(e)) from e
        if not row:
            raise StoreError(detail="insert returned no row")
        return _row_to_user(row)

    def _execute(self, sql: str, params) -> int:
        import psycopg

        try:
            with self._connect() as conn:
                cur = conn.execute(sql, params)
                return cur.rowcount
        except psycopg.Error as e:
            raise StoreError(detail=str(e)) from e

    def update_password(self, user_id: str, password_hash: str) -> None:
        n = self._execute(
            "UPDATE users SET password = %s, updated_at = now() WHERE id = %s",
            (password_hash, str(user_id)),
        )
        if n != 1:
            raise StoreError(detail=f"user {user_id} not found")

    def update_role(self, user_id: str, role: Role) -> Optional[User]:
        n = self._execute(
            "UPDATE users SET role = %s::user_role, updated_at = now() WHERE id = %s",
            (role.value, str(user_id)),
        )
        if n != 1:
            return None
        return self.find_by_id(user_id)

    def set_verification_token(self, user_id: str, token: str, expires_at: datetime, purpose: TokenPurpose) -> None:
        n = self._execute(
            """
            UPDATE users
            SET verification_token = %s, token_expires_at = %s, token_purpose = %s, updated_at = now()
            WHERE id = %s
            """,
            (token, expires_at, purpose.value, str(user_id)),
        )
        if n != 1:
            raise StoreError(detail=f"user {user_id} not found")

    def clear_verification_and_verify(
        self,
        token: str,
        purpose: TokenPurpose,
        now: datetime,
        promote_to: Optional[Role],
        password_hash: Optional[str] = None,
    ) -> int:
        # Single statement: the row lock makes concurrent consumers race for one winner.
        return self._execute(
            """
            UPDATE users
            SET verified = true,
                verification_token = NULL,
                token_expires_at = NULL,
                token_purpose = NULL,
                password = COALESCE(%(password)s::varchar, password),
                role = CASE
                    WHEN %(promote)s::user_role IS NOT NULL AND role = 'guest' THEN %(promote)s::user_role
                    ELSE role
                END,
                updated_at = now()
            WHERE verification_token = %(token)s
              AND token_purpose = %(purpose)s
              AND token_expires_at > %(now)s
            """,
            {
                "promote": promote_to.value if promote_to else None,
                "token": token,
                "purpose": purpose.value,
                "now": now,
                "password": password_hash,
            },
        )

    def count(self) -> int:
        import psycopg

        try:
            with self._connect() as conn:
                row = conn.execute("SELECT COUNT(*) FROM users").fetchone()
        except psycopg.Error as e:
            raise StoreError(detail=str(e)) from e
        return int(row[0]) if row else 0


def build_user_store(cfg: Optional[StoreConfig] = None) -> UserStore:
    """Postgres when a DSN is configured, otherwise an in-process store (dev only)."""
    cfg = cfg or load_store_config()
    if cfg.has_database:
        return PostgresUserStore(cfg.dsn)
    logger.warning("Postgres not configured; users are kept in memory and lost on restart")
    return InMemoryUserStore()
