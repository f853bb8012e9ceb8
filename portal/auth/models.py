from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class Role(str, Enum):
    ADMIN = "admin"
    USER = "user"
    GUEST = "guest"


class AuthProvider(str, Enum):
    LOCAL = "Local"
    GOOGLE = "Google"
    GITHUB = "Github"

    @classmethod
    def parse(cls, value: str) -> "AuthProvider":
        key = (value or "").strip().lower()
        for p in cls:
            if p.value.lower() == key:
                return p
        raise ValueError(f"Invalid auth provider: {value}")


class TokenPurpose(str, Enum):
    VERIFY = "verify"  # new-account email verification
    RESET = "reset"  # password reset


@dataclass
class User:
    """Authoritative identity record."""

    id: str
    name: str
    email: str
    password_hash: str  # empty for OAuth-only accounts
    role: Role
    provider: AuthProvider
    verified: bool
    verification_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    token_purpose: Optional[TokenPurpose] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)


@dataclass(frozen=True)
class NewUser:
    name: str
    email: str
    password_hash: str
    provider: AuthProvider
    role: Role = Role.GUEST
    verified: bool = False
    verification_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    token_purpose: Optional[TokenPurpose] = None


@dataclass(frozen=True)
class SessionClaims:
    sub: str
    iat: int
    exp: int


@dataclass(frozen=True)
class ProviderProfile:
    """User-info normalized across identity providers."""

    email: Optional[str]
    name: str
    email_verified: bool


@dataclass(frozen=True)
class OAuthTransientState:
    """Client-held state of one in-flight delegated login attempt."""

    csrf_token: Optional[str]
    pkce_verifier: Optional[str]


@dataclass
class LoginOutcome:
    """A completed sign-in: the user, a fresh session token and non-fatal warnings."""

    user: User
    token: str
    created: bool = False
    warnings: List[str] = field(default_factory=list)
