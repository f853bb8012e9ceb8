from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from portal.auth.models import Role, User
from portal.auth.util import is_valid_email


def _check_email(v: Any) -> str:
    s = str(v or "").strip()
    if not s:
        raise ValueError("Email is required")
    if not is_valid_email(s):
        raise ValueError("Email is invalid")
    return s


class RegisterRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str
    email: str
    password: str
    password_confirm: str = Field(alias="passwordConfirm")

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        if not (v or "").strip():
            raise ValueError("Name is required")
        return v

    @field_validator("email", mode="before")
    @classmethod
    def _email(cls, v: Any) -> str:
        return _check_email(v)

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v

    @model_validator(mode="after")
    def _passwords_match(self) -> "RegisterRequest":
        if not self.password_confirm:
            raise ValueError("Confirm Password is required")
        if self.password_confirm != self.password:
            raise ValueError("passwords do not match")
        return self


class LoginRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str
    password: str

    @field_validator("email", mode="before")
    @classmethod
    def _email(cls, v: Any) -> str:
        return _check_email(v)


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str

    @field_validator("email", mode="before")
    @classmethod
    def _email(cls, v: Any) -> str:
        return _check_email(v)


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    token: str
    new_password: str
    new_password_confirm: str

    @field_validator("token")
    @classmethod
    def _token(cls, v: str) -> str:
        if not (v or "").strip():
            raise ValueError("Token is required.")
        return v.strip()

    @field_validator("new_password")
    @classmethod
    def _new_password(cls, v: str) -> str:
        if len(v) < 6:
            raise ValueError("new password must be at least 6 characters")
        return v

    @model_validator(mode="after")
    def _passwords_match(self) -> "ResetPasswordRequest":
        if self.new_password_confirm != self.new_password:
            raise ValueError("new passwords do not match")
        return self


class RoleUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: Role

    @field_validator("role", mode="before")
    @classmethod
    def _role(cls, v: Any) -> Any:
        return str(v or "").strip().lower()


def user_payload(user: User) -> Dict[str, Any]:
    """Public view of a user (never includes hash or pending tokens)."""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
        "provider": user.provider.value,
        "verified": user.verified,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
        "updatedAt": user.updated_at.isoformat() if user.updated_at else None,
    }


def login_payload(token: str, warnings: Optional[List[str]] = None) -> Dict[str, Any]:
    out: Dict[str, Any] = {"status": "success", "token": token}
    if warnings:
        out["warnings"] = list(warnings)
    return out
