from __future__ import annotations

from argon2 import PasswordHasher, extract_parameters
from argon2.exceptions import HashingError as Argon2HashingError
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from portal.auth.errors import (
    MAX_PASSWORD_LENGTH,
    EmptyPassword,
    ExceededMaxLength,
    HashingError,
    InvalidHashFormat,
)

# argon2id with library defaults; parameters are encoded into every hash.
_hasher = PasswordHasher()


def _check_password_input(password: str) -> None:
    if not password:
        raise EmptyPassword()
    # Bound the hashing cost before doing any work.
    if len(password) > MAX_PASSWORD_LENGTH:
        raise ExceededMaxLength()


def hash_password(password: str) -> str:
    """
    Hash password with argon2id and a fresh random salt.

    Args:
        password: Plain text password (1-64 characters)

    Returns:
        Self-describing PHC string (algorithm, parameters, salt and digest)
    """
    _check_password_input(password)
    try:
        return _hasher.hash(password)
    except Argon2HashingError as e:
        raise HashingError(detail=str(e)) from e


def verify_password(password: str, hashed: str) -> bool:
    """
    Verify password against an argon2 hash.

    Args:
        password: Plain text password
        hashed: PHC string produced by `hash_password`

    Returns:
        True if password matches, False otherwise

    Raises:
        InvalidHashFormat: `hashed` is not a parseable argon2 hash
    """
    _check_password_input(password)
    try:
        extract_parameters(hashed or "")
    except (InvalidHashError, ValueError, TypeError) as e:
        raise InvalidHashFormat(detail="unparseable password hash") from e

    try:
        return _hasher.verify(hashed, password)
    except VerifyMismatchError:
        return False
    except InvalidHashError as e:
        raise InvalidHashFormat(detail="unparseable password hash") from e
    except VerificationError:
        return False
