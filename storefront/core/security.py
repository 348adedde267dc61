"""
JWT verification for storefront API callers.

Tokens are issued by the identity service; this module only validates them
and turns the claims into a ``Principal`` the order services can reason about.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

from jose import ExpiredSignatureError, JWTError, jwt

from storefront.core.config import get_settings
from storefront.core.logging import get_logger

logger = get_logger(__name__)


class UserRole(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


class SecurityError(Exception):
    """Base exception for security-related errors."""

    def __init__(self, message: str, code: str, **context):
        super().__init__(message)
        self.code = code
        self.context = context


class TokenError(SecurityError):
    """Exception raised for token-related errors."""


@dataclass(frozen=True)
class Principal:
    """Authenticated caller resolved from a bearer token."""

    user_id: str
    email: str
    role: UserRole = UserRole.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def decode_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate a JWT.

    Args:
        token: Encoded JWT string

    Returns:
        Decoded claims

    Raises:
        TokenError: If the token is expired, malformed or wrongly signed
    """
    settings = get_settings()
    if not token:
        raise TokenError("Token cannot be empty", code="EMPTY_TOKEN")

    try:
        return jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except ExpiredSignatureError as e:
        logger.info("Token has expired")
        raise TokenError("Token has expired", code="TOKEN_EXPIRED") from e
    except JWTError as e:
        logger.warning(
            "Token validation failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise TokenError("Invalid token", code="INVALID_TOKEN") from e


def principal_from_token(token: str) -> Principal:
    """
    Build a Principal from a bearer token.

    Args:
        token: Encoded JWT string

    Returns:
        Principal carrying the ``sub``, ``email`` and ``role`` claims

    Raises:
        TokenError: If the token is invalid or lacks a subject
    """
    payload = decode_token(token)

    subject = payload.get("sub")
    if not subject:
        raise TokenError("Token missing subject claim", code="MISSING_SUBJECT")

    try:
        role = UserRole(payload.get("role", UserRole.CUSTOMER.value))
    except ValueError as e:
        raise TokenError(
            "Token carries an unknown role",
            code="INVALID_ROLE",
            role=payload.get("role"),
        ) from e

    return Principal(
        user_id=str(subject),
        email=payload.get("email", ""),
        role=role,
    )
