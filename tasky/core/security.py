import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, Optional

import jwt
import pydantic
from passlib.context import CryptContext
from pydantic import BaseModel

from .exceptions import ConfigurationError, UnauthenticatedError
from .logging import get_logger
from .settings import TaskySettings, get_tasky_config

logger = get_logger("core.security")

DEFAULT_BCRYPT_ROUNDS = 12

_ephemeral_secret: Optional[str] = None


class TokenData(BaseModel):
    """Decoded JWT payload."""
    sub: str
    iat: int
    exp: int


@dataclass
class AuthenticatedUser:
    """Identity attached to ``request.state.user`` by the auth middleware."""

    user_id: str
    email: str
    name: str


@lru_cache(maxsize=4)
def _pwd_context(rounds: int) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


def hash_password(password: str, settings: Optional[TaskySettings] = None) -> str:
    """Hash a plain-text password with bcrypt at the configured cost factor."""
    settings = settings or get_tasky_config()
    return _pwd_context(settings.BCRYPT_ROUNDS).hash(password)


def verify_password(plain_password: str, stored_hash: str) -> bool:
    """Verify a plain password against a stored bcrypt hash."""
    if not stored_hash:
        return False
    try:
        # The cost factor is read from the hash itself
        return _pwd_context(DEFAULT_BCRYPT_ROUNDS).verify(plain_password, stored_hash)
    except ValueError:
        # Unrecognized or corrupt hash
        return False


def get_jwt_secret(settings: Optional[TaskySettings] = None) -> str:
    """Return the signing key for access tokens.

    Production requires TASKY__JWT_SECRET. Elsewhere a random per-process key
    is generated, so tokens do not survive a restart.

    Raises:
        ConfigurationError: If no secret is configured in production.
    """
    global _ephemeral_secret
    settings = settings or get_tasky_config()
    if settings.JWT_SECRET is not None:
        return settings.JWT_SECRET.get_secret_value()
    if settings.is_production:
        raise ConfigurationError("TASKY__JWT_SECRET must be set in production")
    if _ephemeral_secret is None:
        _ephemeral_secret = secrets.token_urlsafe(48)
        logger.warning("jwt_secret_generated", reason="TASKY__JWT_SECRET is not set")
    return _ephemeral_secret


def create_access_token(subject: str, settings: Optional[TaskySettings] = None) -> str:
    """Create a signed JWT for the given subject (user id)."""
    settings = settings or get_tasky_config()
    now = datetime.now(timezone.utc)

    payload: Dict[str, Any] = {
        "sub": subject,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=settings.JWT_EXPIRES_IN)).timestamp()),
    }

    return jwt.encode(
        payload,
        get_jwt_secret(settings),
        algorithm=settings.JWT_ALGORITHM,
    )


def decode_token(token: str, settings: Optional[TaskySettings] = None) -> TokenData:
    """Decode and validate a JWT, returning a typed payload.

    Raises:
        UnauthenticatedError: If the token is expired, tampered with or malformed.
    """
    settings = settings or get_tasky_config()
    try:
        payload = jwt.decode(
            token,
            get_jwt_secret(settings),
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise UnauthenticatedError("Token has expired") from e
    except jwt.InvalidTokenError as e:
        raise UnauthenticatedError("Invalid token") from e

    try:
        return TokenData(**payload)
    except pydantic.ValidationError as e:
        raise UnauthenticatedError("Invalid token") from e


def parse_bearer(auth_header: Optional[str]) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header.

    Raises:
        UnauthenticatedError: If the header is absent or not a bearer credential.
    """
    if not auth_header:
        raise UnauthenticatedError("Not authenticated")
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise UnauthenticatedError("Invalid Authorization header format. Expected: Bearer <token>")
    return parts[1]
