from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    ConflictError,
    DeliveryError,
    InternalError,
    NotFoundError,
    RateLimitedError,
    TaskyError,
    UnauthenticatedError,
    ValidationError,
)
from .logging import get_logger, setup_logging
from .security import (
    AuthenticatedUser,
    TokenData,
    create_access_token,
    decode_token,
    get_jwt_secret,
    hash_password,
    parse_bearer,
    verify_password,
)
from .settings import TaskySettings, get_tasky_config, reset_tasky_config

__all__ = [
    "TaskySettings",
    "get_tasky_config",
    "reset_tasky_config",
    "get_logger",
    "setup_logging",
    "AuthenticatedUser",
    "TokenData",
    "create_access_token",
    "decode_token",
    "get_jwt_secret",
    "hash_password",
    "parse_bearer",
    "verify_password",
    "AuthenticationError",
    "ConfigurationError",
    "ConflictError",
    "DeliveryError",
    "InternalError",
    "NotFoundError",
    "RateLimitedError",
    "TaskyError",
    "UnauthenticatedError",
    "ValidationError",
]
