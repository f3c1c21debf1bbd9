"""Configuration for the Tasky service.

Settings are read from environment variables using the TASKY__ prefix
(e.g., TASKY__MONGO_URI=mongodb://mongo:27017) and from an optional .env file.
"""

from typing import Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class TaskySettings(BaseSettings):
    """Tasky service configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="TASKY__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Service
    ENVIRONMENT: str = "development"
    VERSION: str = "1.0.0"
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # Database
    MONGO_URI: str = "mongodb://127.0.0.1:27017"
    MONGO_DB: str = "tasky"
    MONGO_MAX_POOL_SIZE: int = 10
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = 5000
    MONGO_SOCKET_TIMEOUT_MS: int = 45000

    # Auth / JWT
    JWT_SECRET: Optional[SecretStr] = None
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_IN: int = 7 * 24 * 60 * 60  # seconds
    BCRYPT_ROUNDS: int = Field(default=12, ge=12, le=31)

    # HTTP
    FRONTEND_URL: str = "http://localhost:3000"
    TRUST_PROXY: bool = True
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60
    RATE_LIMIT_MAX_REQUESTS: int = 100
    AUTH_RATE_LIMIT_MAX_ATTEMPTS: int = 10

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None
    LOG_DIR: Optional[str] = None

    # Mail
    MAIL_HOST: Optional[str] = None
    MAIL_PORT: int = 587
    MAIL_USERNAME: Optional[str] = None
    MAIL_PASSWORD: Optional[SecretStr] = None
    MAIL_USE_TLS: bool = True
    MAIL_FROM: str = "Tasky <no-reply@tasky.local>"
    MAIL_TIMEOUT: float = 10.0
    PASSWORD_RESET_URL: str = "https://yourdomain.com/reset-password"
    VERIFICATION_CODE_TTL: int = 10 * 60
    RESET_TOKEN_TTL: int = 60 * 60

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def log_json(self) -> bool:
        if self.LOG_JSON is None:
            return self.is_production
        return self.LOG_JSON


_config: Optional[TaskySettings] = None


def get_tasky_config() -> TaskySettings:
    """Load cached settings with TASKY__ env override support."""
    global _config
    if _config is None:
        _config = TaskySettings()
    return _config


def reset_tasky_config() -> None:
    """Reset config cache (useful in tests)."""
    global _config
    _config = None
