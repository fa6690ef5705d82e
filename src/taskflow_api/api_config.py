"""
Config for TaskFlow API.

This module creates a single instance of the Settings class,
which other modules can import directly to access configuration settings.

For local development these settings are defined by environment variables,
which are set in the docker compose file (or in tests/conftest.py for the test suite).
"""

import os
from dataclasses import dataclass, field

from pydantic import SecretStr


@dataclass
class APISettings:
    """API configuration settings."""

    environment: str = os.getenv("TASKFLOW_ENV", "NOT_SET")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    first_admin_username: str = os.getenv("FIRST_ADMIN_USERNAME", "NOT_SET")
    first_admin_email: str = os.getenv("FIRST_ADMIN_EMAIL", "NOT_SET")
    first_admin_password: SecretStr = SecretStr(os.getenv("FIRST_ADMIN_PASSWORD", "NOT_SET"))


@dataclass
class DBSettings:
    """Database configuration settings (PostgreSQL via asyncpg in deployed environments)."""

    url: SecretStr = SecretStr(os.getenv("DATABASE_URL", "NOT_SET"))
    echo_db_output: bool = bool(os.getenv("DB_ECHO", "False") == "True")  # anything but "True" is considered False


@dataclass
class RedisSettings:
    """
    Redis configuration settings.

    Redis backs the token blacklist and the login lockout counters.
    If REDIS_URL is not set, an in-process store is used instead, which is only
    suitable for a single API replica (local development and tests).
    """

    url: SecretStr = SecretStr(os.getenv("REDIS_URL", "NOT_SET"))

    @property
    def enabled(self) -> bool:
        return self.url.get_secret_value() != "NOT_SET"


@dataclass
class JWTSettings:
    """JSON Web Token (JWT) configuration settings."""

    secret_key: SecretStr = SecretStr(os.getenv("JWT_SECRET_KEY", "NOT_SET"))
    algorithm: str = os.getenv("JWT_ALGORITHM", "HS512")
    access_token_expires_seconds: int = int(os.getenv("JWT_ACCESS_EXPIRES_SECONDS", 60 * 60 * 24))  # 24 hours
    refresh_token_expires_seconds: int = int(os.getenv("JWT_REFRESH_EXPIRES_SECONDS", 60 * 60 * 24 * 7))  # 7 days
    password_reset_expires_seconds: int = int(os.getenv("PASSWORD_RESET_EXPIRES_SECONDS", 60 * 60))  # 1 hour


@dataclass
class LockoutSettings:
    """Settings for locking accounts after repeated failed logins."""

    max_failed_attempts: int = int(os.getenv("LOGIN_MAX_FAILED_ATTEMPTS", 5))
    lock_duration_seconds: int = int(os.getenv("LOGIN_LOCK_DURATION_SECONDS", 30 * 60))  # 30 mins
    failed_attempts_ttl_seconds: int = int(os.getenv("LOGIN_FAILED_ATTEMPTS_TTL_SECONDS", 60 * 60 * 24))  # 24 hours


@dataclass
class Settings:
    """Configuration settings for TaskFlow API."""

    api: APISettings = field(default_factory=APISettings)
    database: DBSettings = field(default_factory=DBSettings)
    redis: RedisSettings = field(default_factory=RedisSettings)
    jwt: JWTSettings = field(default_factory=JWTSettings)
    lockout: LockoutSettings = field(default_factory=LockoutSettings)

    def validate_api_settings(self) -> None:
        """
        Validate all required settings are actually set.
        This is run on startup of the API which means that later on in the codebase
        we don't have to check for any non set values, we can just assume they are set.
        """
        required_fields = {
            "TASKFLOW_ENV": self.api.environment,
            "DATABASE_URL": self.database.url,
            "JWT_SECRET_KEY": self.jwt.secret_key,
        }
        for setting_name, setting in required_fields.items():
            if isinstance(setting, str) and setting == "NOT_SET":
                raise ValueError(f"A required environment variable was not set: {setting_name=}")
            if isinstance(setting, SecretStr):
                if setting.get_secret_value() == "NOT_SET":
                    raise ValueError(f"A required environment variable was not set: {setting_name=}")
                if self.api.environment not in ["local_dev", "test"] and setting.get_secret_value() == "badpassword":
                    raise ValueError(
                        f"A secret environment variable was set to badpassword for a non local environment: {setting_name=}"
                    )

        if self.lockout.max_failed_attempts < 1:
            raise ValueError("LOGIN_MAX_FAILED_ATTEMPTS must be at least 1")


# This instance can be imported and used throughout the application.
settings = Settings()
