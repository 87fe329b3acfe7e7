"""
Configuration management for account_service
Uses pydantic-settings for environment variable loading and validation
"""

from functools import lru_cache
from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "account_service"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # API
    API_V1_PREFIX: str = "/v1"
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)

    # Database
    DATABASE_URL: str = Field(default="sqlite:///./account_service.db")
    DATABASE_POOL_SIZE: int = Field(default=20)
    DATABASE_MAX_OVERFLOW: int = Field(default=10)
    DATABASE_POOL_TIMEOUT: int = Field(default=30)

    # Redis
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    REDIS_POOL_SIZE: int = Field(default=50)

    # Second factor secret encryption (AES-256-GCM, 64 hex chars)
    SECOND_FACTOR_ENCRYPTION_KEY: Optional[str] = Field(default=None)

    # JWT
    JWT_ACCESS_SECRET: Optional[str] = Field(default=None)
    JWT_REFRESH_SECRET: Optional[str] = Field(default=None)
    JWT_ALGORITHM: str = Field(default="HS256")
    JWT_ISSUER: str = Field(default="account_service")
    JWT_ACCESS_TOKEN_TTL_MINUTES: int = Field(default=15)
    JWT_REFRESH_TOKEN_TTL_DAYS: int = Field(default=7)
    REFRESH_TOKENS_PER_ACCOUNT: int = Field(default=5)

    # Lockout
    LOGIN_LOCKOUT_THRESHOLD: int = Field(default=5)
    LOGIN_LOCKOUT_MINUTES: int = Field(default=30)
    SECOND_FACTOR_LOCKOUT_THRESHOLD: int = Field(default=5)
    SECOND_FACTOR_LOCKOUT_MINUTES: int = Field(default=15)

    # Second factor
    TOTP_ISSUER: str = Field(default="AccountService")
    TOTP_VALID_WINDOW: int = Field(default=1)
    ENROLLMENT_WINDOW_MINUTES: int = Field(default=10)
    PENDING_SECOND_FACTOR_TTL_MINUTES: int = Field(default=10)
    RECOVERY_CODE_COUNT: int = Field(default=10)

    # Account history
    LOGIN_HISTORY_LIMIT: int = Field(default=20)

    # Passwords and one-time codes
    PASSWORD_MIN_LENGTH: int = Field(default=8)
    PASSWORD_MIN_STRENGTH_SCORE: int = Field(default=2)
    PASSWORD_BCRYPT_COST: int = Field(default=12)
    EMAIL_OTP_TTL_MINUTES: int = Field(default=10)
    PASSWORD_RESET_TOKEN_TTL_MINUTES: int = Field(default=10)

    # Rate Limiting
    RATELIMIT_LOGIN_ATTEMPTS: int = Field(default=20)
    RATELIMIT_LOGIN_WINDOW_MINUTES: int = Field(default=15)

    # Proxies whose X-Forwarded-For is trusted (IPs or CIDRs, "*" for any)
    TRUSTED_PROXIES: List[str] = Field(default=["127.0.0.1"])

    # CORS
    CORS_ALLOWED_ORIGINS: List[str] = Field(default=["http://localhost:3000"])
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True)

    # Logging
    LOG_LEVEL: str = Field(default="INFO")

    @field_validator("CORS_ALLOWED_ORIGINS", "TRUSTED_PROXIES", mode="before")
    @classmethod
    def parse_comma_separated(cls, v):
        """Parse comma-separated string to list"""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level"""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}")
        return v.upper()

    @field_validator("TOTP_VALID_WINDOW")
    @classmethod
    def validate_totp_window(cls, v):
        """Clock-skew tolerance is at most one step either side"""
        if v not in (0, 1):
            raise ValueError("TOTP_VALID_WINDOW must be 0 or 1")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Build the settings object once per process"""
    return Settings()
