"""Application configuration using pydantic-settings.

Every backend the service talks to (relational DB, Redis, MongoDB, AWS)
is configured here and read through the cached ``get_settings()``.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def redact_url(url: str) -> str:
    """Redact the password part of a connection URL."""
    if "://" in url and "@" in url:
        proto, rest = url.split("://", 1)
        if "@" in rest:
            creds, host = rest.rsplit("@", 1)
            if ":" in creds:
                user, _ = creds.split(":", 1)
                return f"{proto}://{user}:***@{host}"
    return url


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Database
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/officemate.db",
        description="Database connection URL (postgresql+asyncpg://... in production)",
    )

    # ======================
    # Redis (sessions, OTP, rate limits)
    # ======================
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")

    # ======================
    # MongoDB (legacy data migration only)
    # ======================
    mongo_url: str = Field(default="mongodb://localhost:27017", description="Legacy MongoDB URL")
    mongo_database: str = Field(default="officemate", description="Legacy MongoDB database")
    mongo_users_collection: str = Field(default="users", description="Legacy users collection")

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")
    cors_origins: str = Field(default="", description="Comma-separated allowed CORS origins")
    api_rate_limit_per_minute: int = Field(default=60, description="API calls per minute per user (or address)")
    rate_limit_storage_uri: str = Field(default="", description="slowapi storage URI; empty uses redis_url")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")

    # ======================
    # Admin
    # ======================
    admin_token: str = Field(default="", description="Admin API token for protected endpoints")

    # ======================
    # JWT
    # ======================
    jwt_secret_key: str = Field(
        default="change-me-in-production-officemate-secret",
        description="HMAC secret for HS256 tokens",
    )
    jwt_algorithm: str = Field(default="HS256", description="HS256 or RS256")
    jwt_private_key: Optional[str] = Field(default=None, description="PEM private key for RS256")
    jwt_public_key: Optional[str] = Field(default=None, description="PEM public key for RS256")
    jwt_issuer: str = Field(default="officemate", description="Token issuer claim")
    jwt_access_token_expiration: int = Field(default=3600, description="Access token TTL in seconds")
    jwt_refresh_token_expiration: int = Field(
        default=86400, description="Refresh token TTL in seconds"
    )

    # ======================
    # OTP
    # ======================
    otp_length: int = Field(default=6, description="Number of digits in an OTP")
    otp_expiration_minutes: int = Field(default=5, description="Mobile OTP lifetime")
    otp_max_attempts: int = Field(default=3, description="Verification attempts per OTP")
    otp_max_requests_per_hour: int = Field(default=5, description="OTP requests per identifier per hour")
    email_otp_expiration_minutes: int = Field(default=10, description="Email OTP lifetime")
    email_otp_max_attempts: int = Field(default=3, description="Verification attempts per email OTP")

    # ======================
    # Account protection
    # ======================
    registration_max_per_hour: int = Field(default=5, description="Registrations per phone per hour")
    login_max_per_hour: int = Field(default=10, description="Login attempts per phone per hour")
    lockout_max_failed_attempts: int = Field(default=5, description="Failures before lockout")
    lockout_duration_minutes: int = Field(default=30, description="Account lockout duration")
    suspicious_activity_threshold: int = Field(
        default=10, description="Suspicious events in 24h before the account is locked"
    )
    captcha_after_failed_attempts: int = Field(
        default=3, description="Failed attempts after which a CAPTCHA should be required"
    )
    default_country_code: str = Field(
        default="+91", description="Country code applied to numbers given without one"
    )

    # ======================
    # AWS
    # ======================
    aws_region: str = Field(default="us-east-1", description="AWS region")
    aws_endpoint_url: Optional[str] = Field(
        default=None, description="Endpoint override (LocalStack) for all AWS clients"
    )
    dynamodb_table_prefix: str = Field(default="officemate", description="DynamoDB table prefix")
    sns_sender_id: str = Field(default="OfficeMate", description="SMS sender id")
    sns_sms_type: str = Field(default="Transactional", description="Transactional or Promotional")
    sns_max_price: str = Field(default="0.50", description="Max USD price per SMS")
    ses_from_email: str = Field(default="noreply@officemate.com", description="SES sender address")
    ses_from_name: str = Field(default="OfficeMate", description="SES sender display name")
    ses_configuration_set: Optional[str] = Field(default=None, description="SES configuration set")
    kms_key_id: Optional[str] = Field(
        default=None, description="KMS key id/ARN/alias for envelope encryption"
    )
    kms_signing_key_id: Optional[str] = Field(
        default=None, description="Asymmetric KMS key used for signing"
    )

    # ======================
    # Encryption
    # ======================
    master_key: Optional[str] = Field(
        default=None, description="Fernet key used for field encryption when KMS is not configured"
    )

    # ======================
    # Safety Guards
    # ======================
    notifications_dry_run: bool = Field(
        default=True, description="Log SMS/email instead of sending through AWS"
    )

    # ======================
    # Safety features
    # ======================
    location_share_base_url: str = Field(
        default="https://officemate.app/share", description="Base URL of public location links"
    )
    max_emergency_contacts: int = Field(default=5, description="Emergency contacts per user")
    max_family_contacts: int = Field(default=10, description="Family sharing contacts per user")

    # ======================
    # Maintenance
    # ======================
    cleanup_interval_seconds: int = Field(default=3600, description="Cleanup job interval")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def jwt_uses_rsa(self) -> bool:
        """RS256 is only used when both PEM keys are present."""
        return (
            self.jwt_algorithm.upper() == "RS256"
            and bool(self.jwt_private_key)
            and bool(self.jwt_public_key)
        )

    @property
    def allowed_origins(self) -> list[str]:
        """Parse CORS origins into a list."""
        if not self.cors_origins:
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def dynamodb_table(self, name: str) -> str:
        """Get prefixed DynamoDB table name."""
        return f"{self.dynamodb_table_prefix}_{name}"

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "database_url": redact_url(self.database_url),
            "redis_url": redact_url(self.redis_url),
            "mongo_url": redact_url(self.mongo_url),
            "admin_token": "***" if self.admin_token else "(not set)",
            "jwt": {
                "algorithm": "RS256" if self.jwt_uses_rsa else "HS256",
                "issuer": self.jwt_issuer,
                "access_ttl": self.jwt_access_token_expiration,
                "refresh_ttl": self.jwt_refresh_token_expiration,
                "secret": "***",
            },
            "otp": {
                "length": self.otp_length,
                "expiration_minutes": self.otp_expiration_minutes,
                "max_attempts": self.otp_max_attempts,
                "max_requests_per_hour": self.otp_max_requests_per_hour,
            },
            "aws": {
                "region": self.aws_region,
                "endpoint_url": self.aws_endpoint_url or "(default)",
                "dynamodb_table_prefix": self.dynamodb_table_prefix,
                "kms_key": "***" if self.kms_key_id else "(not set)",
            },
            "master_key": "***" if self.master_key else "(not set)",
            "notifications_dry_run": self.notifications_dry_run,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
