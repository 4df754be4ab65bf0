# healthcomm/config.py - configuration management
from dotenv import load_dotenv

load_dotenv()
from typing import Optional
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


MESSAGING_MODES = ("demo", "live")
TOKEN_FORMATS = ("signed", "structural")


class Settings(BaseSettings):
    """Application settings loaded from the environment and .env (Pydantic V2 syntax)"""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="allow",
        case_sensitive=False
    )

    # Application
    app_name: str = "HealthComm Portal"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    env_file: str = Field(default=".env", alias="ENV_FILE")

    # Database
    database_url: str = Field(default="sqlite:///./healthcomm.db", alias="DATABASE_URL")

    # Security
    secret_key: str = Field(..., alias="SECRET_KEY")
    algorithm: str = Field(default="HS256", alias="ALGORITHM")
    token_format: str = Field(default="signed", alias="TOKEN_FORMAT")
    auth_cookie_max_age_days: int = Field(default=7, alias="AUTH_COOKIE_MAX_AGE_DAYS")

    # Bootstrap admin
    admin_default_username: str = Field(default="admin", alias="ADMIN_DEFAULT_USERNAME")
    admin_default_password: Optional[str] = Field(default=None, alias="ADMIN_DEFAULT_PASSWORD")

    # Twilio
    twilio_account_sid: Optional[str] = Field(default=None, alias="TWILIO_ACCOUNT_SID")
    twilio_auth_token: Optional[str] = Field(default=None, alias="TWILIO_AUTH_TOKEN")
    twilio_phone_number: Optional[str] = Field(default=None, alias="TWILIO_PHONE_NUMBER")
    twilio_validate_signatures: bool = Field(default=False, alias="TWILIO_VALIDATE_SIGNATURES")
    public_base_url: Optional[str] = Field(default=None, alias="PUBLIC_BASE_URL")

    # Messaging
    messaging_mode: str = Field(default="demo", alias="MESSAGING_MODE")
    transport_timeout_seconds: float = Field(default=10.0, alias="TRANSPORT_TIMEOUT_SECONDS")
    demo_success_rate: float = Field(default=0.9, alias="DEMO_SUCCESS_RATE")

    # Template defaults
    clinic_name: str = Field(default="HealthComm Clinic", alias="CLINIC_NAME")
    provider_name: str = Field(default="Dr. Smith", alias="PROVIDER_NAME")
    clinic_phone: str = Field(default="+17629996610", alias="CLINIC_PHONE")

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL is required")
        if not v.startswith(("postgresql://", "postgresql+psycopg2://", "sqlite:///")):
            raise ValueError("DATABASE_URL must be a valid PostgreSQL or SQLite URL")
        return v

    @field_validator("secret_key")
    @classmethod
    def validate_key_length(cls, v):
        if not v or len(v) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long")
        return v

    @field_validator("messaging_mode", mode="before")
    @classmethod
    def normalize_messaging_mode(cls, v):
        # An unrecognised value falls back to the safe simulated transport
        v = (v or "demo").strip().lower()
        return v if v in MESSAGING_MODES else "demo"

    @field_validator("token_format")
    @classmethod
    def validate_token_format(cls, v):
        v = v.strip().lower()
        if v not in TOKEN_FORMATS:
            raise ValueError(f"TOKEN_FORMAT must be one of: {', '.join(TOKEN_FORMATS)}")
        return v

    @field_validator("demo_success_rate")
    @classmethod
    def validate_success_rate(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError("DEMO_SUCCESS_RATE must be between 0 and 1")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def twilio_configured(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_phone_number)

    @property
    def auth_cookie_max_age(self) -> int:
        return self.auth_cookie_max_age_days * 24 * 60 * 60


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


def reload_settings() -> Settings:
    """Drop the cached instance so the next read sees the current environment"""
    get_settings.cache_clear()
    return get_settings()

# Note: Do not instantiate settings at import time to avoid failing
# on missing environment variables. Use `get_settings()` instead.
