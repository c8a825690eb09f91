"""
Core configuration classes using Pydantic Settings.
"""
from typing import List, Optional
from pydantic import Field, validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application
    APP_NAME: str = "Compliance Authorization Service"
    VERSION: str = "0.1.0"
    ENVIRONMENT: str = Field(default="development", description="Environment: development, staging, production")
    DEBUG: bool = Field(default=False, description="Enable debug mode")

    # Database
    DATABASE_URL: str = Field(
        default="sqlite:///./compliance.db",
        description="SQLAlchemy database URL"
    )
    DATABASE_POOL_SIZE: int = Field(default=10, description="Database connection pool size")
    DATABASE_MAX_OVERFLOW: int = Field(default=20, description="Database max overflow connections")

    # Security
    SECRET_KEY: str = Field(
        default="your-secret-key-change-in-production",
        description="Secret key used to derive the PII encryption key"
    )

    # Encryption
    ENCRYPTION_KEY: Optional[str] = Field(
        default=None,
        description="Encryption key for field-level encryption (base64 encoded)"
    )

    # Compliance rules
    SANCTIONS_CACHE_VALIDITY_DAYS: int = Field(
        default=30,
        description="Days a cached sanctions screening result stays valid"
    )
    AUDIT_TRAIL_DEFAULT_DAYS: int = Field(
        default=90,
        description="Default lookback window for audit trail queries"
    )

    # Sanctions provider
    SANCTIONS_PROVIDER: str = Field(default="denylist", description="Sanctions provider: denylist or http")
    SANCTIONS_DENYLIST: str = Field(
        default="",
        description="Comma-separated addresses that always screen as sanctioned"
    )
    SANCTIONS_NAME_MATCH_THRESHOLD: float = Field(
        default=90.0,
        description="Minimum fuzzy name score (0-100) counted as a match"
    )
    SANCTIONS_PARTIES_FILE: Optional[str] = Field(
        default=None,
        description="JSON file listing named sanctioned parties for name screening"
    )
    SANCTIONS_API_URL: Optional[str] = Field(default=None, description="Remote screening endpoint")
    SANCTIONS_API_TOKEN: Optional[str] = Field(default=None, description="Bearer token for the screening endpoint")
    SANCTIONS_API_TIMEOUT: float = Field(default=10.0, description="Screening request timeout in seconds")

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="json", description="Log format: json or text")

    @validator("ENVIRONMENT")
    def validate_environment(cls, v):
        """Validate environment setting."""
        allowed = ["development", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @validator("LOG_LEVEL")
    def validate_log_level(cls, v):
        """Validate log level setting."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @validator("LOG_FORMAT")
    def validate_log_format(cls, v):
        """Validate log format setting."""
        allowed = ["json", "text"]
        if v not in allowed:
            raise ValueError(f"Log format must be one of: {allowed}")
        return v

    @validator("SANCTIONS_CACHE_VALIDITY_DAYS", "AUDIT_TRAIL_DEFAULT_DAYS")
    def validate_non_negative_days(cls, v):
        """Day windows cannot be negative."""
        if v < 0:
            raise ValueError("Day windows must be zero or positive")
        return v

    @validator("SANCTIONS_PROVIDER")
    def validate_sanctions_provider(cls, v):
        """Validate sanctions provider setting."""
        allowed = ["denylist", "http"]
        if v not in allowed:
            raise ValueError(f"Sanctions provider must be one of: {allowed}")
        return v

    @validator("SANCTIONS_NAME_MATCH_THRESHOLD")
    def validate_match_threshold(cls, v):
        """Fuzzy match scores range from 0 to 100."""
        if not 0 <= v <= 100:
            raise ValueError("Name match threshold must be between 0 and 100")
        return v

    @property
    def sanctions_denylist(self) -> List[str]:
        """Denylisted addresses as a list."""
        return [a.strip() for a in self.SANCTIONS_DENYLIST.split(",") if a.strip()]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Global settings instance
settings = Settings()
