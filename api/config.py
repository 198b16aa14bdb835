"""
API configuration settings.
"""

from typing import List, Optional

from pydantic import AliasChoices, Field, validator
from pydantic_settings import BaseSettings


class APIConfig(BaseSettings):
    """API configuration settings, read once from the environment / .env."""

    # API Settings
    api_title: str = "Book Review API"
    api_version: str = "1.0.0"
    api_description: str = "REST API for browsing, adding and reviewing books"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 10000
    debug: bool = False

    # Database Settings
    mongodb_url: str = Field(
        default="mongodb://localhost:27017",
        validation_alias=AliasChoices("mongodb_url", "mongo_uri"),
    )
    mongodb_database: str = "bookreview"

    # Security Settings
    # No default: without a secret no token is ever issued
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    jwt_expire_days: int = 7

    # CORS Settings
    client_url: str = "http://localhost:3000"  # Comma-separated list of allowed origins

    # Mail Settings (no mail flow is exposed by the API)
    email_user: Optional[str] = None
    email_app_password: Optional[str] = None

    # Catalog
    books_per_page: int = 5

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: Optional[str] = None

    model_config = {
        "env_file": ".env",
        "extra": "ignore",  # Ignore extra fields from .env
        "populate_by_name": True,
    }

    @validator("jwt_secret")
    def blank_secret_is_missing(cls, v):
        """Treat an empty secret as not configured."""
        if v is not None and not v.strip():
            return None
        return v

    @validator("log_level")
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.upper()

    @validator("log_format")
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ["json", "console"]
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {valid_formats}")
        return v.lower()

    def cors_origins(self) -> List[str]:
        """Allowed cross-origin URLs."""
        return [origin.strip().rstrip("/") for origin in self.client_url.split(",") if origin.strip()]


# Global config instance
config = APIConfig()
