"""Configuration settings for the SoloSphere backend."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Supabase
    supabase_url: str
    supabase_secret_key: str | None = None  # Backend/admin access
    # Legacy key name, still honoured when the new one is absent
    supabase_service_role_key: str | None = None

    # JWT
    jwt_secret_key: str  # Required - no default for security
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24  # 1 day

    # Session cookie
    cookie_name: str = "token"

    # App
    environment: Literal["development", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"
    port: int = 9000
    cors_origins: list[str] = [
        "http://localhost:5173",
    ]
    # Comma-separated CIDRs allowed to set X-Forwarded-For
    trusted_proxy_cidrs: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
