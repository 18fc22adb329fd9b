"""Application configuration management"""

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List
from urllib.parse import quote_plus

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

# Project root (the directory holding the cfp package)
_BASE_DIR = Path(__file__).resolve().parent.parent

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Application
    APP_NAME: str = "CFP Platform"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    PUBLIC_URL: str = "http://localhost:8000"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # Database
    DATABASE_URL: str = ""
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "cfp_db"
    POSTGRES_USER: str = "cfp"
    POSTGRES_PASSWORD: str = "cfp"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10

    # Security
    SECRET_KEY: str = "dev-secret-key-change-in-production-use-openssl-rand-hex-32"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 180

    # First-run setup guard (optional, strongly recommended in production)
    SETUP_TOKEN: str = ""

    # Field-level encryption; falls back to SECRET_KEY when empty
    ENCRYPTION_KEY: str = ""

    # Rate Limiting
    RATE_LIMIT_PER_MINUTE: int = 100
    RATE_LIMIT_PER_HOUR: int = 1000
    LOGIN_RATE_LIMIT_PER_MINUTE: int = 10
    LOGIN_RATE_LIMIT_PER_HOUR: int = 50
    AUTH_STRICT_RATE_LIMIT_PER_MINUTE: int = 5
    AUTH_STRICT_RATE_LIMIT_PER_HOUR: int = 20

    # Plugins
    PLUGINS_DIR: str = ""
    PLUGIN_MAX_ARCHIVE_SIZE: int = 50 * 1024 * 1024
    PLUGIN_MAX_EXTRACTED_SIZE: int = 100 * 1024 * 1024
    PLUGIN_GALLERY_URL: str = (
        "https://raw.githubusercontent.com/l33tdawg/cfp-directory-official-plugins/main/registry.json"
    )
    PLUGIN_GALLERY_CACHE_TTL_SECONDS: int = 300
    PLUGIN_GALLERY_TIMEOUT_SECONDS: float = 10.0
    PLUGIN_DOWNLOAD_TIMEOUT_SECONDS: float = 60.0
    PLUGIN_TRUSTED_HOSTS: Annotated[List[str], NoDecode] = [
        "github.com",
        "raw.githubusercontent.com",
        "objects.githubusercontent.com",
        "codeload.github.com",
    ]
    LOAD_PLUGINS_ON_STARTUP: bool = True

    # Plugin job worker
    RUN_EMBEDDED_WORKER: bool = True
    WORKER_POLL_INTERVAL_SECONDS: float = 5.0
    WORKER_BATCH_SIZE: int = 10

    # Federation
    FEDERATION_ENABLED: bool = False
    FEDERATION_API_URL: str = "https://cfp.directory/api/federation/v1"
    FEDERATION_API_KEY: str = ""
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0

    # Email
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True
    EMAIL_FROM: str = "noreply@localhost"

    # Invitations
    INVITATION_EXPIRE_DAYS: int = 7

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:3000"]

    # Database initialization discipline
    DB_INIT_MODE: str = "migrate"  # migrate | create_all | off
    DB_REQUIRE_HEAD: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True

    @field_validator("CORS_ORIGINS", "PLUGIN_TRUSTED_HOSTS", mode="before")
    @classmethod
    def _parse_list(cls, value: Any) -> Any:
        """
        Accept JSON array or comma-separated values from env.

        Examples:
            CORS_ORIGINS=["http://localhost:3000","http://example.com"]
            PLUGIN_TRUSTED_HOSTS=github.com,codeload.github.com
        """
        if not isinstance(value, str):
            return value

        raw = value.strip()
        if not raw:
            return []

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None

        if isinstance(parsed, str):
            return [parsed]
        if isinstance(parsed, list):
            return [str(item).strip() for item in parsed if str(item).strip()]

        return [item.strip() for item in raw.split(",") if item.strip()]

    def _resolve_path(self, value: str, default: str) -> str:
        """Resolve path - use project root if empty or relative to a parent"""
        if not value or value.startswith(".."):
            return str(_BASE_DIR / default)
        return value

    def get_plugins_dir(self) -> str:
        return self._resolve_path(self.PLUGINS_DIR, "plugins")

    def get_log_file(self) -> str:
        p = self.LOG_FILE
        if not p or p.startswith(".."):
            return str(_BASE_DIR / "logs" / "app.log")
        return p

    def get_encryption_secret(self) -> str:
        return self.ENCRYPTION_KEY or self.SECRET_KEY

    def get_database_url(self) -> str:
        """
        Resolve database URL.

        Priority:
          1) Explicit DATABASE_URL
          2) Construct from POSTGRES_* parts with safe URL encoding
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        user = quote_plus(self.POSTGRES_USER)
        password = quote_plus(self.POSTGRES_PASSWORD)
        return (
            f"postgresql://{user}:{password}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    def validate_security_settings(self) -> None:
        """
        Validate runtime security defaults in production.

        Raises:
            ValueError: If insecure defaults are detected.
        """
        if self.ENVIRONMENT.lower() != "production":
            return

        insecure_secret_markers = {
            "",
            "dev-secret-key-change-in-production-use-openssl-rand-hex-32",
            "change-me",
        }

        if self.SECRET_KEY in insecure_secret_markers or len(self.SECRET_KEY) < 32:
            raise ValueError(
                "Insecure SECRET_KEY for production. Use a strong key (e.g. `openssl rand -hex 32`)."
            )

        if not self.SETUP_TOKEN:
            logger.warning(
                "SETUP_TOKEN is not configured. The setup endpoint is open to whoever "
                "reaches a fresh install first. Set SETUP_TOKEN for production deployments."
            )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
