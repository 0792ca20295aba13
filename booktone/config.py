"""
Application Configuration using Pydantic Settings.
Loads configuration from environment variables and .env file.
"""
from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Usage:
        from booktone.config import get_settings
        settings = get_settings()
        print(settings.BATCH_POLL_INTERVAL_SECONDS)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    APP_NAME: str = "BookTone API"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "Batch generation of book tone recommendations"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"

    # API Settings
    API_V1_PREFIX: str = "/api/v1"
    DOCS_URL: Optional[str] = "/docs"
    OPENAPI_URL: Optional[str] = "/openapi.json"

    # -------------------------------------------------------------------------
    # Server Settings
    # -------------------------------------------------------------------------
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    RELOAD: bool = False

    # -------------------------------------------------------------------------
    # Database Settings
    # -------------------------------------------------------------------------
    DATABASE_URL: str = "sqlite:///./booktone.db"
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800
    DB_ECHO: bool = False

    # -------------------------------------------------------------------------
    # CORS Settings
    # -------------------------------------------------------------------------
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:8080"
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: str = "GET,POST,PUT,OPTIONS"
    CORS_ALLOW_HEADERS: str = "*"

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    LOG_LEVEL: str = "INFO"

    # -------------------------------------------------------------------------
    # Batch Engine
    # -------------------------------------------------------------------------
    BATCH_POLL_INTERVAL_SECONDS: float = 1.0
    BATCH_ERROR_BACKOFF_SECONDS: float = 5.0
    BATCH_SHUTDOWN_GRACE_SECONDS: float = 30.0
    BATCH_MAX_CONCURRENT: int = 1

    # -------------------------------------------------------------------------
    # External Services
    # -------------------------------------------------------------------------
    BOOK_DATA_API_URL: str = "http://localhost:5020"
    BOOK_DATA_TIMEOUT_SECONDS: float = 15.0
    OLLAMA_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "booktone-phi"
    OLLAMA_TIMEOUT_SECONDS: float = 15.0
    MAX_TONES: int = 6

    RESOURCE_METRICS_ENABLED: bool = True

    # -------------------------------------------------------------------------
    # Testing
    # -------------------------------------------------------------------------
    TESTING: bool = False
    TEST_DATABASE_URL: str = "sqlite://"

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------
    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS_ORIGINS string to list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def cors_methods_list(self) -> List[str]:
        """Parse CORS_ALLOW_METHODS string to list."""
        return [method.strip() for method in self.CORS_ALLOW_METHODS.split(",") if method.strip()]

    def get_database_url(self) -> str:
        """Get the appropriate database URL based on testing mode."""
        if self.TESTING:
            return self.TEST_DATABASE_URL
        return self.DATABASE_URL


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience instance
settings = get_settings()
