"""
Application configuration
"""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "repoviz"
    APP_VERSION: str = "1.0.0"
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # Rendering backend
    RENDER_BACKEND_URL: str = "http://localhost:8081"
    RENDER_BACKEND_TIMEOUT_SECONDS: float = 30.0

    # Security
    # Required: the rendering backend derives the same key from this value.
    SECRET_KEY: Optional[str] = None

    # Shared store (Redis)
    REDIS_URL: Optional[str] = None
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: Optional[str] = None
    REDIS_DB: int = 0

    # Admission control
    RATE_LIMIT_QUOTA: int = 20
    RATE_LIMIT_WINDOW_SECONDS: int = 3600
    RATE_LIMIT_FAIL_OPEN: bool = True
    RATE_LIMIT_KEY_PREFIX: str = "ratelimit:start"
    # Only enable behind a proxy that appends the peer address to X-Forwarded-For
    TRUST_FORWARDED_FOR: bool = False
    TRUSTED_PROXY_COUNT: int = 1

    # Display counter
    GENERATION_COUNTER_KEY: str = "generations"

    # Client polling
    POLL_INTERVAL_SECONDS: float = 5.0

    # Logging
    LOG_FORMAT: str = "text"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def redis_dsn(self) -> str:
        """Connection URL for the shared store, built from parts if not given."""
        if self.REDIS_URL:
            return self.REDIS_URL
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


settings = Settings()
