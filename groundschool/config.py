"""
Configuration management using Pydantic Settings
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Supabase (remote store + blob storage)
    SUPABASE_URL: str = "http://localhost:54321"
    SUPABASE_KEY: str = ""
    SUPABASE_BUCKET: str = "documents"

    # Gemini API
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-1.5-flash"

    # Redis (local cache mirror)
    REDIS_URL: str = "redis://redis:6379/0"
    CACHE_TTL_SECONDS: int = 0  # 0 = keep until overwritten

    # Application
    APP_NAME: str = "GroundSchool Quiz Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Outbound requests
    REQUEST_TIMEOUT_SECONDS: float = 30.0
    MAX_REQUEST_ATTEMPTS: int = 3
    RETRY_BASE_DELAY_SECONDS: float = 1.0
    RETRY_MAX_DELAY_SECONDS: float = 10.0
    RETRY_JITTER_RATIO: float = 0.3

    # Quiz Settings
    DEFAULT_QUESTION_COUNT: int = 10
    MAX_QUIZ_QUESTIONS: int = 20
    MAX_SOURCE_CHARS: int = 15000
    MIN_SOURCE_CHARS: int = 100

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
