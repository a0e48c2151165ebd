"""Configuration and settings management."""

from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import field_validator
from pathlib import Path

class Settings(BaseSettings):
    # Logging
    LOG_LEVEL: str = "INFO"

    # Record store and object storage
    DB_PATH: str = "cache/scanner.db"
    DB_BUSY_TIMEOUT_S: float = 10.0
    OBJECT_STORE_DIR: str = "storage/card-images"
    PUBLIC_BASE_URL: str = "http://localhost:8000/card-images"
    SCAN_CACHE_EXPIRE_HOURS: int = 24

    # Per-user scan quota
    RATE_LIMIT_WINDOW_S: int = 60
    RATE_LIMIT_MAX_SCANS: int = 5

    # Vision model gateway (OpenAI-compatible chat completions)
    VISION_API_URL: str = "https://ai.gateway.lovable.dev/v1/chat/completions"
    VISION_API_KEY: Optional[str] = None
    VISION_MODEL: str = "google/gemini-2.5-flash"
    VISION_MAX_TOKENS: int = 1500

    # Card recognition and pricing providers
    XIMILAR_API_KEY: Optional[str] = None
    POKEMON_TCG_API_KEY: Optional[str] = None
    JUSTTCG_API_KEY: Optional[str] = None

    # Outbound HTTP
    HTTP_TIMEOUT_S: float = 20.0

    # Request limits
    MAX_IMAGE_BYTES: int = 10 * 1024 * 1024
    CORS_ORIGINS: List[str] = ["*"]

    @field_validator(
        'VISION_API_KEY', 'XIMILAR_API_KEY', 'POKEMON_TCG_API_KEY', 'JUSTTCG_API_KEY',
        mode='before',
    )
    @classmethod
    def validate_api_key(cls, v):
        """Convert empty/whitespace strings to None."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator('LOG_LEVEL', mode='before')
    @classmethod
    def validate_log_level(cls, v):
        """Convert empty/whitespace strings to default."""
        if isinstance(v, str) and not v.strip():
            return "INFO"
        return v

    @field_validator('DB_PATH', mode='before')
    @classmethod
    def validate_db_path(cls, v):
        """Convert empty/whitespace strings to default."""
        if isinstance(v, str) and not v.strip():
            return "cache/scanner.db"
        return v

    @field_validator('PUBLIC_BASE_URL', mode='before')
    @classmethod
    def strip_trailing_slash(cls, v):
        if isinstance(v, str):
            return v.rstrip("/")
        return v

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore"
    }

# Global settings instance
settings = Settings()

def ensure_storage_dirs(db_path: Optional[str] = None, object_dir: Optional[str] = None):
    """Ensure the record store directory and object storage directory exist."""
    db_file = Path(db_path or settings.DB_PATH)
    db_file.parent.mkdir(parents=True, exist_ok=True)

    objects = Path(object_dir or settings.OBJECT_STORE_DIR)
    objects.mkdir(parents=True, exist_ok=True)
