# app/config.py
import os
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


class Settings(BaseSettings):
    """Application configuration based on environment variables"""

    # API configuration
    API_PREFIX: str = "/api"

    # CORS configuration (Frontend URLs)
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",  # React dev server
        "http://localhost:5000",  # Firebase hosting emulator
    ]

    # Gemini access
    GEMINI_API_KEY: Optional[str] = None
    PRIMARY_MODEL: str = "gemini-2.5-pro"
    FALLBACK_MODEL: str = "gemini-2.5-flash"

    # Image handling (JPEG quality on the Pillow 1-95 scale)
    MAX_IMAGE_DIMENSION: int = 1024
    NORMALIZE_QUALITY: int = 90
    STORAGE_QUALITY: int = 60

    # Result history
    MAX_STORED_RESULTS: int = 20
    STORAGE_DIR: str = "data"
    STORAGE_CAPACITY_BYTES: Optional[int] = 5 * 1024 * 1024  # roughly a browser localStorage quota

    # Debug mode
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"
    LOG_LEVEL: str = "INFO"

    # Maximum file size for uploads (in bytes)
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # 10 MB

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Return settings with caching"""
    return Settings()
