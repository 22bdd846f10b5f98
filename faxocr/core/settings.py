"""
Centralized application settings using Pydantic.

All environment variables are read once at startup and validated.
Use this instead of scattered os.getenv() calls throughout the codebase.
"""

from pathlib import Path

from pydantic import SecretStr
from pydantic_settings import BaseSettings

from faxocr.pipeline.core.config import (
    EXTRACTION_CONCURRENCY,
    GEMINI_API_BASE_URL,
    GEMINI_MAX_ATTEMPTS,
    GEMINI_MODEL,
    GEMINI_REQUEST_TIMEOUT_SECONDS,
    MAX_FILE_SIZE_MB,
    MAX_PDF_PAGES,
    RASTER_MAX_DIMENSION,
    RASTER_QUALITY,
)


class StorageSettings(BaseSettings):
    """Local persistence configuration."""

    STORAGE_DIR: str = "./data"

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}

    @property
    def storage_dir(self) -> Path:
        return Path(self.STORAGE_DIR.strip() or "./data").resolve()


class GeminiSettings(BaseSettings):
    """Gemini vision API configuration."""

    GEMINI_API_KEY: SecretStr = SecretStr("")
    GEMINI_MODEL: str = GEMINI_MODEL
    GEMINI_BASE_URL: str = GEMINI_API_BASE_URL
    GEMINI_TIMEOUT_SECONDS: float = GEMINI_REQUEST_TIMEOUT_SECONDS
    GEMINI_MAX_ATTEMPTS: int = GEMINI_MAX_ATTEMPTS

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}


class PipelineSettings(BaseSettings):
    """Job pipeline tuning."""

    EXTRACTION_CONCURRENCY: int = EXTRACTION_CONCURRENCY
    RASTER_MAX_DIMENSION: int = RASTER_MAX_DIMENSION
    RASTER_QUALITY: float = RASTER_QUALITY
    RASTER_WORKERS: int = 1
    MAX_PDF_PAGES: int = MAX_PDF_PAGES
    MAX_FILE_SIZE_MB: int = MAX_FILE_SIZE_MB
    RESUME_INTERRUPTED_JOBS: bool = True

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}


class AppSettings(BaseSettings):
    """General application settings."""

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}


# Singleton instances - loaded once at module import
storage_settings = StorageSettings()
gemini_settings = GeminiSettings()
pipeline_settings = PipelineSettings()
app_settings = AppSettings()
