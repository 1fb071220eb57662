"""Configuration settings for the Lingua audio backend."""

import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./lingua.db")

    # Chunked upload
    CHUNK_SIZE_BYTES: int = int(os.getenv("CHUNK_SIZE_BYTES", str(64 * 1024)))
    CLEANUP_CHUNKS_ON_FINALIZE: bool = os.getenv("CLEANUP_CHUNKS_ON_FINALIZE", "true").lower() == "true"
    DEFAULT_MIME_TYPE: str = os.getenv("DEFAULT_MIME_TYPE", "audio/mp4")
    MAX_REQUEST_SIZE_MB: int = int(os.getenv("MAX_REQUEST_SIZE_MB", "50"))
    CHUNK_RATE_LIMIT: str = os.getenv("CHUNK_RATE_LIMIT", "600/minute")
    FINALIZE_RATE_LIMIT: str = os.getenv("FINALIZE_RATE_LIMIT", "60/minute")
    # A session left in finalizing this long with no recording is claimable again
    FINALIZE_TIMEOUT_SECONDS: int = int(os.getenv("FINALIZE_TIMEOUT_SECONDS", "300"))

    # HTTP
    CORS_ORIGINS: list[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    API_BASE_URL: str = os.getenv("API_BASE_URL", "http://localhost:3000")

    # Application
    APP_ENV: str = os.getenv("APP_ENV", "development")
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    def validate(self) -> list[str]:
        """Validate settings and return list of warnings."""
        warnings = []
        if self.CHUNK_SIZE_BYTES < 3:
            warnings.append(f"CHUNK_SIZE_BYTES={self.CHUNK_SIZE_BYTES} is too small - chunks carry at least 3 bytes")
        if self.CHUNK_SIZE_BYTES * 4 // 3 > self.MAX_REQUEST_SIZE_MB * 1024 * 1024:
            warnings.append("CHUNK_SIZE_BYTES exceeds MAX_REQUEST_SIZE_MB once base64 encoded")
        if "*" in self.CORS_ORIGINS and self.APP_ENV == "production":
            warnings.append("CORS_ORIGINS allows every origin in production")
        return warnings


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
