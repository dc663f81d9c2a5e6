from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "TreeShare"
    VERSION: str = "0.1.0"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    # Storage
    STORAGE_ROOT: str = "uploads"
    DATABASE_URL: str = "sqlite:///./database.sqlite"
    PUBLIC_BASE_URL: Optional[str] = None
    FRONTEND_DIR: Optional[str] = None

    # Upload limits
    MAX_FILES: int = 20
    MAX_FILE_BYTES: int = 10 * 1024 * 1024  # before compression

    # Compression
    MAX_DIMENSION: int = 1920
    WEBP_QUALITY: int = 80
    MAX_IMAGE_PIXELS: int = 50_000_000
    TRANSCODE_CONCURRENCY: int = 4
    INGEST_TIMEOUT_SECONDS: float = 30.0

    # Admission guard
    RATE_LIMIT: int = 50
    RATE_WINDOW_SECONDS: int = 15 * 60
    TRUST_PROXY_HEADERS: bool = False

    class Config:
        env_file = ".env"
        env_prefix = "TREESHARE_"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
