from __future__ import annotations
import os
from pydantic import BaseModel

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    app_name: str = os.getenv("APP_NAME", "orlando-challenge-api")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "Orlando Challenge")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Auth
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change-me")
    access_ttl_min: int = int(os.getenv("ACCESS_TTL_MIN", "1440"))  # mobile sessions stay signed in for a day
    refresh_ttl_min: int = int(os.getenv("REFRESH_TTL_MIN", "10080"))

    database_url: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/orlando_dev")
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    s3_endpoint: str = os.getenv("S3_ENDPOINT", "http://minio:9000")
    s3_access_key: str = os.getenv("S3_ACCESS_KEY", "minioadmin")
    s3_secret_key: str = os.getenv("S3_SECRET_KEY", "minioadmin")
    s3_bucket_uploads: str = os.getenv("S3_BUCKET_UPLOADS", "orlando-uploads-dev")

    # Media uploads
    max_upload_mb: int = int(os.getenv("MAX_UPLOAD_MB", "50"))
    temp_media_ttl_minutes: int = int(os.getenv("TEMP_MEDIA_TTL_MINUTES", "60"))

    # Feed paging
    feed_default_limit: int = int(os.getenv("FEED_DEFAULT_LIMIT", "20"))
    feed_max_limit: int = int(os.getenv("FEED_MAX_LIMIT", "50"))

settings = Settings()
