"""
Application configuration settings.
"""
import json
from typing import Annotated, List, Optional
from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "sqlite:///./dicom_images.db"
    DATABASE_TIMEOUT: int = 600  # seconds, large DICOM files can be slow to commit

    # CORS
    ALLOWED_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:4200"]

    # Blob storage
    STORAGE_ROOT: str = "./Uploads/DICOM"
    MAX_UPLOAD_SIZE: Optional[int] = None  # bytes, None means unlimited

    # Access tracking
    TRACK_LAST_ACCESS: bool = False

    # Logging
    LOG_FILE: str = "./logs/app.log"
    AUDIT_LOG_FILE: str = "./logs/audit/audit.log"
    LOG_MAX_SIZE: int = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT: int = 5

    @field_validator('ALLOWED_ORIGINS', mode='before')
    @classmethod
    def parse_allowed_origins(cls, v):
        """Parse allowed origins from a JSON list, comma-separated string or list."""
        if isinstance(v, str):
            if v.strip().startswith("["):
                return json.loads(v)
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    @field_validator('LOG_LEVEL')
    @classmethod
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"):
            raise ValueError(f"Unknown LOG_LEVEL: {v}")
        return level

    @field_validator('MAX_UPLOAD_SIZE')
    @classmethod
    def validate_max_upload_size(cls, v):
        if v is not None and v <= 0:
            raise ValueError('MAX_UPLOAD_SIZE must be positive when set')
        return v

    @property
    def database_url_safe(self) -> str:
        """Get safe database URL for logging (hides password)."""
        if "@" in self.DATABASE_URL:
            scheme, rest = self.DATABASE_URL.split("://", 1)
            return f"{scheme}://***@{rest.split('@', 1)[1]}"
        return self.DATABASE_URL


# Global settings instance
settings = Settings()
