"""
Centralized configuration management.
All environment variables and settings are defined here.
"""
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field, validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = Field(default="Bank Statement OCR Service", alias="APP_NAME")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000)
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Gemini
    gemini_api_key: str = Field(..., alias="GEMINI_API_KEY")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        alias="GEMINI_BASE_URL"
    )
    gemini_model: str = Field(default="gemini-2.5-flash", alias="GEMINI_MODEL")
    # None keeps the transport's own behaviour (no client-side timeout)
    gemini_timeout: Optional[int] = Field(default=None, alias="GEMINI_TIMEOUT")

    # Rendering
    pdf_render_scale: float = Field(default=2.0, alias="PDF_RENDER_SCALE")
    jpeg_quality: int = Field(default=90, alias="JPEG_QUALITY")

    # Decoding
    strict_record_validation: bool = Field(default=True, alias="STRICT_RECORD_VALIDATION")

    # Uploads
    max_upload_mb: int = Field(default=25, alias="MAX_UPLOAD_MB")

    @validator("log_level")
    def validate_log_level(cls, v):
        """Validate log level is one of the standard levels."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v_upper

    @validator("port")
    def validate_port(cls, v):
        """Validate port is in valid range."""
        if not (1 <= v <= 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @validator("pdf_render_scale")
    def validate_render_scale(cls, v):
        """Scale must be positive and keep page images at a sane size."""
        if v <= 0:
            raise ValueError("PDF render scale must be greater than 0")
        if v > 6:
            raise ValueError("PDF render scale should not exceed 6")
        return v

    @validator("jpeg_quality")
    def validate_jpeg_quality(cls, v):
        if not (1 <= v <= 100):
            raise ValueError("JPEG quality must be between 1 and 100")
        return v

    @validator("max_upload_mb")
    def validate_max_upload(cls, v):
        if v < 1:
            raise ValueError("Max upload size must be at least 1 MB")
        return v

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings singleton (useful for testing)."""
    global _settings
    _settings = None
