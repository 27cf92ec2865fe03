"""
Configuration settings for the FastAPI application
"""
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Katazuke Navi API"
    version: str = "3.4"
    environment: str = "development"
    debug: bool = True

    # CORS
    cors_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ]
    # Tunnel services used for on-device testing
    cors_origin_regex: str = r"https://.*\.(trycloudflare\.com|ngrok-free\.app|ngrok\.io|loca\.lt)"

    # Google AI Studio
    gemini_api_key: str = ""
    analysis_model: str = "gemini-2.0-flash"
    standard_image_model: str = "gemini-2.5-flash-image"
    high_quality_image_model: str = "gemini-3-pro-image-preview"

    # Daily quotas (reset at local midnight, in-process only)
    limit_standard: int = 50
    limit_high_quality: int = 10  # Pro tier is the expensive one
    limit_inspection: int = 100
    limit_retry: int = 50

    # Overload handling
    overload_retry_attempts: int = 2
    overload_backoff_seconds: float = 2.0

    # Inspection: every sub-score must reach this to PASS
    inspection_pass_threshold: int = 8

    # Temperatures
    analysis_temperature: float = 0.1
    inspection_temperature: float = 0.1
    retry_temperature: float = 0.3
    standard_temperature: float = 0.65
    standard_strong_temperature: float = 0.8
    high_quality_temperature: float = 0.4
    high_quality_strong_temperature: float = 0.5
    fallback_temperature: float = 0.7
    fallback_strong_temperature: float = 0.8

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"
    log_dir: str = "logs"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields from .env


# Global settings instance
settings = Settings()
