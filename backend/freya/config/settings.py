"""
Configuration Settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # App info
    app_name: str = "Freya Chat"
    app_version: str = "1.0.0"
    debug: bool = True

    # Security
    secret_key: str = "your-secret-key-change-this-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60  # 1 hour, same lifetime as the access cookie
    access_cookie_name: str = "freya-access-token"
    client_cookie_name: str = "freya-client-id"
    secure_cookies: bool = False

    # Storage
    local_storage_path: str = "./data"

    # Plugin providers
    openweather_api_key: Optional[str] = None
    newsapi_key: Optional[str] = None
    news_page_size: int = 7
    http_timeout_seconds: float = 10.0
    plugin_timeout_seconds: Optional[float] = 15.0  # None disables the per-call bound

    # Chat clients
    client_idle_ttl_seconds: Optional[float] = 1800.0  # None keeps idle clients forever
    client_sweep_interval_seconds: float = 60.0

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Logging configuration
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file_path: str = "./logs/freya.log"
    log_file_enabled: bool = True
    log_console_enabled: bool = True
    log_json_format: bool = True  # JSON format for files, human-readable for console
    log_api_requests: bool = True


settings = Settings()
