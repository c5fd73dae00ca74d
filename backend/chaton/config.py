"""
Configuration settings for the chatON backend.
Uses pydantic-settings for environment variable support.
"""

from pydantic_settings import BaseSettings
from pydantic import Field
import secrets
import os


def get_or_create_secret_key():
    """Get secret key from file or generate a new one."""
    secret_file = ".secret_key"
    if os.path.exists(secret_file):
        try:
            with open(secret_file, "r") as f:
                return f.read().strip()
        except OSError:
            pass

    # Generate new key
    key = secrets.token_urlsafe(32)
    try:
        with open(secret_file, "w") as f:
            f.write(key)
    except OSError:
        pass  # Read-only filesystem: the key lives for this process only

    return key


class Settings(BaseSettings):
    """Application configuration settings."""

    # Application
    APP_NAME: str = "chatON"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True

    # Remote document store
    # resolved relative to this config file (backend/chaton/config.py -> backend/chaton.db)
    _BASE_DIR: str = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    DATABASE_URL: str = f"sqlite+aiosqlite:///{os.path.join(_BASE_DIR, 'chaton.db')}"

    # Deliver a snapshot with a pending server timestamp before the write commits
    LATENCY_COMPENSATION: bool = True

    # JWT Authentication
    SECRET_KEY: str = Field(default_factory=get_or_create_secret_key)
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 hours
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = os.path.join(_BASE_DIR, "logs")
    LOG_TO_FILE: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 6666

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
