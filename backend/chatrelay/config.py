"""Application configuration using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Chat Relay"
    environment: str = "development"
    log_level: str = "debug"

    # Google AI
    google_api_key: str
    gemini_model: str = "gemini-2.5-flash"
    tts_model: str = "gemini-2.5-flash-preview-tts"
    default_voice: str = "Puck"
    upstream_timeout_seconds: float = 30.0

    # Storage: "mongodb" or "memory"
    storage_backend: str = "mongodb"
    mongodb_uri: str = "mongodb://mongodb:27017"
    mongodb_database: str = "chatrelay"

    # CORS
    frontend_url: str = "http://localhost:3000"


settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency for injecting settings."""
    return settings
