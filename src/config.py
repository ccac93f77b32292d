"""Configuration settings for the Project Status Tracker."""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Global settings for the tracker.

    Settings can be overridden via environment variables with PROJECT_TRACKER_ prefix.
    Example: PROJECT_TRACKER_LOG_LIMIT=500
    """

    # App
    app_title: str = Field(
        default="Project Status Tracker API",
        description="Title shown in the OpenAPI docs"
    )
    api_version: str = Field(
        default="1.0.0",
        description="Version reported by the OpenAPI docs"
    )
    cors_origins: List[str] = Field(
        default=["*"],
        description="Origins allowed by the CORS middleware"
    )

    # Server
    host: str = Field(default="127.0.0.1", description="Bind address for uvicorn")
    port: int = Field(default=8000, ge=1, le=65535, description="Bind port for uvicorn")
    reload: bool = Field(default=False, description="Auto-reload on file changes")
    log_level: str = Field(default="INFO", description="Root logging level")

    # Change log
    log_limit: int = Field(
        default=1000,
        ge=1,
        description="Maximum number of change log entries returned per project"
    )
    default_actor: str = Field(
        default="System",
        description="Actor recorded on log entries when the caller names nobody"
    )

    model_config = {
        "env_prefix": "PROJECT_TRACKER_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Create singleton instance
settings = Settings()
