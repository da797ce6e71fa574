"""
Configuration module for the tool engine.
Loads settings from environment variables using Pydantic Settings.
"""
import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    Every field can be overridden via a .env file or a TOOLENGINE_* variable,
    e.g. TOOLENGINE_HTTP_TIMEOUT=10.
    """

    model_config = SettingsConfigDict(
        env_prefix="TOOLENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    app_name: str = Field(default="Tool Engine", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode flag")

    api_host: str = Field(default="127.0.0.1", description="API server host")
    api_port: int = Field(default=8000, description="API server port")

    http_timeout: float = Field(default=30.0, gt=0, description="Default timeout for HTTP tools in seconds")
    http_user_agent: str = Field(default="toolengine/0.1", description="User-Agent sent by HTTP tools")

    max_concurrent: int = Field(default=10, ge=1, description="Maximum concurrent calls in a batch")
    fanout_concurrency: int = Field(default=5, ge=1, description="Concurrent sub-requests per fan-out tool")
    fanout_fail_fast: bool = Field(default=True, description="Abort a fan-out batch on the first failed item")

    toolkit_metadata_fallback: Literal["first_tool", "defaults"] = Field(
        default="first_tool",
        description="Where toolkit metadata comes from when none was declared"
    )
    internal_toolkit_name: str = Field(default="standard", description="Toolkit name of the un-namespaced stdlib tools")
    allow_override: bool = Field(default=True, description="Let higher tiers override tools with a warning")

    project_toolkit_paths: list[str] = Field(default_factory=list, description="Toolkit files for the project tier")
    organization_toolkit_paths: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Toolkit files for the organization tier, keyed by organization"
    )
    remote_services: dict[str, str] = Field(default_factory=dict, description="Remote service slug to endpoint URL")
    allowed_tools: list[str] | None = Field(
        default=None,
        description="Tool names or namespace/* patterns allowed to run; None allows all"
    )

    news_api_base_url: str = Field(
        default="https://hacker-news.firebaseio.com/v0",
        description="Base URL of the news API used by the news-reader tool"
    )

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("news_api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Engine settings instance
    """
    return Settings()


def setup_logging(settings: Settings | None = None) -> logging.Logger:
    """
    Configure logging based on settings.

    Args:
        settings: Optional settings instance. If None, loads from get_settings()

    Returns:
        logging.Logger: Configured application logger
    """
    if settings is None:
        settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format=settings.log_format,
        force=True
    )

    logger = logging.getLogger(settings.app_name)
    logger.setLevel(getattr(logging, settings.log_level))

    return logger
