"""
Application Settings
===================

Application settings and environment configuration using Pydantic Settings.
Supports development, testing, and production environments.

These settings describe the process (browser launch, asset serving, logging,
AI credentials). Per-conversion rendering options live in the layered
configuration handled by the config resolver.
"""

from typing import Annotated, Optional, List, Union
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
import json
import os
from pathlib import Path


class Settings(BaseSettings):
    """Main application settings with environment variable support."""

    # Application Configuration
    app_name: str = Field(default="HTML to Image Converter", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(
        default="development", description="Environment: development, testing, production"
    )
    debug: bool = Field(default=False, description="Debug mode")

    # Conversion Configuration
    config_file: Path = Field(
        default=Path("./config/config.json"), description="Persisted conversion config file"
    )
    default_input: Path = Field(
        default=Path("html-files/work"), description="Default input folder"
    )
    work_dir_name: str = Field(default="work", description="Name of the transient work folder")
    output_dir_name: str = Field(default="output", description="Name of the output folder")

    # Asset Server Configuration
    asset_host: str = Field(default="127.0.0.1", description="Asset server bind address")
    asset_root: Optional[Path] = Field(
        default=None, description="Asset server root (defaults to working directory)"
    )
    asset_work_fallback: bool = Field(
        default=True, description="Retry assets/ references next to the work folder"
    )
    asset_search_paths: Annotated[List[Path], NoDecode] = Field(
        default=[], description="Extra directories searched for unresolved assets"
    )

    # Browser Configuration
    playwright_headless: bool = Field(default=True, description="Run browser in headless mode")
    browser_args: List[str] = Field(
        default=[
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-web-security",
            "--disable-features=VizDisplayCompositor",
        ],
        description="Chromium launch arguments",
    )
    ready_timeout_ms: int = Field(default=5000, description="Upper bound for each readiness wait")
    image_timeout_ms: int = Field(default=3000, description="Per-image readiness timeout")

    # AI Configuration
    gemini_api_key: Optional[str] = Field(
        default=None, validation_alias="GEMINI_API_KEY", description="Gemini API key"
    )
    gemini_model: str = Field(default="gemini-2.5-flash", description="Gemini model name")
    ai_timeout: int = Field(default=120, description="AI request timeout in seconds")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[Path] = Field(default=None, description="Optional rotating log file")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        allowed = {"development", "testing", "production"}
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("asset_search_paths", mode="before")
    @classmethod
    def parse_search_paths(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse search paths from a JSON list or an os.pathsep separated string."""
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("[") and v.endswith("]"):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            return [p.strip() for p in v.split(os.pathsep) if p.strip()]
        return v

    def resolved_asset_root(self) -> Path:
        """Root directory served by the asset server."""
        return (self.asset_root or Path.cwd()).resolve()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="HTML2IMG_",
        extra="ignore",
        populate_by_name=True,
    )


# Global settings instance - will be initialized when needed
settings = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def reload_settings() -> Settings:
    """Reload settings from environment."""
    global settings
    settings = Settings()
    return settings
