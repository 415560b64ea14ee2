"""
Application configuration with environment-based settings.
All configuration is explicit, validated, and logged at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BACKEND_DIR = Path(__file__).resolve().parent.parent
DEFAULT_SEED_PATH = BACKEND_DIR / "database" / "seed_data.json"
ENV_FILE = BACKEND_DIR.parent / ".env"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have sensible defaults for development but require
    explicit configuration in production environments.
    """

    model_config = SettingsConfigDict(
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )

    # Application
    app_name: str = Field(default="Lab Quality API", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )

    # Data source
    seed_data_path: Path = Field(
        default=DEFAULT_SEED_PATH,
        description="JSON fixture used to seed the in-memory data client"
    )

    # Analytics
    trend_window_days: int = Field(
        default=7,
        ge=1,
        description="Length of each pass-rate trend window in days"
    )
    due_soon_days: int = Field(
        default=7,
        ge=0,
        description="Maintenance within this many days is reported as due soon"
    )
    default_analytics_range: Literal["7d", "30d", "90d", "1y"] = Field(
        default="30d",
        description="Lab order analytics range used when none is requested"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log output format"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def docs_enabled(self) -> bool:
        """Interactive API docs are served in debug mode outside production."""
        return self.debug and not self.is_production

    def get_safe_config_dict(self) -> dict:
        """Return configuration dict suitable for startup logs."""
        config = self.model_dump(mode="json")
        # Only the file name is useful in logs
        config["seed_data_path"] = self.seed_data_path.name
        return config


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and cached for the application lifetime.
    Use dependency injection in FastAPI routes for testability.
    """
    return Settings()
