"""Configuration management."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process-level settings pulled from ``PY_ISLE_*`` environment variables."""

    model_config = SettingsConfigDict(env_prefix="PY_ISLE_", env_file=".env", extra="ignore")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="console", description="Log format (console or json)")

    # Generation
    default_map_size: int = Field(default=1024, description="Default map edge length")
    max_map_size: int = Field(default=4096, description="Maximum allowed map edge length")


settings = Settings()
