"""Runtime configuration for AggForge.

everything here can be overridden with AGGFORGE_* environment variables
or a local .env file. the defaults mirror what the dashboard side assumes
when a target leaves something unset.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Defaults applied while compiling targets and parsing responses."""

    model_config = SettingsConfigDict(env_prefix="AGGFORGE_", env_file=".env", extra="ignore")

    index: str = Field(default="_all", description="Index or index pattern searched.")
    time_field: str = Field(default="@timestamp", description="Fallback time field.")
    min_interval: str = Field(default="10s", description="Lower bound for auto intervals.")
    max_data_points: int = Field(default=1000, description="Target points per series.")
    default_terms_size: int = Field(default=500, description="Terms size when unset or 0.")
    default_raw_size: int = Field(default=500, description="Hits returned for raw documents.")
    log_level: str = Field(default="INFO", description="Log level used by the CLI.")


@lru_cache
def get_settings() -> Settings:
    return Settings()
