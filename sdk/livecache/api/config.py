"""
Configuration for the LiveCache inspection API.

Uses pydantic-settings for environment variable loading.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Inspection API configuration loaded from environment."""

    host: str = Field(default="127.0.0.1", description="API bind host")
    port: int = Field(default=8090, description="API bind port")

    # CORS settings
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins",
    )

    model_config = {"env_prefix": "LIVECACHE_API_"}
