"""Application settings loaded from the environment and an optional .env file."""

from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

Environment = Literal["development", "staging", "production"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    """Tours API settings; every field maps to the upper-cased environment variable."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./tours.db",
        description="Async database URL (postgresql+asyncpg or sqlite+aiosqlite)"
    )
    environment: Environment = Field(default="development")
    log_level: LogLevel = Field(default="INFO")

    # HTTP
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1, le=65535)
    api_prefix: str = Field(default="/api/v1", description="Path prefix for the tours router")
    cors_origins: list[str] = Field(default=["http://localhost:3000", "http://localhost:8000"])

    # Listing
    default_page_size: int = Field(default=100, ge=1, description="Used when a request omits 'limit'")
    max_page_size: int = Field(default=100, ge=1, description="Larger 'limit' values are clamped to this")

    otlp_endpoint: str | None = Field(default=None, description="OTLP gRPC collector for traces and metrics")

    @field_validator("environment", "log_level", mode="before")
    @classmethod
    def normalize_case(cls, v, info):
        if isinstance(v, str):
            return v.upper() if info.field_name == "log_level" else v.lower()
        return v

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Accept a comma separated string as well as a list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @model_validator(mode="after")
    def check_page_sizes(self) -> "Settings":
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size cannot exceed max_page_size")
        return self

    @property
    def debug(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


settings = Settings()
