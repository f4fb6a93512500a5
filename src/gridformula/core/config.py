"""
Engine configuration management using Pydantic Settings.

Loads configuration from environment variables and .env files.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Parsing and evaluation recurse a few frames per nesting level; keep the
# deepest allowed formula well inside the default interpreter recursion limit
MAX_DEPTH_LIMIT = 200


class Settings(BaseSettings):
    """Formula engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="GRIDFORMULA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Application Settings
    # ==========================================================================
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(default=False, description="Emit JSON log lines")

    # ==========================================================================
    # Parser Settings
    # ==========================================================================
    precedence: Literal["flat", "standard"] = Field(
        default="flat",
        description="Binary operator precedence: 'flat' (left-to-right) or 'standard'",
    )
    max_depth: int = Field(
        default=100, le=MAX_DEPTH_LIMIT, description="Maximum AST nesting depth"
    )
    max_tokens: int = Field(default=4096, description="Maximum tokens per formula")

    @field_validator("precedence", mode="before")
    @classmethod
    def normalize_precedence(cls, v: str) -> str:
        """Accept precedence names in any case."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    # ==========================================================================
    # Cache Settings
    # ==========================================================================
    cache_enabled: bool = Field(default=True, description="Memoize evaluation results")
    parse_cache_size: int = Field(default=256, description="Max cached parsed formulas")
    value_cache_size: int = Field(default=2048, description="Max cached evaluation results")

    @field_validator(
        "max_depth", "max_tokens", "parse_cache_size", "value_cache_size", mode="after"
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Limits and cache sizes must be at least 1."""
        if v < 1:
            raise ValueError("must be a positive integer")
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
