"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator


class DefaultsConfig(BaseModel):
    """Default settings for local booking data."""
    data_file: Path = Path("reservations.json")
    page_size: int = 10

    @field_validator("page_size")
    @classmethod
    def validate_page_size(cls, value: int) -> int:
        """Ensure page size is within the listing limits."""
        if not 1 <= value <= 100:
            raise ValueError(f"page_size must be between 1 and 100, got {value}")
        return value


class RateLimitRule(BaseModel):
    """A fixed-window request budget."""
    max_requests: int
    window_seconds: int
    message: str = "Too many requests, please try again later"

    @field_validator("max_requests", "window_seconds")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Ensure limits are positive."""
        if value <= 0:
            raise ValueError("rate limit values must be greater than zero")
        return value


class RateLimitsConfig(BaseModel):
    """Rate limit presets: login attempts, booking writes and general reads."""
    auth: RateLimitRule = Field(
        default_factory=lambda: RateLimitRule(
            max_requests=5,
            window_seconds=15 * 60,
            message="Too many authentication attempts. Try again in 15 minutes",
        )
    )
    moderate: RateLimitRule = Field(
        default_factory=lambda: RateLimitRule(
            max_requests=100,
            window_seconds=15 * 60,
            message="Too many requests. Limit: 100 requests per 15 minutes",
        )
    )
    general: RateLimitRule = Field(
        default_factory=lambda: RateLimitRule(
            max_requests=60,
            window_seconds=60,
            message="Too many requests. Limit: 60 requests per minute",
        )
    )


class ApiConfig(BaseModel):
    """Remote booking server settings."""
    base_url: str = "http://localhost:3000"
    email: Optional[str] = None
    timeout_seconds: int = 30
    token_cache_file: Optional[Path] = None

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    def get_token_cache_file(self) -> Path:
        """Get the token cache location, defaulting to the home directory."""
        return self.token_cache_file or Path.home() / ".slotbooker_token_cache.json"


class AppConfig(BaseModel):
    """Application configuration."""
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    timezone: str = "America/Mexico_City"
    rate_limits: RateLimitsConfig = Field(default_factory=RateLimitsConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA name."""
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    def resolve_data_file(self, base_dir: Path | None = None) -> Path:
        """Resolve the data file relative to the config file's directory."""
        data_file = self.defaults.data_file
        if data_file.is_absolute() or base_dir is None:
            return data_file
        return base_dir / data_file

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Read and validate a YAML config file.

        Raises:
            FileNotFoundError: If the file is missing
            ValueError: If the YAML is malformed or fails validation
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                "Copy config.example.yaml to config.yaml and adjust it."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)

    @classmethod
    def load_or_default(cls, config_path: Path | None) -> "AppConfig":
        """Load the config file when it exists, otherwise fall back to defaults."""
        if config_path is not None and config_path.exists():
            return cls.load_from_yaml(config_path)
        return cls()


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    config_path = Path.cwd() / "config.yaml"
    if config_path.exists():
        return config_path
    # Fall back to the checkout root
    return Path(__file__).resolve().parent.parent / "config.yaml"
