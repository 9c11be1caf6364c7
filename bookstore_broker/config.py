"""
Configuration of the bookstore service broker.

Settings are pydantic models whose defaults are read from environment
variables when a model is constructed. A process-global AppConfig is built
lazily by get_config() and can be swapped with set_config() in tests.
"""

import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import EnvironmentVariable, LogLevel

DEFAULT_BASE_URL = "http://localhost:8080"


def _env(variable: EnvironmentVariable, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(variable.value, default)


def _env_int(variable: EnvironmentVariable) -> Optional[int]:
    value = _env(variable)
    return int(value) if value else None


class LoggingConfig(BaseModel):
    """Level and format of the broker's console log."""

    level: str = Field(
        default_factory=lambda: _env(EnvironmentVariable.LOG_LEVEL, LogLevel.INFO.value),
        description="Logging level name",
        validate_default=True,
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="logging.Formatter format string",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LogLevel.__members__:
            raise ValueError(f"Invalid log level: {v}. Must be one of {list(LogLevel.__members__)}")
        return level


class ApplicationInformation(BaseModel):
    """Public location of the broker, used to build binding connection URIs."""

    model_config = ConfigDict(frozen=True)

    base_url: str = Field(
        default_factory=lambda: _env(EnvironmentVariable.BROKER_BASE_URL, DEFAULT_BASE_URL),
        description="Fully-qualified HTTP(S) origin of the bookstore application",
        validate_default=True,
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an http(s) URL and drop any trailing slash."""
        v = v.strip()
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL, got: {v!r}")
        return v.rstrip("/")


class BrokerConfig(BaseModel):
    """Configuration of the binding lifecycle orchestrator."""

    worker_pool_size: Optional[int] = Field(
        default_factory=lambda: _env_int(EnvironmentVariable.BROKER_WORKER_POOL_SIZE),
        description="Maximum worker threads for blocking storage and identity calls",
        validate_default=True,
    )
    application: ApplicationInformation = Field(
        default_factory=ApplicationInformation, description="Base-URI provider"
    )

    @field_validator("worker_pool_size")
    @classmethod
    def validate_worker_pool_size(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("worker_pool_size must be a positive integer")
        return v


class AppConfig(BaseModel):
    """Top-level broker configuration."""

    environment: str = Field(
        default_factory=lambda: _env(EnvironmentVariable.APP_ENV, "development"),
        description="Deployment environment name",
    )
    debug: bool = Field(
        default_factory=lambda: (_env(EnvironmentVariable.DEBUG, "false") or "").lower() == "true",
        description="Debug mode",
    )
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    broker: BrokerConfig = Field(default_factory=BrokerConfig)

    @classmethod
    def from_env(cls) -> "AppConfig":
        return cls()


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """The process-global configuration, built from the environment on first use."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def set_config(config: AppConfig) -> None:
    global _config
    _config = config


def reset_config() -> None:
    """Drop the global configuration so the next get_config() rebuilds it."""
    global _config
    _config = None
