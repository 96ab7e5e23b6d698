"""
Configuration Settings.

This module defines the library configuration using Pydantic's BaseSettings.
It automatically loads all configuration from environment variables and .env file
without explicit dotenv loading. Every variable is prefixed with ``TYPED_AGENT_``.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AgentSettings(BaseSettings):
    """
    Library settings model.

    All properties are automatically bound from environment variables and .env file.
    Pydantic's BaseSettings handles dotenv loading automatically via model_config.
    """

    # =====================================================================
    # Pydantic Configuration
    # =====================================================================
    model_config = SettingsConfigDict(
        env_prefix="TYPED_AGENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # =====================================================================
    # Logging Configuration
    # =====================================================================
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_format: str = Field(
        default="detailed",
        description="Log line format (simple, detailed, json)",
    )
    enable_file_logging: bool = Field(
        default=False,
        description="Also write log records to a file under log_file_dir",
    )
    log_file_dir: str = Field(
        default="logs",
        description="Directory for the log file when file logging is enabled",
    )

    # =====================================================================
    # Run Loop Configuration
    # =====================================================================
    default_max_rounds: int = Field(
        default=8,
        ge=1,
        description="Model exchanges allowed per run when the agent does not declare its own bound",
    )
    default_max_corrections: int = Field(
        default=2,
        ge=0,
        description="Output corrections allowed per run when the agent does not declare its own bound",
    )
    parallel_tool_calls: bool = Field(
        default=True,
        description="Execute the tool calls requested in one round concurrently",
    )

    # =====================================================================
    # Logfire Monitoring Configuration
    # =====================================================================
    logfire_enabled: bool = Field(default=False, description="Enable Logfire tracing of agent runs")
    logfire_token: Optional[str] = Field(default=None, description="Logfire write token")
    logfire_service_name: str = Field(default="typed-agent", description="Service name reported to Logfire")
    logfire_environment: str = Field(default="development", description="Environment reported to Logfire")


_settings: Optional[AgentSettings] = None


def get_settings() -> AgentSettings:
    """Get the process-wide settings, loading them on first use.

    Returns:
        AgentSettings instance
    """
    global _settings
    if _settings is None:
        _settings = AgentSettings()
    return _settings


def reset_settings() -> AgentSettings:
    """Reload the settings from the environment.

    Returns:
        The freshly loaded AgentSettings instance
    """
    global _settings
    _settings = AgentSettings()
    return _settings
