"""
Core utilities and configuration for typed-agent.

This package provides shared functionality: settings, logging configuration,
the error hierarchy, Logfire tracing and the conversation message models.
"""

from typed_agent.core.config import AgentSettings, get_settings, reset_settings
from typed_agent.core.logging_config import get_logger, setup_logging

__all__ = ["AgentSettings", "get_logger", "get_settings", "reset_settings", "setup_logging"]
