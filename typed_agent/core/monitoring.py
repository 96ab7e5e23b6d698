"""
Monitoring and Tracing Configuration Module.

This module provides integration with Pydantic Logfire for tracing agent runs:
- one span per run, per model round and per tool call
- automatic instrumentation of pydantic-ai model requests

Tracing is opt-in through ``TYPED_AGENT_LOGFIRE_ENABLED``; when it is off,
:func:`trace_span` is a null context so the run loop pays nothing for it.
"""

import contextlib
import logging
from typing import Any, ContextManager

import logfire

from typed_agent.core.config import get_settings

logger = logging.getLogger(__name__)

_logfire_active = False


def initialize_logfire() -> bool:
    """
    Initialize Pydantic Logfire for monitoring and tracing.

    The initialization is conditional on the ``logfire_enabled`` setting and
    requires a ``logfire_token``.

    Returns:
        True if Logfire is active after the call, False otherwise
    """
    global _logfire_active
    settings = get_settings()

    if not settings.logfire_enabled:
        logger.info("Logfire monitoring is disabled. Set TYPED_AGENT_LOGFIRE_ENABLED=true to enable.")
        return False

    if not settings.logfire_token:
        logger.warning(
            "Logfire is enabled but TYPED_AGENT_LOGFIRE_TOKEN is not set. "
            "Monitoring will not work until a token is provided."
        )
        return False

    logfire.configure(
        token=settings.logfire_token,
        service_name=settings.logfire_service_name,
        environment=settings.logfire_environment,
    )

    try:
        logfire.instrument_pydantic_ai()
        logger.info("Logfire: Pydantic AI instrumentation enabled")
    except Exception as e:
        logger.warning(f"Failed to instrument Pydantic AI: {e}")

    _logfire_active = True
    logger.info(
        f"Logfire monitoring initialized: service={settings.logfire_service_name}, "
        f"environment={settings.logfire_environment}"
    )
    return True


def is_monitoring_active() -> bool:
    """Return whether spans are currently exported to Logfire."""
    return _logfire_active


def trace_span(name: str, **attributes: Any) -> ContextManager[Any]:
    """Open a Logfire span when monitoring is active.

    Args:
        name: Span name (e.g. ``"agent.run"``)
        **attributes: Span attributes

    Returns:
        A context manager; a null context when monitoring is inactive
    """
    if not _logfire_active:
        return contextlib.nullcontext()
    return logfire.span(name, **attributes)
