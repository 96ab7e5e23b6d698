"""Unit tests for logging configuration module.

Tests verify that the logging configuration functions work correctly with different
scenarios including various log levels, formats, and file logging options.
"""

import logging
from pathlib import Path

import pytest

from typed_agent.core.config import reset_settings
from typed_agent.core.logging_config import (
    DETAILED_FORMAT,
    JSON_FORMAT,
    LOG_FILE_NAME,
    MODULE_LOG_LEVELS,
    SIMPLE_FORMAT,
    get_logger,
    setup_logging,
)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(level)


def _console_handler() -> logging.Handler:
    return next(
        h
        for h in logging.getLogger().handlers
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
    )


def _file_handler():
    return next((h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)), None)


class TestSetupLoggingLogLevels:
    """Test setup_logging with different log levels."""

    @pytest.mark.parametrize(
        "log_level,expected_level",
        [
            ("DEBUG", logging.DEBUG),
            ("INFO", logging.INFO),
            ("WARNING", logging.WARNING),
            ("ERROR", logging.ERROR),
            ("CRITICAL", logging.CRITICAL),
            ("debug", logging.DEBUG),  # Test lowercase
            ("info", logging.INFO),
        ],
    )
    def test_setup_logging_with_different_levels(self, log_level, expected_level):
        """Test setup_logging configures correct log level."""
        setup_logging(log_level=log_level, enable_file=False)

        assert _console_handler().level == expected_level

    def test_setup_logging_default_level(self):
        """Test setup_logging uses the INFO level from settings by default."""
        setup_logging(enable_file=False)

        assert _console_handler().level == logging.INFO

    def test_setup_logging_respects_env_log_level(self, monkeypatch):
        """Test that TYPED_AGENT_LOG_LEVEL is honoured."""
        monkeypatch.setenv("TYPED_AGENT_LOG_LEVEL", "WARNING")
        reset_settings()

        setup_logging(enable_file=False)

        assert _console_handler().level == logging.WARNING


class TestSetupLoggingFormats:
    """Test setup_logging with different log formats."""

    @pytest.mark.parametrize(
        "log_format,expected_format",
        [
            ("simple", SIMPLE_FORMAT),
            ("detailed", DETAILED_FORMAT),
            ("json", JSON_FORMAT),
        ],
    )
    def test_setup_logging_with_different_formats(self, log_format, expected_format):
        """Test setup_logging configures correct format."""
        setup_logging(log_format=log_format, enable_file=False)

        assert _console_handler().formatter._fmt == expected_format

    def test_setup_logging_default_format(self):
        """Test setup_logging uses detailed format by default."""
        setup_logging(enable_file=False)

        assert _console_handler().formatter._fmt == DETAILED_FORMAT

    def test_setup_logging_format_with_timestamp(self):
        """Test that formatter includes timestamp."""
        setup_logging(log_format="detailed", enable_file=False)

        assert _console_handler().formatter.datefmt == "%Y-%m-%d %H:%M:%S"


class TestSetupLoggingFileHandling:
    """Test setup_logging file logging functionality."""

    def test_setup_logging_with_file_enabled(self, monkeypatch, tmp_path: Path):
        """Test setup_logging creates a DEBUG file handler in the configured directory."""
        log_dir = tmp_path / "new_logs"
        monkeypatch.setenv("TYPED_AGENT_LOG_FILE_DIR", str(log_dir))
        reset_settings()

        setup_logging(log_level="ERROR", enable_file=True)

        file_handler = _file_handler()
        assert file_handler is not None
        assert file_handler.level == logging.DEBUG
        assert Path(file_handler.baseFilename) == log_dir / LOG_FILE_NAME
        assert log_dir.exists()

    def test_setup_logging_with_file_disabled(self):
        """Test setup_logging does not create file handler when disabled."""
        setup_logging(enable_file=False)

        assert _file_handler() is None


class TestSetupLoggingHandlerManagement:
    """Test handler replacement and module levels."""

    def test_setup_logging_called_multiple_times(self):
        """Test that repeated setup does not stack console handlers."""
        setup_logging(enable_file=False)
        setup_logging(enable_file=False)

        assert len(logging.getLogger().handlers) == 1

    def test_setup_logging_root_logger_level_is_debug(self):
        """Test root logger captures all levels."""
        setup_logging(log_level="ERROR", enable_file=False)

        assert logging.getLogger().level == logging.DEBUG

    @pytest.mark.parametrize("module_name,expected_level", sorted(MODULE_LOG_LEVELS.items()))
    def test_module_specific_log_levels(self, module_name, expected_level):
        """Test module-specific log levels are applied."""
        setup_logging(enable_file=False)

        assert logging.getLogger(module_name).level == getattr(logging, expected_level)


class TestGetLogger:
    """Test get_logger function."""

    def test_get_logger_returns_logger_instance(self):
        """Test get_logger returns a Logger."""
        assert isinstance(get_logger("typed_agent.agent"), logging.Logger)

    def test_get_logger_same_name_returns_same_instance(self):
        """Test get_logger returns the same instance for the same name."""
        assert get_logger("typed_agent.tools") is get_logger("typed_agent.tools")

    def test_importing_package_configures_nothing(self):
        """Test that library loggers do not install handlers on import."""
        import typed_agent  # noqa: F401

        assert get_logger("typed_agent.agent.orchestrator").handlers == []
