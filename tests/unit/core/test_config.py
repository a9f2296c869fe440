"""Tests for settings and logging setup."""

import logging

import pytest

from stateflow.core.config import Settings
from stateflow.core.logger import setup_logger


class TestSettings:
    """Test Settings defaults and environment overrides."""

    def test_defaults(self):
        """Test default values."""
        settings = Settings(_env_file=None)
        assert settings.app_name == "stateflow"
        assert settings.default_page_size == 50
        assert settings.webhook_urls_list == []

    def test_environment_override(self, monkeypatch):
        """Test STATEFLOW_ prefixed environment variables are read."""
        monkeypatch.setenv("STATEFLOW_DATABASE_URL", "postgresql://db/stateflow")
        monkeypatch.setenv("STATEFLOW_WEBHOOK_URLS", "http://a.test/hook, http://b.test/hook,")
        settings = Settings(_env_file=None)
        assert settings.database_url == "postgresql://db/stateflow"
        assert settings.webhook_urls_list == ["http://a.test/hook", "http://b.test/hook"]

    def test_env_file(self, tmp_path):
        """Test values are read from an env file."""
        env_file = tmp_path / ".env"
        env_file.write_text("STATEFLOW_EXPORT_LIMIT=25\n")
        assert Settings(_env_file=str(env_file)).export_limit == 25


class TestSetupLogger:
    """Test logger configuration."""

    def test_file_and_console_handlers(self, tmp_path):
        """Test both handlers are attached and the file is created."""
        logger = setup_logger("stateflow_test_handlers", log_dir=str(tmp_path), level="DEBUG")
        try:
            assert logger.level == logging.DEBUG
            assert len(logger.handlers) == 2
            logger.info("hello")
            assert (tmp_path / "stateflow_test_handlers.log").exists()
        finally:
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)

    def test_no_duplicate_handlers(self, tmp_path):
        """Test repeated setup does not stack handlers."""
        name = "stateflow_test_dupes"
        setup_logger(name, log_dir=str(tmp_path), file_logging=False)
        logger = setup_logger(name, log_dir=str(tmp_path), file_logging=False)
        try:
            assert len(logger.handlers) == 1
        finally:
            for handler in list(logger.handlers):
                logger.removeHandler(handler)

    def test_invalid_level(self, tmp_path):
        """Test invalid levels are rejected."""
        with pytest.raises(ValueError, match="Invalid log level"):
            setup_logger("stateflow_test_invalid", log_dir=str(tmp_path), level="LOUD")
