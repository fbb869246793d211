"""Tests for the exception hierarchy and logging setup."""

import logging
import uuid

import pytest

from adphex.exceptions import (
    AccountsError,
    AdphexError,
    AssignmentError,
    ConfigurationError,
    TransportError,
    ValidationError,
)
from adphex.logging_config import NOISY_LOGGERS, configure_logging


class TestAdphexError:
    """Test base AdphexError class."""

    def test_auto_generates_correlation_id(self):
        error = AdphexError("Test error")
        uuid.UUID(error.correlation_id)

    def test_accepts_custom_correlation_id(self):
        error = AdphexError("Test error", correlation_id="req-1")
        assert error.correlation_id == "req-1"

    def test_message_propagation(self):
        assert str(AdphexError("Test message")) == "Test message"

    @pytest.mark.parametrize(
        "error_cls",
        [AccountsError, AssignmentError, ConfigurationError, TransportError, ValidationError],
    )
    def test_subclasses(self, error_cls):
        error = error_cls("boom", correlation_id="c1")
        assert isinstance(error, AdphexError)
        assert error.correlation_id == "c1"

    def test_status_codes(self):
        assert TransportError("x", status_code=502).status_code == 502
        assert AssignmentError("x").status_code is None


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def restore_loggers(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        names = ["adphex", *NOISY_LOGGERS]
        levels = {name: logging.getLogger(name).level for name in names}
        yield
        root.handlers[:] = handlers
        root.setLevel(level)
        for name, saved in levels.items():
            logging.getLogger(name).setLevel(saved)

    def test_sets_adphex_level(self, mock_settings):
        configure_logging("DEBUG")
        assert logging.getLogger("adphex").level == logging.DEBUG

    def test_uses_settings_level(self, mock_settings):
        mock_settings.log_level = "WARNING"
        configure_logging()
        assert logging.getLogger("adphex").level == logging.WARNING

    def test_noisy_loggers_suppressed(self, mock_settings):
        configure_logging("DEBUG")
        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING
