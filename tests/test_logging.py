"""Tests for the application logger setup."""

import logging

from preorder_tracker.core.config import Settings
from preorder_tracker.core.logging import get_logger, logger, setup_logging


class TestLogging:
    def test_level_comes_from_argument(self):
        original = logger.level
        try:
            assert setup_logging("WARNING").level == logging.WARNING
            assert setup_logging("debug").level == logging.DEBUG
        finally:
            logger.setLevel(original)

    def test_unknown_level_falls_back_to_info(self):
        original = logger.level
        try:
            assert setup_logging("LOUD").level == logging.INFO
        finally:
            logger.setLevel(original)

    def test_handler_installed_once(self):
        setup_logging("INFO")
        setup_logging("INFO")
        assert len(logger.handlers) == 1

    def test_module_loggers_are_children(self):
        assert get_logger("resolver").name == "preorder_tracker.resolver"

    def test_settings_do_not_carry_log_level(self):
        # The level is read by the logging module, not through Settings
        assert "log_level" not in Settings.model_fields
