"""
Unit tests for logging setup.
"""

import logging

import json_log_formatter
import pytest

from sdk.livecache.config import EngineConfig, ObservabilityConfig
from sdk.livecache.logs import setup_logging


@pytest.fixture
def restore_root_logger():
    """Put the root logger back after the test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


class TestSetupLogging:
    """Tests for setup_logging()."""

    def test_json_format(self, restore_root_logger):
        setup_logging(EngineConfig())

        root = logging.getLogger()
        assert root.level == logging.INFO
        assert isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)

    def test_text_format(self, restore_root_logger):
        setup_logging(EngineConfig(observability=ObservabilityConfig(log_level="DEBUG", log_format="text")))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert not isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)

    def test_library_noise_reduced(self, restore_root_logger):
        setup_logging(EngineConfig())

        assert logging.getLogger("uvicorn.access").level == logging.WARNING
