"""
Tests for logging setup.

Run tests:
    pytest tests/test_logger.py -v
"""

import logging
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

webapp_root = Path(__file__).parent.parent
if str(webapp_root) not in sys.path:
    sys.path.insert(0, str(webapp_root))

from explorer.shared import logger as logger_module
from explorer.shared.logger import CHATTY_LOGGERS, get_logger, resolve_level, setup_logging


@pytest.fixture
def unconfigured():
    """Run setup_logging as if for the first time, restoring logger state after."""
    levels = {name: logging.getLogger(name).level for name in CHATTY_LOGGERS}
    with patch.object(logger_module, "_configured", False), patch("logging.basicConfig") as basic:
        yield basic
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)


class TestResolveLevel:
    def test_names(self):
        assert resolve_level("debug") == logging.DEBUG
        assert resolve_level(" WARNING ") == logging.WARNING

    def test_unknown_name(self):
        assert resolve_level("verbose") == logging.INFO

    def test_numeric(self):
        assert resolve_level(15) == 15


class TestSetupLogging:
    def test_quiets_request_loggers(self, unconfigured):
        assert setup_logging("info") == logging.INFO
        assert unconfigured.call_args.kwargs["level"] == logging.INFO
        for name in CHATTY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_debug_keeps_request_loggers(self, unconfigured):
        setup_logging("DEBUG")
        assert logging.getLogger("httpx").level == logging.DEBUG

    def test_only_configures_once(self, unconfigured):
        setup_logging("INFO")
        setup_logging("DEBUG")
        assert unconfigured.call_count == 1


def test_get_logger():
    assert get_logger("explorer.session").name == "explorer.session"
