"""
Unit tests for marketpollen/logging_config.py.

configure_logging: idempotency, directory creation, level, handler shape.
log_call: CALL / OK / FAIL lines, return pass-through, re-raise.
"""

import logging
import logging.handlers
import os
from unittest.mock import MagicMock, patch

import pytest

from marketpollen.logging_config import LOGGER_NAME, configure_logging, log_call


def _reset_logger():
    logger = logging.getLogger(LOGGER_NAME)
    for h in logger.handlers[:]:
        h.close()
        logger.removeHandler(h)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def log_dir(tmp_path):
    """Point the log file into tmp_path and leave the logger clean afterwards."""
    directory = tmp_path / "logs"
    _reset_logger()
    with patch("marketpollen.logging_config._LOG_DIR", directory), \
         patch("marketpollen.logging_config._LOG_FILE", directory / "marketpollen.log"):
        yield directory
    _reset_logger()


@pytest.fixture
def mock_logger():
    logger = MagicMock()
    with patch("marketpollen.logging_config.logging") as mock_logging:
        mock_logging.getLogger.return_value = logger
        yield logger


# ---------------------------------------------------------------------------
# configure_logging
# ---------------------------------------------------------------------------

class TestConfigureLogging:

    def test_returns_named_logger(self, log_dir):
        result = configure_logging()
        assert isinstance(result, logging.Logger)
        assert result.name == "marketpollen"

    def test_creates_log_dir(self, log_dir):
        assert not log_dir.exists()
        configure_logging()
        assert log_dir.exists()

    def test_single_rotating_handler_even_when_called_repeatedly(self, log_dir):
        configure_logging()
        configure_logging()
        configure_logging()
        handlers = logging.getLogger(LOGGER_NAME).handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.handlers.RotatingFileHandler)

    def test_rotation_settings(self, log_dir):
        configure_logging()
        handler = logging.getLogger(LOGGER_NAME).handlers[0]
        assert handler.maxBytes == 5 * 1024 * 1024
        assert handler.backupCount == 3

    def test_default_level_is_info(self, log_dir):
        env = {k: v for k, v in os.environ.items() if k != "LOG_LEVEL"}
        with patch.dict(os.environ, env, clear=True):
            configure_logging()
        assert logging.getLogger(LOGGER_NAME).level == logging.INFO

    @pytest.mark.parametrize("name,level", [("DEBUG", logging.DEBUG), ("warning", logging.WARNING)])
    def test_respects_log_level(self, log_dir, name, level):
        with patch.dict(os.environ, {"LOG_LEVEL": name}):
            configure_logging()
        assert logging.getLogger(LOGGER_NAME).level == level

    def test_unknown_level_falls_back_to_info(self, log_dir):
        with patch.dict(os.environ, {"LOG_LEVEL": "CHATTY"}):
            configure_logging()
        assert logging.getLogger(LOGGER_NAME).level == logging.INFO

    def test_module_loggers_propagate_into_file(self, log_dir):
        with patch.dict(os.environ, {"LOG_LEVEL": "INFO"}):
            configure_logging()
        logging.getLogger("marketpollen.engine.day_planner").info("plan built")
        for h in logging.getLogger(LOGGER_NAME).handlers:
            h.flush()
        content = (log_dir / "marketpollen.log").read_text(encoding="utf-8")
        assert "| INFO     | plan built" in content


# ---------------------------------------------------------------------------
# log_call decorator
# ---------------------------------------------------------------------------

class TestLogCall:

    def test_passes_return_value_through(self):
        @log_call
        def mouths(count, weight):
            return count * weight

        assert mouths(2, 12) == 24

    def test_preserves_function_name(self):
        @log_call
        def build_day_plan():
            pass

        assert build_day_plan.__name__ == "build_day_plan"

    def test_call_line_has_name_and_args(self, mock_logger):
        @log_call
        def resolve(target, kind='business'):
            return None

        resolve("Acme", kind='store')

        mock_logger.debug.assert_called_once()
        msg = mock_logger.debug.call_args[0][0]
        assert msg.startswith("CALL resolve")
        assert "'Acme'" in msg
        assert "kind='store'" in msg

    def test_ok_line_with_timing(self, mock_logger):
        @log_call
        def noop():
            pass

        noop()

        mock_logger.info.assert_called_once()
        msg = mock_logger.info.call_args[0][0]
        assert msg.startswith("OK   noop")
        assert msg.endswith("ms")

    def test_fail_line_and_reraise(self, mock_logger):
        @log_call
        def intake():
            raise ValueError("storeName is required")

        with pytest.raises(ValueError, match="storeName is required"):
            intake()

        mock_logger.error.assert_called_once()
        msg = mock_logger.error.call_args[0][0]
        assert "FAIL intake" in msg
        assert "ValueError: storeName is required" in msg
        mock_logger.info.assert_not_called()
