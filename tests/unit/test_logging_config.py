"""Tests for the console logging setup."""

import logging
import sys

import pytest

import logging_config
from arbitrage_detector.config_schema import DetectorConfig
from arbitrage_detector.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    names = logging_config.QUIET_LOGGERS + logging_config.APP_LOGGERS + ("websockets",)
    levels = {name: logging.getLogger(name).level for name in names}
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    for name, saved in levels.items():
        logging.getLogger(name).setLevel(saved)


def test_setup_installs_single_stdout_handler():
    logging_config.setup()
    logging_config.setup()

    root = logging.getLogger()
    assert len(root.handlers) == 1
    handler = root.handlers[0]
    assert handler.stream is sys.stdout
    assert handler.formatter.datefmt == "%H:%M:%S"
    assert root.level == logging.INFO
    for name in logging_config.APP_LOGGERS:
        assert logging.getLogger(name).level == logging.INFO


@pytest.mark.parametrize(
    "level,quiet_level",
    [("INFO", logging.WARNING), ("ERROR", logging.ERROR), ("DEBUG", logging.INFO)],
)
def test_quiet_loggers_follow_level(level, quiet_level):
    assert logging_config.setup(level) == logging.getLevelName(level)
    for name in logging_config.QUIET_LOGGERS:
        assert logging.getLogger(name).level == quiet_level


def test_setup_from_observability_config():
    config = DetectorConfig.model_validate(
        {"observability": {"log_level": "WARNING", "quiet_loggers": ["websockets"]}}
    )
    logging_config.setup(
        config.observability.log_level, quiet=config.observability.quiet_loggers
    )
    assert logging.getLogger().level == logging.WARNING
    assert logging.getLogger("arbitrage_detector").level == logging.WARNING
    assert logging.getLogger("websockets").level == logging.WARNING


def test_resolve_level():
    assert logging_config.resolve_level("debug") == logging.DEBUG
    assert logging_config.resolve_level(logging.ERROR) == logging.ERROR
    with pytest.raises(ConfigurationError):
        logging_config.resolve_level("LOUD")
