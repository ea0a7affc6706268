"""
Console logging for the detector.

The level and logger sets come straight from the ``observability`` section of
the config:

    import logging_config
    logging_config.setup(
        config.observability.log_level,
        quiet=config.observability.quiet_loggers,
    )
"""

import logging
import sys
from typing import Iterable, Union

from arbitrage_detector.exceptions import ConfigurationError

# Loggers that follow the configured level
APP_LOGGERS = ("__main__", "arbitrage_detector", "cex", "dex")
# Third-party request logs, held at WARNING outside DEBUG
QUIET_LOGGERS = ("aiohttp.access", "web3", "urllib3")

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(message)s"
DATE_FORMAT = "%H:%M:%S"


def resolve_level(level: Union[int, str]) -> int:
    """Numeric level for a level name such as "INFO" (ints pass through)."""
    if isinstance(level, int):
        return level
    numeric = logging.getLevelName(str(level).upper())
    if not isinstance(numeric, int):
        raise ConfigurationError(f"Unknown log level: {level}")
    return numeric


def setup(
    level: Union[int, str] = logging.INFO,
    quiet: Iterable[str] = QUIET_LOGGERS,
    app_loggers: Iterable[str] = APP_LOGGERS,
) -> int:
    """
    Replace the root handlers with one stdout handler at ``level``.

    Loggers named in ``quiet`` sit at WARNING (or ``level`` if higher); at DEBUG
    they drop to INFO so HTTP and RPC traffic shows up. Loggers in
    ``app_loggers`` follow ``level``.

    Returns:
        The numeric level installed
    """
    numeric = resolve_level(level)

    root = logging.getLogger()
    root.setLevel(numeric)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(numeric)
    console.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(console)

    quiet_level = logging.INFO if numeric <= logging.DEBUG else max(logging.WARNING, numeric)
    for name in quiet:
        logging.getLogger(name).setLevel(quiet_level)
    for name in app_loggers:
        logging.getLogger(name).setLevel(numeric)
    return numeric
