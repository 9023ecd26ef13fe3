"""Log output for bsp-client.

Everything logs under the ``bsp_client`` logger. Nothing is emitted until
setup_logging() installs a handler, so embedding the client in another
program leaves that program's logging alone.

Where output goes:
    1. ``logging.file`` from config, or the BSP_CLIENT_LOG environment variable
    2. otherwise stderr, but only when stderr is a terminal

Wire traffic goes out at TRACE (``-vvv``).
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from bsp_client.config import LoggingConfig

TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

LOG_FILE_ENV = "BSP_CLIENT_LOG"

logger = logging.getLogger("bsp_client")

# Indexed by LoggingConfig.verbose: -q, default, -v, -vv, -vvv
_VERBOSITY = (logging.ERROR, logging.WARNING, logging.INFO, VERBOSE, TRACE)

_handler: logging.Handler | None = None


class _FileFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        # Copy so other handlers still see the original level name
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = record.levelname.lower()
        return super().format(record)


def resolve_level(config: LoggingConfig | None) -> int:
    """verbose (0-4) wins over the level name; unknown names fall back to INFO."""
    if config is None:
        return logging.INFO
    if config.verbose is not None:
        return _VERBOSITY[max(0, min(config.verbose, len(_VERBOSITY) - 1))]
    return logging.getLevelNamesMapping().get((config.level or "").upper(), logging.INFO)


def log_file_path(config: LoggingConfig | None) -> str | None:
    path = (config.file if config else None) or os.environ.get(LOG_FILE_ENV)
    return os.path.expanduser(path) if path else None


def _terminal_handler() -> logging.Handler:
    return RichHandler(
        console=Console(stderr=True),
        show_path=False,
        log_time_format="%H:%M:%S",
    )


def setup_logging(config: LoggingConfig | None = None) -> logging.Handler | None:
    """Point bsp_client logging at a file or the terminal.

    A handler from an earlier call is removed first, so the CLI can call
    this again after reloading config.

    Returns:
        The installed handler, or None when output is discarded.
    """
    global _handler
    if _handler is not None:
        logger.removeHandler(_handler)
        _handler.close()
        _handler = None

    level = resolve_level(config)
    logger.setLevel(level)

    handler: logging.Handler | None = None
    open_error: OSError | None = None
    path = log_file_path(config)
    if path:
        try:
            handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        except OSError as e:
            open_error = e
        else:
            handler.setFormatter(_FileFormatter())

    # A non-terminal stderr is usually an editor's pipe
    if handler is None and sys.stderr.isatty():
        handler = _terminal_handler()

    if handler is not None:
        handler.setLevel(level)
        logger.addHandler(handler)
        _handler = handler
    if open_error is not None:
        logger.warning("Cannot open log file %s: %s", path, open_error)
    return handler


def get_logger(name: str | None = None) -> logging.Logger:
    """Return the bsp_client logger, or its child ``bsp_client.<name>``."""
    return logger.getChild(name) if name else logger
