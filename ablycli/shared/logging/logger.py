import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

LOG_DIR_ENV = "ABLY_CLI_LOG_DIR"

_LOGGERS = {}
_CONSOLE_LEVEL = logging.WARNING


def _log_dir() -> Optional[Path]:
    raw = os.getenv(LOG_DIR_ENV)
    if not raw:
        return None
    path = Path(raw)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_logger(
    name: str,
    *,
    runtime: str = "ablycli",
) -> logging.Logger:
    """
    Create or retrieve a named logger.

    Parameters:
    - name: logger namespace (e.g. core.lifecycle, services.ably.channels)
    - runtime: log file prefix when file logging is enabled

    Console output goes to stderr so it never interleaves with command
    output on stdout (JSON consumers read stdout line by line).
    A file handler is attached only when ABLY_CLI_LOG_DIR is set.
    """
    cache_key = f"{runtime}:{name}"
    if cache_key in _LOGGERS:
        return _LOGGERS[cache_key]

    logger = logging.getLogger(cache_key)
    logger.setLevel(logging.DEBUG)

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )

    # ------------------------------
    # Console handler (stderr)
    # ------------------------------
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.setLevel(_CONSOLE_LEVEL)
    logger.addHandler(console)

    # ------------------------------
    # File handler (one per run, opt-in)
    # ------------------------------
    log_dir = _log_dir()
    if log_dir is not None:
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        logfile = log_dir / f"{runtime}-{timestamp}.log"

        file_handler = logging.FileHandler(logfile, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    _LOGGERS[cache_key] = logger

    return logger


def set_console_level(level: int) -> None:
    """
    Adjust console verbosity for every logger created so far and
    for loggers created later (--verbose switches to DEBUG).
    """
    global _CONSOLE_LEVEL
    _CONSOLE_LEVEL = level

    for logger in _LOGGERS.values():
        for handler in logger.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(
                handler, logging.FileHandler
            ):
                handler.setLevel(level)
