"""Logging setup for hourbill.

Everything logs under the `hourbill` namespace. Pipeline timing events go to
`hourbill.timing` through `log_timing`, which fits the pipeline's `on_timing`
hook and can be silenced with `[logging] timing = false`.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import Config, LoggingConfig

TIMING_LOGGER = "hourbill.timing"

_LINE_FORMAT = "%(levelname)-5s [%(name)-18s] %(message)s"
_STAMPED_FORMAT = "%(asctime)s " + _LINE_FORMAT
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that chatter at INFO/DEBUG during renders and uploads
_NOISY_LOGGERS = ("httpx", "httpcore", "weasyprint", "fontTools")

_initialized = False


def _console_handler(level: int, daemon_mode: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if daemon_mode:
        handler.setFormatter(logging.Formatter(_STAMPED_FORMAT, datefmt=_DATE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(_LINE_FORMAT))
    return handler


def _file_handler(log_config: LoggingConfig, level: int) -> logging.Handler:
    file_path = Path(log_config.file)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    if log_config.rotate:
        handler = RotatingFileHandler(
            file_path,
            maxBytes=log_config.max_size_mb * 1024 * 1024,
            backupCount=log_config.backup_count,
        )
    else:
        handler = logging.FileHandler(file_path)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_STAMPED_FORMAT, datefmt=_DATE_FORMAT))
    return handler


def setup_logging(
    config: Config,
    verbose: bool = False,
    daemon_mode: bool = False,
) -> None:
    """
    Configure the `hourbill` logger once per process.

    Args:
        config: Application configuration with logging settings
        verbose: If True, override config level to DEBUG
        daemon_mode: If True, include timestamps in console output
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    log_config = config.logging
    level_str = "DEBUG" if verbose else log_config.level.upper()
    level = getattr(logging, level_str, logging.INFO)

    logger = logging.getLogger("hourbill")
    logger.setLevel(level)
    logger.handlers.clear()

    if log_config.output in ("console", "both"):
        logger.addHandler(_console_handler(level, daemon_mode))
    if log_config.output in ("file", "both") and log_config.file:
        logger.addHandler(_file_handler(log_config, level))

    timing = logging.getLogger(TIMING_LOGGER)
    timing.setLevel(logging.NOTSET if log_config.timing else logging.WARNING)

    for noisy_logger in _NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)


def log_timing(event: str, invoice_id: str, elapsed: float | None) -> None:
    """Pipeline timing hook: one INFO line per started/finished/failed event."""
    timing = logging.getLogger(TIMING_LOGGER)
    if elapsed is None:
        timing.info("%s invoice=%s", event, invoice_id)
    else:
        timing.info("%s invoice=%s elapsed=%.3fs", event, invoice_id, elapsed)


def reset_logging() -> None:
    """Reset logging state for testing purposes."""
    global _initialized
    _initialized = False
    logging.getLogger("hourbill").handlers.clear()
    logging.getLogger(TIMING_LOGGER).setLevel(logging.NOTSET)
