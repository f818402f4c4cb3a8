# ==================================================
# ================ Logger Utilities ================
# ==================================================
from __future__ import annotations

import logging
import os
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from imgarray.core.config import get_global_config

# Public API
__all__ = [
    "LOG_DIR_ENV",
    "LOGGER_NAME",
    "resolve_log_dir",
    "resolve_level",
    "make_file_handler",
    "get_logger",
    "get_error_logger",
    "get_debug_logger",
]

# ====[ Global logging configuration ]====
LOG_DIR_ENV = "IMGARRAY_LOG_DIR"
LOGGER_NAME = "imgarray"
_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def resolve_log_dir(log_dir: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """
    Pick the directory for rotating log files.

    An explicit `log_dir` wins, then `GlobalConfig.log_dir`, then the
    IMGARRAY_LOG_DIR environment variable. None means no file output.
    """
    if log_dir is not None:
        return Path(log_dir)
    if get_global_config().log_dir:
        return Path(get_global_config().log_dir)
    env = os.environ.get(LOG_DIR_ENV)
    return Path(env) if env else None


def resolve_level() -> int:
    """Level of the main logger: INFO when verbose, else `GlobalConfig.log_level`."""
    cfg = get_global_config()
    if cfg.verbose:
        return logging.INFO
    return getattr(logging, str(cfg.log_level).upper(), logging.WARNING)


def _sync_handler_levels(logger: logging.Logger, level: int) -> None:
    for h in logger.handlers:
        h.setLevel(level)


# ====[ Shared rotating file handler generator ]====
def make_file_handler(
    log_path: Union[str, Path],
    level: int,
    when: str = "midnight",
    backupCount: int = 7,
    encoding: str = "utf-8",
    interval: int = 1,
) -> TimedRotatingFileHandler:
    """
    Create a TimedRotatingFileHandler with a standard formatter.

    Parameters
    ----------
    log_path : str | Path
        Output log file path.
    level : int
        Logging level (e.g., logging.INFO).
    when : str, default 'midnight'
        Rotation interval basis per logging.handlers.TimedRotatingFileHandler.
    backupCount : int, default 7
        Number of backup files to keep.
    encoding : str, default 'utf-8'
        File encoding.
    interval : int, default 1
        Rotation interval multiplier.

    Returns
    -------
    TimedRotatingFileHandler
    """
    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = TimedRotatingFileHandler(
        filename=str(path),
        when=when,
        interval=interval,
        backupCount=backupCount,
        encoding=encoding,
        delay=True,  # open file on first emit
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FORMAT))
    return handler


# ==================================================
# ================ Logger Factory ==================
# ==================================================

# ====[ Main logger: console (+ file) ]====
def get_logger(
    name: str = LOGGER_NAME,
    log_dir: Optional[Union[str, Path]] = None,
    level: Optional[int] = None,
    when: str = "midnight",
    backupCount: int = 7,
) -> logging.Logger:
    """
    Create and configure the engine logger with a console handler and, when a
    log directory is known, a daily rotating file handler.

    Repeated calls with the same `name` do not add duplicate handlers; they only
    re-sync handler levels. Propagation to the root logger is disabled.

    Parameters
    ----------
    name : str, optional
        Name of the logger instance. Default is "imgarray".
    log_dir : str or Path, optional
        Directory for log files. If None, see `resolve_log_dir`; no directory means console only.
    level : int, optional
        Logging level. If None, resolved from the global configuration.
    when : str, optional
        Rotation interval basis. Default is "midnight".
    backupCount : int, optional
        Number of backup log files to keep. Default is 7.

    Returns
    -------
    logging.Logger
    """
    level = resolve_level() if level is None else level
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    if not logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(console_handler)

        base_dir = resolve_log_dir(log_dir)
        if base_dir is not None:
            today = datetime.now().strftime("%Y-%m-%d")
            logger.addHandler(
                make_file_handler(base_dir / f"{name}_{today}.log", level, when=when, backupCount=backupCount)
            )
    else:
        _sync_handler_levels(logger, level)

    return logger


def _get_file_logger(
    name: str,
    prefix: str,
    log_dir: Optional[Union[str, Path]],
    level: int,
    backupCount: int,
) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)

    base_dir = resolve_log_dir(log_dir)
    if base_dir is None:
        # No file target: hand records to the main engine logger.
        get_logger()
        logger.propagate = True
        return logger

    logger.propagate = False
    if not logger.handlers:
        today = datetime.now().strftime("%Y-%m-%d")
        logger.addHandler(
            make_file_handler(base_dir / f"{prefix}_{today}.log", level, when="midnight", backupCount=backupCount)
        )
    else:
        _sync_handler_levels(logger, level)
    return logger


# ====[ Error logger: file only ]====
def get_error_logger(
    name: str = f"{LOGGER_NAME}.errors",
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.ERROR,
    backupCount: int = 30,
) -> logging.Logger:
    """
    Dedicated error logger writing to a rotating 'errors_<date>.log' file.

    Without a log directory the records propagate to the main 'imgarray' logger.
    """
    return _get_file_logger(name, "errors", log_dir, level, backupCount)


# ====[ Debug logger: file only ]====
def get_debug_logger(
    name: str = f"{LOGGER_NAME}.debug",
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.DEBUG,
    backupCount: int = 7,
) -> logging.Logger:
    """
    Dedicated debug logger writing to a rotating 'debug_<date>.log' file.

    Without a log directory the records propagate to the main 'imgarray' logger,
    whose level normally filters them out.
    """
    return _get_file_logger(name, "debug", log_dir, level, backupCount)
