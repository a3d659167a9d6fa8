import logging
import sys
import traceback
from datetime import datetime
from typing import Optional, Union
from pathlib import Path

from flowbot.config import settings

LOGS_DIR = Path(settings.LOG_DIR)
LOGS_DIR.mkdir(parents=True, exist_ok=True)

LOG_FORMAT = "%(levelname)s | %(name)s | (%(filename)s:%(lineno)d) | %(message)s"

COLORS = {
    "DEBUG": "\033[94m",  # Blue
    "INFO": "\033[92m",  # Green
    "WARNING": "\033[93m",  # Yellow
    "ERROR": "\033[91m",  # Red
    "CRITICAL": "\033[1;91m",  # Bold Red
    "RESET": "\033[0m",
}


class ColoredFormatter(logging.Formatter):
    """
    Formatter that colors the level name in terminal output.
    """

    def format(self, record):
        levelname = record.levelname
        if levelname in COLORS:
            record.levelname = f"{COLORS[levelname]}{levelname}{COLORS['RESET']}"
        result = super().format(record)
        record.levelname = levelname
        return result


class DetailedErrorHandler(logging.Handler):
    """
    Attaches traceback or stack information to error records so that the
    handlers after it (console, error file) print the full context.
    """

    def emit(self, record):
        if record.levelno < logging.ERROR or getattr(record, "_flowbot_detailed", False):
            return
        if record.exc_info:
            record.msg = f"{record.msg}\nTraceback:\n{''.join(traceback.format_exception(*record.exc_info))}"
            record.exc_info = None
        elif record.stack_info:
            record.msg = f"{record.msg}\nStack:\n{record.stack_info}"
        record._flowbot_detailed = True


def setup_logger(
    name: str,
    level: Optional[Union[int, str]] = None,
    log_file: Optional[Union[str, Path]] = None,
) -> logging.Logger:
    """
    Configure and return a logger with consistent formatting.

    Args:
        name: Logger name (typically __name__)
        level: Logging level, defaults to settings.LOG_LEVEL
        log_file: Optional path to an additional log file

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if level is None:
        level = settings.LOG_LEVEL
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    logger.setLevel(level)

    if logger.handlers:
        return logger

    standard_formatter = logging.Formatter(LOG_FORMAT)

    # Must run before the handlers that actually write
    error_handler = DetailedErrorHandler()
    error_handler.setLevel(logging.ERROR)
    logger.addHandler(error_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(ColoredFormatter(LOG_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(standard_formatter)
        logger.addHandler(file_handler)

    today = datetime.now().strftime("%Y-%m-%d")
    error_file_handler = logging.FileHandler(
        LOGS_DIR / f"{today}-errors.log", delay=True
    )
    error_file_handler.setLevel(logging.ERROR)
    error_file_handler.setFormatter(standard_formatter)
    logger.addHandler(error_file_handler)

    return logger


def log_exception(
    logger: logging.Logger, message: str, exc: Optional[BaseException] = None
) -> None:
    """
    Log an exception with full traceback information.

    Args:
        logger: Logger instance
        message: Error message to include
        exc: Exception object (if None, uses current exception context)
    """
    if exc is None:
        exc_type, exc_value, exc_traceback = sys.exc_info()
        if not any((exc_type, exc_value, exc_traceback)):
            logger.error(f"{message} (no exception info available)")
            return
    else:
        exc_type = type(exc)
        exc_value = exc
        exc_traceback = exc.__traceback__

    tb_text = "".join(traceback.format_exception(exc_type, exc_value, exc_traceback))
    logger.error(f"{message}\n{tb_text}")
