"""Configure logging for the community search application."""

import logging
import os
import sys
from datetime import datetime
from typing import Optional

from loguru import logger

from community_search.settings import settings

# Third-party namespaces that are too chatty below WARNING
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "urllib3", "asyncio")


def _filter_noisy_loggers(record) -> bool:
    for logger_name in NOISY_LOGGERS:
        if record["name"].startswith(logger_name) and record["level"].no < 30:
            return False

    if (
        "Qdrant client version" in record["message"]
        and "incompatible with server version" in record["message"]
    ):
        return False

    return True


def configure_loguru(
    sink=sys.stdout,
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    rotation: str = "20 MB",
    retention: str = "1 week",
    format_string: Optional[str] = None,
    serialize: bool = False,
) -> None:
    """
    Configure Loguru logger with given parameters.

    :param sink: Output sink (default: stdout)
    :param level: Log level (default: from settings)
    :param log_file: Optional file path to write logs to
    :param rotation: When to rotate logs (size or time)
    :param retention: How long to keep logs
    :param format_string: Log format string
    :param serialize: Whether to serialize logs as JSON
    """
    logger.remove()

    if level is None:
        level = settings.log_level.value

    if format_string is None:
        format_string = (
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        )

    logger.add(
        sink=sink,
        level=level,
        format=format_string,
        colorize=True,
        backtrace=True,
        diagnose=False,
        filter=_filter_noisy_loggers,
    )

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        logger.add(
            sink=log_file,
            level=level,
            format=format_string,
            rotation=rotation,
            retention=retention,
            compression="zip",
            serialize=serialize,
            backtrace=True,
            diagnose=False,
            filter=_filter_noisy_loggers,
        )

    logger.debug(f"Configured Loguru with level: {level}")


def configure_logging() -> None:
    """Configures the application logging."""
    level = settings.log_level.value

    log_file = None
    if settings.enable_file_logging:
        logs_dir = settings.logs_dir or "logs"
        os.makedirs(logs_dir, exist_ok=True)
        date_str = datetime.now().strftime("%Y-%m-%d")
        log_file = os.path.join(logs_dir, f"community_search_{date_str}.log")

    configure_loguru(
        level=level,
        log_file=log_file,
        serialize=settings.structured_logging,
    )

    InterceptHandler().intercept_all_loggers()

    logger.info(f"Logging configured with level {level}")
    if log_file:
        logger.info(f"Logging to file: {log_file}")


class InterceptHandler(logging.Handler):
    """
    Intercepts standard library logging and redirects to loguru.

    This handler is needed to capture logs from libraries that use
    the standard logging module (uvicorn, httpx, qdrant_client).
    """

    def intercept_all_loggers(self) -> None:
        """Route the root logger and uvicorn loggers through loguru."""
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        root_logger.addHandler(self)
        root_logger.setLevel(logging.INFO)

        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

        for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
            ulogger = logging.getLogger(logger_name)
            ulogger.handlers = [self]
            ulogger.propagate = False

        logger.debug("Intercepted standard library loggers")

    def emit(self, record: logging.LogRecord) -> None:
        """
        Emit a record - standard logging Handler interface.

        :param record: standard library log record
        """
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )
