"""Logging utilities for the application.

Loguru is the single logging backend: :func:`setup_logging` installs a
console sink and, when ``LOG_FILE`` is set, a rotating file sink.  Records
emitted through the standard ``logging`` module (uvicorn, httpx, LangChain)
are forwarded to Loguru so everything shares one format.
"""

from __future__ import annotations

import sys
import logging
from pathlib import Path

from loguru import logger

from ..config.app_config import AppConfig, get_app_config

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """Handler to forward standard logging records to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except (KeyError, ValueError):
            level = record.levelno

        # Find the caller from where the logging call was made
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(app_config: AppConfig | None = None) -> "loguru.Logger":
    """Configure Loguru sinks from the application configuration.

    Safe to call more than once; existing sinks are replaced rather than
    duplicated.
    """
    config = app_config or get_app_config()

    logger.remove()

    logger.add(
        sys.stdout,
        level=config.log_level,
        format=LOG_FORMAT,
        colorize=True,
        backtrace=True,
        diagnose=config.app_debug,
    )

    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path,
            level=config.log_level,
            format=LOG_FORMAT,
            rotation="10 MB",
            retention="30 days",
            compression="zip",
            backtrace=True,
            diagnose=config.app_debug,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=logging.WARNING, force=True)

    logger.info("Logging configured successfully")
    logger.debug("App environment: {}", config.app_env)
    logger.debug("Log level: {}", config.log_level)

    return logger
