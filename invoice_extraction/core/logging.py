"""
Loguru configuration shared by the API and the extraction services.

Services log with keyword context (``logger.info("msg", field=...)``);
the sink format renders that context from ``record["extra"]``.
"""

import sys
from loguru import logger
from .config import settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
    "<level>{message}</level> {extra}"
)


def setup_logging(level: str | None = None):
    """Replace the default loguru sink with a stderr sink at the configured level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=(level or settings.log_level).upper(),
        format=LOG_FORMAT,
        backtrace=False,
        diagnose=settings.app_env == "dev",
    )
    logger.debug("Logging configured", app=settings.app_name, env=settings.app_env)
    return logger
