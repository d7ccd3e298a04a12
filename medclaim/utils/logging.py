"""
Logging Configuration
Structured logging with loguru
Source: https://github.com/Delgan/loguru

Every record carries ``environment`` and ``backend`` extras taken from the
settings, so demo and live sessions can be told apart in a shared log.
"""

import sys
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from medclaim.core.config import Settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[environment]}/{extra[backend]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[environment]}/{extra[backend]} | "
    "{name}:{function}:{line} - {message}"
)

# Signature of the configuration currently installed
_active_config: Optional[tuple[Any, ...]] = None


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    json_logs: bool = False,
    environment: str = "development",
    backend: str = "demo",
    force: bool = False,
) -> bool:
    """
    Configure application logging.

    Streamlit re-executes the app script for every session and interaction;
    a call with the configuration already installed is a no-op unless
    ``force`` is set. Returns whether the handlers were (re)installed.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        json_logs: Whether to output JSON format (useful for production)
        environment: Deployment environment bound to every record
        backend: Backend mode bound to every record

    Source: https://loguru.readthedocs.io/en/stable/api/logger.html#loguru._logger.Logger.configure
    """
    global _active_config

    signature = (level.upper(), log_file, json_logs, environment, backend)
    if signature == _active_config and not force:
        return False

    handlers: list[dict[str, Any]] = []
    if json_logs:
        handlers.append({"sink": sys.stderr, "format": "{message}", "level": level, "serialize": True})
    else:
        handlers.append({"sink": sys.stderr, "format": CONSOLE_FORMAT, "level": level, "colorize": True})

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            {
                "sink": log_file,
                "rotation": "100 MB",
                "retention": "30 days",
                "compression": "zip",
                "format": FILE_FORMAT,
                "level": level,
                "serialize": json_logs,
            }
        )

    logger.configure(handlers=handlers, extra={"environment": environment, "backend": backend})
    _active_config = signature
    logger.info(f"Logging configured: level={level}, json_logs={json_logs}, file={log_file or '-'}")
    return True


def setup_logging_from_settings(settings: Settings, force: bool = False) -> bool:
    """Configure logging from application settings."""
    return setup_logging(
        level=settings.LOG_LEVEL,
        log_file=settings.LOG_FILE,
        json_logs=settings.JSON_LOGS,
        environment=settings.ENVIRONMENT,
        backend=settings.BACKEND_MODE.value,
        force=force,
    )


def mask_email(email: str) -> str:
    """
    Shorten an address for log output.

    >>> mask_email("asha@medclaim.in")
    'a***@medclaim.in'
    """
    local, sep, domain = email.strip().partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"


def get_logger(name: str = __name__):  # type: ignore[no-untyped-def]
    """
    Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance

    Example:
        >>> from medclaim.utils.logging import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Claims fetched")
    """
    return logger.bind(name=name)
