"""
Logging configuration for the StudyVault API.
Console output plus rotating file logs capped at 10 MB.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Log directory
LOG_DIR = Path(__file__).parent.parent.parent / "logs"

# Log file settings
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5

# Log format
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(filename)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are too chatty at DEBUG
_NOISY_LOGGERS = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "anthropic": logging.WARNING,
    "botocore": logging.WARNING,
    "boto3": logging.WARNING,
    "apscheduler": logging.INFO,
}


def get_file_handler(filename: str, level: int = logging.DEBUG) -> RotatingFileHandler:
    """Create a rotating file handler inside LOG_DIR."""
    LOG_DIR.mkdir(exist_ok=True)
    handler = RotatingFileHandler(
        LOG_DIR / filename,
        maxBytes=MAX_LOG_SIZE,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    return handler


def get_console_handler(level: int = logging.INFO) -> logging.StreamHandler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    return handler


def resolve_log_level(log_level: str, environment: str) -> int:
    """Map a level name to a logging constant.

    An empty name picks WARNING in production and DEBUG everywhere else.
    Unknown names fall back to INFO.
    """
    if not log_level:
        log_level = "WARNING" if environment == "production" else "DEBUG"
    return getattr(logging, log_level.upper(), logging.INFO)


def setup_logging(
    app_name: str = "studyvault",
    log_level: str = "",
    environment: str = "development",
    enable_console: bool = True,
    enable_file: bool = True,
) -> logging.Logger:
    """
    Configure the root logger for the application.

    Args:
        app_name: Used for log file naming (<app_name>.log, <app_name>_error.log)
        log_level: Minimum console level; empty = decided by environment
        environment: Application environment (development, production)
        enable_console: Whether to log to stdout
        enable_file: Whether to write rotating log files

    Returns:
        Configured root logger
    """
    numeric_level = resolve_log_level(log_level, environment)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Handlers do the filtering
    root_logger.handlers.clear()

    if enable_console:
        root_logger.addHandler(get_console_handler(numeric_level))

    if enable_file:
        root_logger.addHandler(get_file_handler(f"{app_name}.log", logging.DEBUG))
        root_logger.addHandler(get_file_handler(f"{app_name}_error.log", logging.ERROR))

    for name, level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class RequestLogger:
    """Writes one line per HTTP request; level follows the status code."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def log_request(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_ms: float,
        client_ip: str = None,
        user_id: int = None,
    ):
        extra_info = []
        if client_ip:
            extra_info.append(f"ip={client_ip}")
        if user_id:
            extra_info.append(f"user={user_id}")
        extra_str = " | ".join(extra_info)

        line = f"{method} {path} -> {status_code} ({duration_ms:.2f}ms) {extra_str}".rstrip()
        if status_code >= 500:
            self.logger.error(line)
        elif status_code >= 400:
            self.logger.warning(line)
        else:
            self.logger.info(line)


class FrontendLogHandler:
    """Forwards log entries reported by the browser client."""

    _LEVELS = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warn": logging.WARNING,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def log(self, level: str, message: str, context: dict = None):
        """
        Log a message from the frontend.

        Args:
            level: debug, info, warn or error (anything else logs at INFO)
            message: Log message
            context: Extra key/values (url, user agent, ...)
        """
        context_str = ""
        if context:
            context_str = " | " + " | ".join(f"{k}={v}" for k, v in context.items())

        self.logger.log(
            self._LEVELS.get(level.lower(), logging.INFO),
            f"[FRONTEND] {message}{context_str}",
        )
