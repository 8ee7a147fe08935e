"""
Logging for the Study Assistant API.

Three rotating files sit under ``settings.log_dir``: everything, errors only,
and the ingestion trail (one line per pipeline stage per upload). Request and
stage lines share a ``key=value`` field format so a single upload can be
followed by grepping ``user=<id>``.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(filename)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

INGESTION_LOGGER = "study_assistant.ingestion"
REQUEST_LOGGER = "study_assistant.requests"

# Libraries that are chatty at DEBUG and add nothing to an upload trail
_QUIET_LOGGERS = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "anthropic": logging.WARNING,
    "multipart": logging.WARNING,
    "python_multipart": logging.WARNING,
    "PyPDF2": logging.ERROR,
}


def _rotating_handler(path: Path, level: int, max_bytes: int, backup_count: int) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    return handler


def resolve_log_level(log_level: str, environment: str) -> int:
    """Explicit level wins; otherwise DEBUG in development and WARNING in production."""
    if not log_level:
        log_level = "WARNING" if environment == "production" else "DEBUG"
    return getattr(logging, log_level.upper(), logging.INFO)


def setup_logging(
    app_name: str = "study_assistant",
    log_level: str = "",
    environment: str = "development",
    enable_console: bool = True,
    enable_file: bool = True,
    log_dir: str = "logs",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure the root logger and the ingestion trail.

    Args:
        app_name: Prefix for the log file names
        log_level: Console level; empty picks one from ``environment``
        environment: development or production
        enable_console: Log to stdout
        enable_file: Write rotating files under ``log_dir``
        log_dir: Directory for the log files
        max_bytes: Rotation size per file
        backup_count: Rotated files kept per log

    Returns:
        The configured root logger
    """
    numeric_level = resolve_log_level(log_level, environment)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    if enable_console:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(numeric_level)
        console.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        root_logger.addHandler(console)

    ingestion_logger = logging.getLogger(INGESTION_LOGGER)
    ingestion_logger.handlers.clear()

    if enable_file:
        directory = Path(log_dir)
        root_logger.addHandler(_rotating_handler(directory / f"{app_name}.log", logging.DEBUG, max_bytes, backup_count))
        root_logger.addHandler(_rotating_handler(directory / f"{app_name}_error.log", logging.ERROR, max_bytes, backup_count))
        # Stage lines also propagate to the main log
        ingestion_logger.addHandler(
            _rotating_handler(directory / f"{app_name}_ingestion.log", logging.INFO, max_bytes, backup_count)
        )

    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def format_fields(**fields) -> str:
    """``key=value`` pairs joined with `` | ``; None values are skipped."""
    return " | ".join(f"{key}={value}" for key, value in fields.items() if value is not None)


class StageLogger:
    """Writes one line per ingestion stage.

    Rejections (client errors) are warnings and failures are errors, so the
    error log holds only the uploads that broke on our side.
    """

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(INGESTION_LOGGER)

    def log_stage(self, stage: str, user_id: int, exc_info: bool = False, **fields) -> None:
        message = f"Ingestion {stage} | " + format_fields(user=user_id, **fields)
        if stage == "failed":
            self.logger.error(message, exc_info=exc_info)
        elif stage == "rejected":
            self.logger.warning(message)
        else:
            self.logger.info(message)


class RequestLogger:
    """Helper class for logging HTTP requests."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(REQUEST_LOGGER)

    def log_request(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_ms: float,
        client_ip: str | None = None,
        user_id: int | None = None,
        **fields,
    ):
        """Log an HTTP request; extra fields (e.g. upload size) are appended as key=value."""
        extra = format_fields(ip=client_ip, user=user_id, **fields)
        message = f"{method} {path} -> {status_code} ({duration_ms:.2f}ms)" + (f" | {extra}" if extra else "")

        if status_code >= 500:
            self.logger.error(message)
        elif status_code == 429:
            self.logger.warning(message + " | rate_limited=true")
        elif status_code >= 400:
            self.logger.warning(message)
        else:
            self.logger.info(message)
