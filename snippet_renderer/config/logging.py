"""
Logging Configuration
=====================

structlog over the standard library. Renderer components log key/value events
(``job=...``, ``component=...``); the processor chain and output format depend
on the environment:

- development: colored console output when debug is on
- testing: console only, nothing written to disk
- production: JSON lines, also written to rotating files under ``storage_path/logs``
"""

import logging
import logging.config
import sys
from pathlib import Path
from typing import Any, Dict, List, TYPE_CHECKING

import structlog
from structlog.types import Processor

from .settings import get_settings

if TYPE_CHECKING:
    from .settings import Settings

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

# Third-party and renderer loggers that stay quieter than the root level.
QUIET_LOGGERS = {
    "playwright": "WARNING",
    "asyncio": "WARNING",
    "PIL": "INFO",
}


def log_directory(settings: "Settings") -> Path:
    return Path(settings.storage_path) / "logs"


def _writes_log_files(settings: "Settings") -> bool:
    return settings.environment != "testing"


def build_processors(settings: "Settings") -> List[Processor]:
    """structlog processor chain ending in the environment's renderer."""
    processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.environment == "production":
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso", utc=True))
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=settings.debug))
    return processors


def _rotating_file(path: Path, level: str) -> Dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": "detailed",
        "filename": str(path),
        "maxBytes": LOG_FILE_MAX_BYTES,
        "backupCount": LOG_FILE_BACKUPS,
        "encoding": "utf-8",
    }


def build_handlers(settings: "Settings") -> Dict[str, Dict[str, Any]]:
    """Console handler always; rotating app and error logs outside testing."""
    handlers: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": settings.log_level,
            "formatter": "json" if settings.environment == "production" else "standard",
            "stream": sys.stdout,
        },
    }

    if _writes_log_files(settings):
        directory = log_directory(settings)
        handlers["file"] = _rotating_file(directory / "app.log", settings.log_level)
        handlers["error_file"] = _rotating_file(directory / "error.log", "ERROR")
    return handlers


def get_logging_config(settings: "Settings") -> Dict[str, Any]:
    """dictConfig for the standard library side of logging."""
    handlers = build_handlers(settings)

    loggers: Dict[str, Dict[str, Any]] = {
        "": {
            "level": settings.log_level,
            "handlers": list(handlers),
            "propagate": False,
        },
    }
    for name, level in QUIET_LOGGERS.items():
        loggers[name] = {"level": level, "handlers": ["console"], "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {
                "()": "pythonjsonlogger.json.JsonFormatter",
                "format": "%(asctime)s %(name)s %(levelname)s %(message)s",
            },
        },
        "handlers": handlers,
        "loggers": loggers,
    }


def ensure_log_directories() -> None:
    """Create the log directory when file handlers are in use."""
    settings = get_settings()
    if _writes_log_files(settings):
        log_directory(settings).mkdir(parents=True, exist_ok=True)


def setup_logging() -> None:
    """Configure structlog and the standard library from the current settings."""
    settings = get_settings()
    structlog.configure(
        processors=build_processors(settings),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.config.dictConfig(get_logging_config(settings))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


ensure_log_directories()
setup_logging()
