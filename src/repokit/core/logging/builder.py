# src/repokit/core/logging/builder.py
"""
Logging builder: create and apply a dictConfig logging configuration.

    setup_logging(get_settings())

`make_dict_config(settings)` is pure (easy to assert on in tests);
`setup_logging(settings)` creates LOG_DIR when file logging is on and applies
the config.

Handler layout:
  - console: always; JSON or colored text depending on LOG_FORMAT.
  - file + error_file: when LOG_TO_STDOUT is false and LOG_DIR is set.
  - error_console: otherwise, so errors are also emitted as JSON.

The `repokit` logger has no handlers of its own: repository events propagate to
the root handlers, so they share the request id and redaction filters.

Settings used: LOG_FORMAT, LOG_LEVEL, LOG_TO_STDOUT, LOG_DIR, LOG_MAX_BYTES,
LOG_BACKUP_COUNT, ENABLE_SQL_LOGGING, ENV. Any object with these attributes
works, which keeps tests free of environment variables.
"""

import logging
import logging.config
from pathlib import Path

from repokit.utils.logging import get_project_name

from .filters import RedactFilter, RequestIdFilter
from .formatters import ColorFormatter, JsonFormatter
from .handlers import (
    get_console_handler,
    get_error_console_handler,
    get_error_file_handler,
    get_file_handler,
)


def _writes_files(settings) -> bool:
    return (not settings.LOG_TO_STDOUT) and bool(settings.LOG_DIR)


def _repository_level(settings) -> str:
    # repo.all.success and repo.paginate.success are DEBUG events; production caps them at INFO
    if settings.ENV == "production" and settings.LOG_LEVEL == "DEBUG":
        return "INFO"
    return settings.LOG_LEVEL


def _logger_entry(level: str, handlers: list[str], propagate: bool = False) -> dict:
    return {"level": level, "handlers": list(handlers), "propagate": propagate}


def make_dict_config(settings) -> dict:
    formatters = {
        "standard": {
            "()": ColorFormatter if settings.LOG_FORMAT == "text" else logging.Formatter,
            "format": "%(asctime)s | %(levelname)s | %(name)s | %(request_id)s | %(message)s",
        },
        "json": {
            "()": JsonFormatter,
            "env": settings.ENV,
            "service": get_project_name(),
        },
    }

    filters = {
        "request_id": {"()": RequestIdFilter},
        "redact": {"()": RedactFilter},
    }

    handlers: dict[str, dict] = {"console": get_console_handler(settings)}
    if _writes_files(settings):
        handlers["file"] = get_file_handler(settings)
        handlers["error_file"] = get_error_file_handler(settings)
    else:
        handlers["error_console"] = get_error_console_handler(settings)

    everywhere = list(handlers)
    loggers = {
        "": {"handlers": everywhere, "level": settings.LOG_LEVEL},
        # repository events (repo.create.success, repo.find.not_found, ...) reach the root handlers
        "repokit": _logger_entry(_repository_level(settings), [], propagate=True),
        "uvicorn.error": _logger_entry(settings.LOG_LEVEL, everywhere),
        "uvicorn.access": _logger_entry("INFO", ["console"]),
        "sqlalchemy.engine": _logger_entry("DEBUG" if settings.ENABLE_SQL_LOGGING else "WARNING", ["console"]),
    }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": filters,
        "handlers": handlers,
        "loggers": loggers,
    }


def setup_logging(settings) -> None:
    if _writes_files(settings):
        Path(settings.LOG_DIR).mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(make_dict_config(settings))

    # safety net for records emitted through handlers added later (e.g. pytest's caplog)
    logging.getLogger().addFilter(RequestIdFilter())
