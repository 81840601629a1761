# src/repokit/core/logging/filters.py
"""
Logging filters

Request ID filter and helpers for logging.

- The request id lives in a `contextvars.ContextVar` so it survives `await`
  boundaries and stays isolated per request under asyncio.
- `RequestIdFilter` guarantees every record has a `request_id` attribute (the
  real id or the sentinel "-"), so formatters referencing `%(request_id)s`
  never KeyError.
- `RedactFilter` masks record attributes with sensitive names. Repository log
  events only carry key names, this is a second line for application code.

Both filters return True: they annotate records, they never drop them.

Usage in dictConfig (see builder.py):

    "filters": {"request_id": {"()": RequestIdFilter}},
    "handlers": {"console": {"class": "logging.StreamHandler", "filters": ["request_id"], ...}}
"""

import contextvars
import logging
from logging import LogRecord

# Default None means "no request id set" (CLI, startup code, background jobs).
_request_id_ctx: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)


def set_request_id(request_id: str | None):
    """
    Set the request id in the current context and return the token to allow reset.
    """
    return _request_id_ctx.set(request_id)


def reset_request_id(token) -> None:
    _request_id_ctx.reset(token)


def get_request_id() -> str | None:
    return _request_id_ctx.get()


class RequestIdFilter(logging.Filter):
    """
    Sets `record.request_id` to, in order: an explicit `extra={"request_id": ...}`,
    the contextvar value, or "-".
    """

    def filter(self, record: LogRecord) -> bool:
        record.request_id = (
            getattr(record, "request_id", None) or get_request_id() or "-"
        )
        return True


class RedactFilter(logging.Filter):
    """Replace the value of any record attribute named like a secret."""

    SENSITIVE = {"password", "secret", "token", "access_token", "refresh_token", "ssn", "authorization"}
    MASK = "***REDACTED***"

    def filter(self, record: LogRecord) -> bool:
        for key in list(record.__dict__.keys()):
            if key.lower() in self.SENSITIVE:
                record.__dict__[key] = self.MASK
        return True
