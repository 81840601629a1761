# repokit/api/error_handlers.py
"""
FastAPI exception handlers that map repository exceptions to HTTP responses.

Repositories raise `repokit.exceptions.base.*`; these handlers only log and
serialize. Status codes and payloads live on the exception classes
(`http_status()` / `to_payload()`), so the handlers stay tiny:

    app = FastAPI()
    register_exception_handlers(app)

A failed validation answers 422 with the per-field messages:

    {"detail": "The given data was invalid.", "code": "invalid_input",
     "fields": ["title"], "errors": {"title": ["The title field is required."]}}
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from repokit.exceptions.base import (
    DuplicateError,
    InvalidFieldError,
    NotFoundError,
    RepositoryConfigurationError,
    RepositoryError,
    ValidationError,
)

logger = logging.getLogger(__name__)


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    logger.info("ValidationError for %s %s: fields=%s", request.method, request.url.path, exc.fields)
    return JSONResponse(status_code=exc.http_status(), content=exc.to_payload())


async def duplicate_error_handler(request: Request, exc: DuplicateError) -> JSONResponse:
    # constraint names stay in logs, never in the payload
    logger.info("DuplicateError for %s %s: fields=%s", request.method, request.url.path, exc.fields)
    return JSONResponse(status_code=exc.http_status(), content=exc.to_payload())


async def invalid_field_handler(request: Request, exc: InvalidFieldError) -> JSONResponse:
    logger.info("InvalidFieldError for %s %s: fields=%s", request.method, request.url.path, exc.fields)
    return JSONResponse(status_code=exc.http_status(), content=exc.to_payload())


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    logger.info("NotFoundError for %s %s: fields=%s", request.method, request.url.path, exc.fields)
    return JSONResponse(status_code=exc.http_status(), content=exc.to_payload())


async def configuration_error_handler(request: Request, exc: RepositoryConfigurationError) -> JSONResponse:
    """A wiring bug, not a client error: log loudly, answer with a generic 500."""
    logger.error("RepositoryConfigurationError for %s %s: %s", request.method, request.url.path, str(exc))
    return JSONResponse(status_code=exc.http_status(), content={"detail": "Internal server error", "code": exc.error_code})


async def repository_error_handler(request: Request, exc: RepositoryError) -> JSONResponse:
    """Fallback: 400 unless the error code maps to another status."""
    logger.warning("RepositoryError for %s %s: %s", request.method, request.url.path, str(exc))
    return JSONResponse(status_code=exc.http_status(), content=exc.to_payload())


def register_exception_handlers(app) -> None:
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(DuplicateError, duplicate_error_handler)
    app.add_exception_handler(InvalidFieldError, invalid_field_handler)
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(RepositoryConfigurationError, configuration_error_handler)
    app.add_exception_handler(RepositoryError, repository_error_handler)
