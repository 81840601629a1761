"""
Custom exceptions raised by the repository layer.

Every public error derives from `RepositoryError` so callers (services, FastAPI
handlers, tests) can catch one type and still inspect `error_code`, `fields`
and, for validation failures, the per-field `errors` mapping.

Subclasses only declare their canonical `code`; the HTTP status is looked up
from it, so a bare `RepositoryError(..., error_code="invalid_input")` renders
exactly like the dedicated subclass would:

    NotFoundError("Post not found", fields=["id"]).http_status()   # 404
    NotFoundError("Post not found", fields=["id"]).to_payload()
    # {"detail": "Post not found", "code": "not_found", "fields": ["id"]}
"""

from typing import Iterable, Mapping


class RepositoryError(Exception):
    """
    Base exception for repository errors.

    - message: human-friendly message (safe to show to clients)
    - fields: optional list of field names related to the error (e.g., ['email'])
    - constraint: optional DB constraint name (for logs only)
    - error_code: canonical short code (e.g., 'duplicate', 'invalid_field') used by clients
    """

    code: str | None = None
    default_message = "Repository error"

    # canonical error_code -> default HTTP status; anything else is a 400
    ERROR_CODE_TO_STATUS = {
        "duplicate": 409,
        "invalid_field": 422,
        "not_found": 404,
        "invalid_input": 422,
        "configuration": 500,
    }

    def __init__(self, message: str | None = None, *, fields: Iterable[str] | None = None,
                 constraint: str | None = None, error_code: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)
        self.fields = list(fields) if fields else None
        self.constraint = constraint
        self.error_code = error_code or self.code

    def __str__(self) -> str:
        details = []
        if self.fields:
            details.append("fields: " + ", ".join(self.fields))
        if self.constraint:
            details.append("constraint: " + self.constraint)
        if self.error_code:
            details.append("code: " + self.error_code)
        return f"{self.message} ({'; '.join(details)})" if details else self.message

    def to_payload(self) -> dict:
        """
        JSON body for HTTP responses: `detail`, plus `code` and `fields` when set.
        The constraint name stays out of the payload.
        """
        payload = {"detail": self.message}
        if self.error_code:
            payload["code"] = self.error_code
        if self.fields:
            payload["fields"] = list(self.fields)
        return payload

    def http_status(self) -> int:
        return self.ERROR_CODE_TO_STATUS.get(self.error_code, 400) if self.error_code else 400


class NotFoundError(RepositoryError):
    code = "not_found"
    default_message = "Not found"


class DuplicateError(RepositoryError):
    code = "duplicate"
    default_message = "Duplicate entry"


class InvalidFieldError(RepositoryError):
    """Raised when the caller passes attribute or filter names the model does not define."""

    code = "invalid_field"
    default_message = "Unknown field"


class ValidationError(RepositoryError):
    """
    Raised when attributes fail the repository's validation rules.

    `errors` maps each failing field to its list of messages, in rule order:
        {"title": ["The title field is required."]}
    """

    code = "invalid_input"
    default_message = "The given data was invalid."

    def __init__(self, errors: Mapping[str, list[str]], message: str | None = None):
        self.errors = {field: list(messages) for field, messages in errors.items()}
        super().__init__(message, fields=sorted(self.errors))

    def to_payload(self) -> dict:
        return {**super().to_payload(), "errors": self.errors}


class RepositoryConfigurationError(RepositoryError):
    """
    Raised when a repository is wired incorrectly: its `model` does not resolve to a
    mapped SQLAlchemy class, or its rule set names a rule that does not exist.
    Nothing has touched the database when this is raised.
    """

    code = "configuration"
    default_message = "Repository is misconfigured"


__all__ = [
    "RepositoryError",
    "NotFoundError",
    "DuplicateError",
    "InvalidFieldError",
    "ValidationError",
    "RepositoryConfigurationError",
]
