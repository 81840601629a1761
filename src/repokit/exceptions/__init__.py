# repokit/
# │
# ├── exceptions/
# │   ├── __init__.py
# │   ├── base.py      # public errors (RepositoryError, NotFoundError, ValidationError, ...)
# │   └── mapper.py    # IntegrityError classification + db_error_handler

from .base import (
    RepositoryError,
    NotFoundError,
    DuplicateError,
    InvalidFieldError,
    ValidationError,
    RepositoryConfigurationError,
)
from .mapper import db_error_handler, read_error_handler

__all__ = [
    "RepositoryError",
    "NotFoundError",
    "DuplicateError",
    "InvalidFieldError",
    "ValidationError",
    "RepositoryConfigurationError",
    "db_error_handler",
    "read_error_handler",
]
