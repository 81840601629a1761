"""
repokit: async repositories for SQLAlchemy models.

    from repokit import BaseRepository, SoftDeletes

    class PostRepository(SoftDeletes, BaseRepository[Post]):
        model = Post

        def rules(self, entity=None):
            return {"title": "required|string|max:120"}
"""

from repokit.exceptions import (
    DuplicateError,
    InvalidFieldError,
    NotFoundError,
    RepositoryConfigurationError,
    RepositoryError,
    ValidationError,
)
from repokit.repositories import BaseRepository, Page, RepositoryHooks, SimplePage, SoftDeletes
from repokit.validation import BaseRules, ValidationFactory, Validator

__all__ = [
    "BaseRepository",
    "SoftDeletes",
    "RepositoryHooks",
    "Page",
    "SimplePage",
    "BaseRules",
    "ValidationFactory",
    "Validator",
    "RepositoryError",
    "NotFoundError",
    "DuplicateError",
    "InvalidFieldError",
    "ValidationError",
    "RepositoryConfigurationError",
]
