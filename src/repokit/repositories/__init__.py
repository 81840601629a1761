"""
Repository layer.

    from repokit.repositories import BaseRepository, SoftDeletes
"""

from .base_repository import BaseRepository, resets_scope
from .hooks import RepositoryHooks
from .pagination import Page, SimplePage
from .soft_deletes import SoftDeletes

__all__ = [
    "BaseRepository",
    "RepositoryHooks",
    "SoftDeletes",
    "Page",
    "SimplePage",
    "resets_scope",
]
