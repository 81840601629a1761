"""
Model-side soft deletes.

Models that mix in `SoftDeleteMixin` get a nullable `deleted_at` column. A session
level `do_orm_execute` listener adds `deleted_at IS NULL` to every ORM SELECT that
touches such a model (including relationship loads), unless the statement carries
the `include_trashed` execution option:

    select(Post)                                               # live rows only
    select(Post).execution_options(include_trashed=True)       # live + trashed

The repository mixin (`repokit.repositories.soft_deletes.SoftDeletes`) builds on
this: `with_trashed()` is nothing more than a scope that sets that option.

The listener is registered on the `Session` class, which also covers the sync
session that every `AsyncSession` wraps.
"""
from datetime import datetime, timezone

from sqlalchemy import DateTime, event
from sqlalchemy.orm import Mapped, Session, mapped_column, with_loader_criteria

INCLUDE_TRASHED = "include_trashed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SoftDeleteMixin:
    """
    Adds `deleted_at` and helpers to a declarative model:

        class Post(SoftDeleteMixin, Base):
            __tablename__ = "posts"
            ...
    """

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
        index=True,
    )

    @property
    def trashed(self) -> bool:
        return self.deleted_at is not None

    def mark_deleted(self) -> None:
        self.deleted_at = utcnow()

    def mark_restored(self) -> None:
        self.deleted_at = None


def exclude_trashed(statement):
    """Attach the `deleted_at IS NULL` loader criteria to a top-level ORM `statement`."""
    return statement.options(
        with_loader_criteria(
            SoftDeleteMixin,
            lambda cls: cls.deleted_at.is_(None),
            include_aliases=True,
        )
    )


@event.listens_for(Session, "do_orm_execute")
def _exclude_trashed_rows(execute_state) -> None:
    if (
        execute_state.is_select
        and not execute_state.is_column_load
        and not execute_state.is_relationship_load
        and not execute_state.execution_options.get(INCLUDE_TRASHED, False)
    ):
        execute_state.statement = exclude_trashed(execute_state.statement)
