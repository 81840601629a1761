"""
Soft deletes for repositories.

Mix `SoftDeletes` in front of `BaseRepository` for models that use
`SoftDeleteMixin`:

    class PostRepository(SoftDeletes, BaseRepository[Post]):
        model = Post

    await repo.delete(post_id)               # stamps deleted_at
    await repo.with_trashed().all()          # live + trashed rows
    await repo.restore(post_id)              # clears deleted_at
    await repo.delete(post_id, force=True)   # removes the row
"""
import logging
import time
from typing import Any

from repokit.database.soft_deletes import INCLUDE_TRASHED, SoftDeleteMixin
from repokit.exceptions.base import RepositoryConfigurationError
from repokit.exceptions.mapper import db_error_handler
from .hooks import call_hook
from .base_repository import _elapsed_ms, resets_scope

logger = logging.getLogger(__name__)


class SoftDeletes:
    def make_model(self) -> type:
        model = super().make_model()
        if not issubclass(model, SoftDeleteMixin):
            raise RepositoryConfigurationError(
                f"{model.__name__} must use SoftDeleteMixin to be managed by a soft-deleting repository"
            )
        return model

    def with_trashed(self):
        """Include soft-deleted rows in the next terminal operation."""
        return self.scope_query(lambda q: q.execution_options(**{INCLUDE_TRASHED: True}))

    @resets_scope
    async def delete(self, id: Any, force: bool = False) -> bool:
        """
        Soft delete (or, with `force`, hard delete) the row `id`. Trashed rows are
        only found when `with_trashed()` was queued.
        """
        entity = await self._find_or_fail(self._build_query(), id, "delete")
        await call_hook(self.before_delete, entity)

        start = time.perf_counter()
        async with db_error_handler(self.db, self.model_name):
            if force:
                await self.db.delete(entity)
            else:
                entity.mark_deleted()
            await self.db.flush()

        logger.info(
            "repo.delete.success",
            extra={
                "model": self.model_name,
                "operation": "force_delete" if force else "soft_delete",
                "id": str(id),
                "duration_ms": _elapsed_ms(start),
            },
        )
        await call_hook(self.after_delete, entity, True)
        return True

    @resets_scope
    async def restore(self, id: Any) -> bool:
        """
        Clear `deleted_at` on row `id`. The lookup always includes trashed rows;
        restoring a live row is a no-op that still runs both hooks.
        """
        query = self._build_query().execution_options(**{INCLUDE_TRASHED: True})
        entity = await self._find_or_fail(query, id, "restore")
        await call_hook(self.before_restore, entity)

        start = time.perf_counter()
        async with db_error_handler(self.db, self.model_name):
            entity.mark_restored()
            await self.db.flush()
            await self.db.refresh(entity)

        logger.info(
            "repo.restore.success",
            extra={
                "model": self.model_name,
                "operation": "restore",
                "id": str(id),
                "duration_ms": _elapsed_ms(start),
            },
        )
        await call_hook(self.after_restore, entity)
        return True
