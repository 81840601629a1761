"""
Lifecycle hooks for repositories.

`BaseRepository` inherits `RepositoryHooks`; subclasses override only the hooks
they need. Every hook is a no-op by default and runs exactly once at its point
in the operation:

    create:   before_create(attributes)          -> validate -> persist -> after_create(entity, attributes)
    update:   lookup -> before_update(entity, attributes) -> validate -> persist -> after_update(entity, attributes)
    delete:   lookup -> before_delete(entity)     -> delete   -> after_delete(entity, deleted)
    restore:  lookup -> before_restore(entity)    -> restore  -> after_restore(entity)

Hooks may be coroutines or plain methods. Exceptions raised by a hook propagate
unchanged and abort the operation.
"""
import inspect
from typing import Any


class RepositoryHooks:
    def boot(self) -> None:
        """Called once, at the end of the repository's constructor."""

    async def before_create(self, attributes: dict[str, Any]) -> None:
        """`attributes` may be mutated in place; validation sees the result."""

    async def after_create(self, entity: Any, attributes: dict[str, Any]) -> None:
        pass

    async def before_update(self, entity: Any, attributes: dict[str, Any]) -> None:
        pass

    async def after_update(self, entity: Any, attributes: dict[str, Any]) -> None:
        pass

    async def before_delete(self, entity: Any) -> None:
        pass

    async def after_delete(self, entity: Any, deleted: bool) -> None:
        pass

    async def before_restore(self, entity: Any) -> None:
        pass

    async def after_restore(self, entity: Any) -> None:
        pass


async def call_hook(hook, *args: Any) -> None:
    """Invoke a hook, awaiting the result when the override returned an awaitable."""
    result = hook(*args)
    if inspect.isawaitable(result):
        await result
