"""
FastAPI dependency providers.

    PostRepo = Annotated[PostRepository, Depends(provide_repository(PostRepository))]

    @router.post("/posts")
    async def create_post(payload: dict, repo: PostRepo, db: AsyncSession = Depends(get_db_session)):
        post = await repo.create(payload)
        await db.commit()
        return post

FastAPI caches dependencies per request, so the route and the repository share
one session.
"""
from functools import lru_cache
from typing import AsyncGenerator, Callable, TypeVar

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from repokit.database.session import get_async_session
from repokit.validation.validator import ValidationFactory

RepositoryType = TypeVar("RepositoryType")


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_async_session():
        yield session


@lru_cache()
def get_validation_factory() -> ValidationFactory:
    # one factory per process so rules registered with `extend` are shared
    return ValidationFactory()


def provide_repository(repository_class: Callable[..., RepositoryType]) -> Callable[..., RepositoryType]:
    """Build a dependency that instantiates `repository_class` for the current request."""

    def dependency(
        db: AsyncSession = Depends(get_db_session),
        validation: ValidationFactory = Depends(get_validation_factory),
    ) -> RepositoryType:
        return repository_class(db, validation)

    return dependency
