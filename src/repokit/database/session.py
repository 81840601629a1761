"""
Engine and session factory built from settings.

    async with AsyncSessionMaker() as session:
        repo = PostRepository(session)
        await repo.create({...})
        await session.commit()

Applications that manage their own engine only need an `AsyncSession`; nothing
in the repository layer imports this module.
"""
from typing import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from repokit.config.settings import Settings, get_settings


def make_engine(settings: Settings) -> AsyncEngine:
    options = {"echo": settings.SQLALCHEMY_ECHO}
    if make_url(settings.DATABASE_URL).get_backend_name() == "sqlite":
        # aiosqlite runs the connection in a worker thread
        options["connect_args"] = {"check_same_thread": False}
    else:
        options["pool_pre_ping"] = True
    return create_async_engine(settings.DATABASE_URL, **options)


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # entities returned by repositories stay readable after the caller commits
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


engine: AsyncEngine = make_engine(get_settings())
AsyncSessionMaker = make_sessionmaker(engine)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield one session and close it afterwards (see `repokit.core.dependencies.get_db_session`)."""
    async with AsyncSessionMaker() as session:
        yield session
