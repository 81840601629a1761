import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from repokit.config.settings import Settings
from repokit.database.session import get_async_session, make_engine, make_sessionmaker


@pytest.mark.asyncio
class TestSessionFactory:

    async def test_sqlite_engine_from_settings(self):
        engine = make_engine(Settings(DATABASE_URL="sqlite+aiosqlite:///:memory:"))
        try:
            async with make_sessionmaker(engine)() as session:
                assert (await session.execute(text("SELECT 1"))).scalar_one() == 1
        finally:
            await engine.dispose()

        assert engine.dialect.name == "sqlite"

    async def test_sessions_do_not_expire_on_commit(self, async_engine):
        maker = make_sessionmaker(async_engine)
        assert maker.kw["expire_on_commit"] is False

    async def test_get_async_session_yields_and_closes(self):
        sessions = get_async_session()
        session = await sessions.__anext__()
        assert isinstance(session, AsyncSession)
        await sessions.aclose()
