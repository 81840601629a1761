"""
Core pytest configuration for the entire test suite.

This module provides only the database setup and logging installation needed
across ALL tests. Domain fixtures (models, repositories, sample rows) live in:
- tests/test_fixtures/models.py
- tests/test_fixtures/repository_fixtures.py
"""

# -------------------------------
# Standard library imports
# -------------------------------
import logging
import os
from typing import AsyncGenerator
from urllib.parse import urlparse

# -------------------------------
# Early logging tuning (IMPORTANT)
# -------------------------------
# Silence noisy third-party loggers before importing modules that might initialize them.
NOISY_LOGGERS = (
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.engine.Engine",
    "aiosqlite",
    "asyncio",
    "httpx",
)
for _name in NOISY_LOGGERS:
    logging.getLogger(_name).setLevel(logging.WARNING)

# -------------------------------
# Third-party / project imports
# -------------------------------
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from repokit.config import get_settings
from repokit.core.logging.builder import setup_logging
from repokit.database.base import Base
from repokit.database.session import make_sessionmaker
from repokit.tests.test_fixtures import models  # noqa: F401 - registers test models with Base.metadata

settings = get_settings()
logger = logging.getLogger(__name__)


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """
    Install the application's dictConfig logging once for the whole session, so
    formatters and filters (request_id, redact) are active exactly as in the app.
    """
    setup_logging(settings)
    yield


# ------------------------------------------------------------------------------------------------
# Test database URL
# ------------------------------------------------------------------------------------------------

def safe_log_db_url(db_url: str) -> str:
    """Database URL without credentials, for logging."""
    parsed = urlparse(db_url)
    return f"{parsed.scheme}://{parsed.hostname or ''}:{parsed.port or ''}/{parsed.path.lstrip('/')}"


def get_test_database_url() -> str:
    """
    1. `TEST_DATABASE_URL` environment variable (CI override)
    2. otherwise a private in-memory SQLite database per test
    """
    return os.getenv("TEST_DATABASE_URL") or "sqlite+aiosqlite:///:memory:"


TEST_DATABASE_URL = get_test_database_url()
logger.info("Using test DB: %s", safe_log_db_url(TEST_DATABASE_URL))


# ------------------------------------------------------------------------------------------------
# DATABASE FIXTURES
# ------------------------------------------------------------------------------------------------

def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture()
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    One engine per test. Function scope keeps the engine on the test's own event
    loop; for in-memory SQLite a StaticPool shares the single connection so the
    schema created here is visible to the session.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            TEST_DATABASE_URL,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    else:
        engine = create_async_engine(TEST_DATABASE_URL, pool_pre_ping=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
async def db_session(async_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """
    Session bound to the per-test engine. Repositories only flush; whatever a
    test leaves uncommitted is rolled back here.
    """
    maker = make_sessionmaker(async_engine)
    async with maker() as session:
        yield session
        await session.rollback()


# Repository test fixtures
from .test_fixtures.repository_fixtures import (  # noqa: E402
    validation_factory,
    author_repo,
    post_repo,
    tag_repo,
    recording_post_repo,
    create_author,
    create_post,
    create_tag,
    author,
    published_posts,
)
