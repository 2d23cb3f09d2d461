"""Fixtures for integration tests.

These tests run the repositories and the database-backed stores against an
in-memory SQLite database (aiosqlite), one fresh database per test.

To run integration tests:
    uv run pytest tests/integration -v

To run only unit tests:
    uv run pytest tests/unit -v
"""

from collections.abc import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


def pytest_collection_modifyitems(config, items):
    """Auto-mark all tests in this directory as integration tests."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for each test."""
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
