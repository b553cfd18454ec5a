"""Integration test fixtures (require PostgreSQL)."""

from __future__ import annotations

import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy import text

from cadence.core.models.database import DatabaseConfig
from cadence.core.storage.postgres import PostgresJobRepository

DB_URL = os.environ.get('CADENCE_TEST_DATABASE_URL')


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests when no database is configured."""
    if DB_URL:
        return
    skip = pytest.mark.skip(reason='CADENCE_TEST_DATABASE_URL not set')
    for item in items:
        if 'integration' in item.keywords:
            item.add_marker(skip)


@pytest.fixture(scope='session')
def db_url() -> str:
    """Database connection URL."""
    assert DB_URL is not None
    return DB_URL


@pytest.fixture
def db_config(db_url: str) -> DatabaseConfig:
    return DatabaseConfig(database_url=db_url)


@pytest_asyncio.fixture
async def repository(
    db_config: DatabaseConfig,
) -> AsyncGenerator[PostgresJobRepository, None]:
    """Repository over clean tables."""
    repo = PostgresJobRepository(db_config)
    await repo.ensure_schema()
    async with repo.async_engine.begin() as conn:
        await conn.execute(text('TRUNCATE cadence_jobs, cadence_executions'))
    yield repo
    await repo.close()
