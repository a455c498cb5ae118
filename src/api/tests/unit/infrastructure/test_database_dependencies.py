"""Unit tests for database session factories."""

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from infrastructure.database.dependencies import (
    close_database_connections,
    get_sessionmaker,
    get_write_engine,
    write_session,
)


def test_get_write_engine():
    """Test that get_write_engine returns an AsyncEngine."""
    engine = get_write_engine()

    assert isinstance(engine, AsyncEngine)
    assert engine.url.drivername == "postgresql+asyncpg"


def test_engine_is_singleton():
    """Test that the engine is cached and reused."""
    assert get_write_engine() is get_write_engine()


def test_sessionmaker_keeps_objects_after_commit():
    maker = get_sessionmaker()

    assert maker.kw["expire_on_commit"] is False


@pytest.mark.asyncio
async def test_write_session_yields_session_on_write_engine():
    """Test that write_session yields an AsyncSession bound to the engine."""
    engine = get_write_engine()

    async with write_session() as session:
        assert isinstance(session, AsyncSession)
        assert session.bind.sync_engine is engine.sync_engine


@pytest.mark.asyncio
async def test_each_write_session_is_new():
    async with write_session() as first:
        pass
    async with write_session() as second:
        pass

    assert first is not second


@pytest.mark.asyncio
async def test_close_database_connections():
    """Test that close_database_connections disposes the engine."""
    engine = get_write_engine()

    await close_database_connections()

    assert get_write_engine() is not engine

    # Cleanup
    await close_database_connections()


@pytest.mark.asyncio
async def test_sessionmaker_builds_engine_on_first_use():
    await close_database_connections()

    maker = get_sessionmaker()

    assert maker.kw["bind"] is get_write_engine()

    await close_database_connections()


@pytest.mark.asyncio
async def test_sessionmaker_is_rebuilt_after_close():
    first = get_sessionmaker()

    await close_database_connections()
    second = get_sessionmaker()

    assert second is not first
    assert second.kw["bind"] is get_write_engine()
    assert first.kw["bind"] is not get_write_engine()

    await close_database_connections()
