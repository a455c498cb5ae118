"""Session factories for the access-control services.

Provides a lazily created write engine and sessionmaker, plus an async
context manager that yields a fresh session. Bulk provisioning opens one
session per item through this factory.
"""

from __future__ import annotations

import threading
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from infrastructure.database.engines import create_write_engine
from infrastructure.observability import DefaultConnectionProbe
from infrastructure.settings import get_database_settings

_probe = DefaultConnectionProbe()

_Bindings = tuple[AsyncEngine, async_sessionmaker[AsyncSession]]

_bindings: _Bindings | None = None
_init_lock = threading.Lock()


def _get_bindings() -> _Bindings:
    """Return the engine and its sessionmaker, creating both on first use.

    They are built together under a lock so concurrent first callers share
    one pool.
    """
    global _bindings
    bindings = _bindings
    if bindings is not None:
        return bindings

    with _init_lock:
        bindings = _bindings
        if bindings is None:
            settings = get_database_settings()
            engine = create_write_engine(settings)
            bindings = (
                engine,
                async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False),
            )
            _bindings = bindings
            _probe.engine_created(
                connection_string=settings.connection_string,
                pool_size=settings.pool_max_connections,
            )
    return bindings


def get_write_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it on first use."""
    return _get_bindings()[0]


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Return the sessionmaker bound to the write engine."""
    return _get_bindings()[1]


@asynccontextmanager
async def write_session() -> AsyncIterator[AsyncSession]:
    """Yield a new session and close it on exit.

    Nothing is committed here; services own the transaction with
    ``async with session.begin()``.
    """
    async with get_sessionmaker()() as session:
        yield session


async def close_database_connections() -> None:
    """Dispose the engine so the next caller builds a fresh one."""
    global _bindings

    if _bindings is None:
        return
    engine, _ = _bindings
    _bindings = None
    await engine.dispose()
    _probe.engine_disposed()
