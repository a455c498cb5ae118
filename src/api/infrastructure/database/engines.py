"""Async SQLAlchemy engine factory.

The access-control services share one pooled write engine on the asyncpg
driver. Pool size is fixed at ``pool_max_connections`` so bulk
provisioning can never open more sessions than the database allows.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

if TYPE_CHECKING:
    from infrastructure.settings import DatabaseSettings

__all__ = [
    "build_async_url",
    "create_write_engine",
]

ASYNC_DRIVER = "postgresql+asyncpg"


def build_async_url(settings: DatabaseSettings) -> URL:
    """Build the asyncpg URL for the configured database.

    A ``URL`` object is returned rather than a string so credentials with
    reserved characters never need manual quoting.
    """
    return URL.create(
        drivername=ASYNC_DRIVER,
        username=settings.username,
        password=settings.password.get_secret_value() or None,
        host=settings.host,
        port=settings.port,
        database=settings.database,
    )


def create_write_engine(settings: DatabaseSettings) -> AsyncEngine:
    """Create the pooled engine used for every read and write.

    Args:
        settings: Database connection settings

    Returns:
        Async engine with a strict pool (no overflow) and pre-ping enabled
    """
    return create_async_engine(
        build_async_url(settings),
        pool_size=settings.pool_max_connections,
        max_overflow=0,
        pool_pre_ping=True,
        echo=settings.echo,
    )
