"""Process-wide async engine for the SQL provisioning store.

Celery workers create the engine lazily on first use; each task runs its
own event loop and releases pooled connections when it finishes.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from .config import DatabaseSettings

_async_engine: Optional[AsyncEngine] = None


def build_async_engine(settings: Optional[DatabaseSettings] = None) -> AsyncEngine:
    s = settings or DatabaseSettings()
    return create_async_engine(
        s.async_url,
        pool_size=s.pool_size,
        max_overflow=s.max_overflow,
        pool_timeout=s.pool_timeout,
        pool_pre_ping=True,
    )


def get_async_engine(settings: Optional[DatabaseSettings] = None) -> AsyncEngine:
    """Return the module-level engine, building it on first call."""
    global _async_engine
    if _async_engine is None:
        _async_engine = build_async_engine(settings)
    return _async_engine


async def dispose_engines() -> None:
    """Close pooled connections; the engine reconnects on next use."""
    if _async_engine is not None:
        await _async_engine.dispose()
