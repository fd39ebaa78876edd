import asyncio
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Callable, NamedTuple

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
)

from .. import config

Gated = Callable[[], AsyncContextManager[None]]

SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA busy_timeout=5000;",
    "PRAGMA synchronous=NORMAL;",
)

_ASYNC_DRIVERS = (
    ("sqlite://", "sqlite+aiosqlite://"),
    ("postgresql://", "postgresql+asyncpg://"),
    ("postgres://", "postgresql+asyncpg://"),  # Heroku-style
)


class SqlHandles(NamedTuple):
    engine: AsyncEngine
    sessions: async_sessionmaker
    gated: Gated


def normalize_async_url(url: str) -> str:
    for prefix, replacement in _ASYNC_DRIVERS:
        if url.startswith(prefix):
            return replacement + url[len(prefix):]
    return url


def make_gate(limit: int) -> Gated:
    """``async with gated(): ...`` admits at most ``limit`` callers."""
    sem = asyncio.Semaphore(max(1, limit))

    @asynccontextmanager
    async def gated() -> AsyncIterator[None]:
        async with sem:
            yield

    return gated


def _install_sqlite_pragmas(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _):
        cur = dbapi_connection.cursor()
        for pragma in SQLITE_PRAGMAS:
            cur.execute(pragma)
        cur.close()


def make_async_engine(database_url: str) -> SqlHandles:
    """Engine, session factory and a gate sized to the connection pool.

    Requests queue on the gate instead of timing out inside the pool.
    """
    url = normalize_async_url(database_url)
    is_sqlite = url.startswith("sqlite+aiosqlite://")

    kw = dict(pool_pre_ping=True)
    if not is_sqlite:
        kw.update(
            pool_size=config.DB_POOL_SIZE,
            max_overflow=config.DB_MAX_OVERFLOW,
            pool_timeout=config.DB_POOL_TIMEOUT,
        )
    engine = create_async_engine(url, **kw)
    if is_sqlite:
        _install_sqlite_pragmas(engine)

    sessions = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False,
    )

    default_limit = 10 if is_sqlite else config.DB_POOL_SIZE
    gate_limit = int(config.DB_GATE_LIMIT or default_limit)
    return SqlHandles(engine, sessions, make_gate(gate_limit))
