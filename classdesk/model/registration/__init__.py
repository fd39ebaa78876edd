from typing import Optional

from ... import config
from ._base import RegistrationStore
from ._memory import MemoryRegistrationStore

BACKENDS = ("sql", "redis", "memory")


# Factory keeps server.py simple and constructor-agnostic:
async def new_store(backend: Optional[str] = None, *,
                    database_url: Optional[str] = None,
                    redis_url: Optional[str] = None) -> RegistrationStore:
    backend = (backend or config.REG_BACKEND).lower()
    if backend == "memory":
        return MemoryRegistrationStore()
    if backend == "sql":
        from ...infra.sql import make_async_engine
        from ._sql import SqlRegistrationStore
        handles = make_async_engine(database_url or config.DATABASE_URL)
        store = SqlRegistrationStore(
            engine=handles.engine, sessions=handles.sessions,
            gated=handles.gated,
        )
        await store.init_schema()
        return store
    if backend == "redis":
        import redis.asyncio as redis
        from ._redis import RedisRegistrationStore
        r = redis.from_url(
            redis_url or config.REDIS_URL,
            decode_responses=True,
            max_connections=config.REDIS_MAX_CONN,
            socket_timeout=2.0,
            socket_connect_timeout=2.0,
            retry_on_timeout=True,
        )
        return RedisRegistrationStore(r)
    raise RuntimeError(
        f"unknown REG_BACKEND {backend!r}; expected one of {BACKENDS}"
    )


__all__ = ["RegistrationStore", "new_store", "BACKENDS"]
