"""
Dependency injection for FastAPI routes.
Provides the store gate that serializes storage calls.
"""
import asyncio
from typing import Annotated, Any, Callable, Optional, TypeVar

from fastapi import Depends, Request
from starlette.concurrency import run_in_threadpool

from tablekv.db.store import TableStore

T = TypeVar("T")


class StoreGate:
    """
    Runs store calls off the event loop, optionally one at a time.

    With serialize=True every call holds a single exclusive lock for its
    full duration, so no two storage operations ever overlap. Without it,
    concurrency is bounded by the engine's connection pool and table
    creation relies on CREATE TABLE IF NOT EXISTS.
    """

    def __init__(self, store: TableStore, serialize: bool = True):
        self.store = store
        self._lock: Optional[asyncio.Lock] = asyncio.Lock() if serialize else None

    @property
    def serialized(self) -> bool:
        return self._lock is not None

    async def run(self, fn: Callable[..., T], *args: Any) -> T:
        """Execute a blocking store call in the threadpool."""
        if self._lock is None:
            return await run_in_threadpool(fn, *args)
        async with self._lock:
            return await run_in_threadpool(fn, *args)


def get_gate(request: Request) -> StoreGate:
    """
    Store gate dependency, created in the application lifespan.

    Usage:
        @router.get("/get_data")
        async def get_data(item: TableKeyRequest, gate: Gate):
            value = await gate.run(gate.store.get_data, item.table, item.key)
    """
    return request.app.state.gate


# === Type Aliases ===

Gate = Annotated[StoreGate, Depends(get_gate)]
