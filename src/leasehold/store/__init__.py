"""Lease store implementations.

Example:
    from leasehold.store import create_store

    store = await create_store(settings)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from leasehold.store.base import LeaseStore
from leasehold.store.memory import InMemoryLeaseStore
from leasehold.store.redis import RedisLeaseStore, get_redis

if TYPE_CHECKING:
    from leasehold.config import Settings


async def create_store(settings: Settings) -> LeaseStore:
    """Build the store selected by ``settings.store_backend``."""
    if settings.store_backend == "memory":
        return InMemoryLeaseStore()
    client = await get_redis(
        settings.redis_url,
        socket_timeout=settings.redis_socket_timeout_seconds,
        socket_connect_timeout=settings.redis_connect_timeout_seconds,
    )
    return RedisLeaseStore(client)


__all__ = [
    "InMemoryLeaseStore",
    "LeaseStore",
    "RedisLeaseStore",
    "create_store",
]
