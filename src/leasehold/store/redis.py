"""Redis lease store.

Each lease is a Redis hash at ``leasehold:lease:{namespace}:{name}``; a
set at ``leasehold:leases:{namespace}`` indexes the names in a namespace.
Creation and compare-and-swap updates run as Lua scripts, so each write
is a single atomic step on the Redis server.

Hash layout:
    name, namespace      identity of the lease
    holder_identity      claimant, empty when unclaimed
    acquire_time         ISO-8601 UTC, empty when never claimed
    renew_time           ISO-8601 UTC, empty when never claimed
    duration             seconds as a float, empty when never claimed
    version              integer, incremented on every accepted write
    labels               JSON object
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from leasehold.errors import (
    AlreadyExists,
    Conflict,
    LeaseSchemaError,
    LeaseStoreError,
    NotFound,
    TransientStoreError,
)
from leasehold.lease.record import LeaseRecord, LeaseUpdate
from leasehold.store.base import LeaseStore

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

KEY_PREFIX = "leasehold"

_CREATE_LUA = """
if redis.call("exists", KEYS[1]) == 1 then
    return 0
end
for i = 2, #ARGV, 2 do
    redis.call("hset", KEYS[1], ARGV[i], ARGV[i + 1])
end
redis.call("hset", KEYS[1], "version", 1)
redis.call("sadd", KEYS[2], ARGV[1])
return 1
"""

_UPDATE_LUA = """
local current = redis.call("hget", KEYS[1], "version")
if not current then
    return nil
end
if current ~= ARGV[1] then
    return 0
end
for i = 2, #ARGV, 2 do
    redis.call("hset", KEYS[1], ARGV[i], ARGV[i + 1])
end
redis.call("hincrby", KEYS[1], "version", 1)
return redis.call("hgetall", KEYS[1])
"""

# Module-level client, shared by every store built from settings
_redis_client: Redis | None = None


async def get_redis(
    url: str,
    socket_timeout: float | None = None,
    socket_connect_timeout: float | None = None,
) -> Redis:
    """Get or create the shared Redis client.

    Without socket timeouts a stalled connection blocks a call forever, so
    callers that hold leases should always pass them.
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(  # type: ignore[no-untyped-call]
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_connect_timeout,
        )
    return _redis_client


async def close_redis() -> None:
    """Close the shared Redis client."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


def lease_key(namespace: str, name: str) -> str:
    return f"{KEY_PREFIX}:lease:{namespace}:{name}"


def index_key(namespace: str) -> str:
    return f"{KEY_PREFIX}:leases:{namespace}"


def _format_time(value: datetime | None) -> str:
    return value.isoformat() if value is not None else ""


def _encode_fields(record: LeaseRecord) -> dict[str, str]:
    return {
        "name": record.name,
        "namespace": record.namespace,
        "holder_identity": record.holder_identity or "",
        "acquire_time": _format_time(record.acquire_time),
        "renew_time": _format_time(record.renew_time),
        "duration": str(record.duration.total_seconds()) if record.duration else "",
        "labels": json.dumps(record.labels, sort_keys=True),
    }


def _encode_update(changes: LeaseUpdate) -> dict[str, str]:
    fields: dict[str, str] = {}
    if changes.holder_identity is not None:
        fields["holder_identity"] = changes.holder_identity
    if changes.acquire_time is not None:
        fields["acquire_time"] = _format_time(changes.acquire_time)
    if changes.renew_time is not None:
        fields["renew_time"] = _format_time(changes.renew_time)
    if changes.duration is not None:
        fields["duration"] = str(changes.duration.total_seconds())
    return fields


def _flatten(fields: dict[str, str]) -> list[str]:
    args: list[str] = []
    for key, value in fields.items():
        args.extend((key, value))
    return args


def decode_record(data: dict[str, str], namespace: str, name: str) -> LeaseRecord:
    """Build a LeaseRecord from a Redis hash.

    Raises:
        LeaseSchemaError: The hash is not a lease record.
    """
    try:
        duration = data.get("duration") or ""
        acquire_time = data.get("acquire_time") or ""
        renew_time = data.get("renew_time") or ""
        return LeaseRecord(
            name=data.get("name") or name,
            namespace=data.get("namespace") or namespace,
            holder_identity=data.get("holder_identity") or None,
            acquire_time=datetime.fromisoformat(acquire_time) if acquire_time else None,
            renew_time=datetime.fromisoformat(renew_time) if renew_time else None,
            duration=timedelta(seconds=float(duration)) if duration else None,
            version=str(int(data["version"])),
            labels=json.loads(data.get("labels") or "{}"),
        )
    except (KeyError, ValueError, TypeError) as e:
        raise LeaseSchemaError(
            f"lease {namespace}/{name} has an incompatible schema: {e}",
            namespace=namespace,
            name=name,
        ) from e


def _pairs_to_dict(values: list[Any]) -> dict[str, str]:
    return {str(values[i]): str(values[i + 1]) for i in range(0, len(values), 2)}


class RedisLeaseStore(LeaseStore):
    """Lease store on Redis.

    Args:
        client: An async Redis client created with ``decode_responses=True``
    """

    def __init__(self, client: Redis) -> None:
        self.client = client

    def _translate(self, error: RedisError, operation: str, namespace: str, name: str) -> Exception:
        if isinstance(error, (RedisConnectionError, RedisTimeoutError)):
            return TransientStoreError(
                f"redis unavailable during {operation}: {error}",
                namespace=namespace,
                name=name,
            )
        if isinstance(error, ResponseError):
            # WRONGTYPE and friends: the key is used by something that is not a lease
            return LeaseSchemaError(
                f"redis rejected {operation} on lease {namespace}/{name}: {error}",
                namespace=namespace,
                name=name,
            )
        return LeaseStoreError(
            f"redis error during {operation}: {error}", namespace=namespace, name=name
        )

    async def create_if_absent(self, record: LeaseRecord) -> LeaseRecord:
        namespace, name = record.namespace, record.name
        try:
            created = await self.client.eval(
                _CREATE_LUA,
                2,
                lease_key(namespace, name),
                index_key(namespace),
                name,
                *_flatten(_encode_fields(record)),
            )
        except RedisError as e:
            raise self._translate(e, "create", namespace, name) from e

        if not created:
            raise AlreadyExists(
                f"lease {namespace}/{name} already exists", namespace=namespace, name=name
            )
        return LeaseRecord(
            name=name,
            namespace=namespace,
            holder_identity=record.holder_identity,
            acquire_time=record.acquire_time,
            renew_time=record.renew_time,
            duration=record.duration,
            version="1",
            labels=dict(record.labels),
        )

    async def get(self, namespace: str, name: str) -> LeaseRecord:
        try:
            data = await self.client.hgetall(lease_key(namespace, name))
        except RedisError as e:
            raise self._translate(e, "get", namespace, name) from e

        if not data:
            raise NotFound(f"lease {namespace}/{name} not found", namespace=namespace, name=name)
        return decode_record(data, namespace, name)

    async def update(
        self,
        namespace: str,
        name: str,
        expected_version: str,
        changes: LeaseUpdate,
    ) -> LeaseRecord:
        try:
            result = await self.client.eval(
                _UPDATE_LUA,
                1,
                lease_key(namespace, name),
                expected_version,
                *_flatten(_encode_update(changes)),
            )
        except RedisError as e:
            raise self._translate(e, "update", namespace, name) from e

        if result is None:
            raise NotFound(f"lease {namespace}/{name} not found", namespace=namespace, name=name)
        if not isinstance(result, list):
            raise Conflict(
                f"lease {namespace}/{name} changed since version {expected_version}",
                namespace=namespace,
                name=name,
            )
        return decode_record(_pairs_to_dict(result), namespace, name)

    async def list(self, namespace: str) -> list[LeaseRecord]:
        try:
            names = sorted(await self.client.smembers(index_key(namespace)))
            async with self.client.pipeline(transaction=False) as pipe:
                for name in names:
                    pipe.hgetall(lease_key(namespace, name))
                results = await pipe.execute()
        except RedisError as e:
            raise self._translate(e, "list", namespace, "") from e

        records = []
        for name, data in zip(names, results, strict=True):
            if data:
                records.append(decode_record(data, namespace, name))
        return records

    async def health_check(self) -> bool:
        """Check Redis connectivity."""
        try:
            await self.client.ping()
            return True
        except RedisError:
            return False

    async def close(self) -> None:
        if self.client is _redis_client:
            await close_redis()
        else:
            await self.client.aclose()
