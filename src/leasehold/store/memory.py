"""In-memory lease store.

Simulates a linearizable coordination store inside one event loop. Used
by the test suite and by ``leasehold run --store memory`` for local
experiments where several claimants share one process.

Failure injection:
    store.fail_next(2)          # next two calls raise TransientStoreError
    store.set_unavailable(True) # every call raises until reset
    await store.force_update("default", "lease", holder_identity="ops")
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from itertools import count

from leasehold.errors import (
    AlreadyExists,
    Conflict,
    NotFound,
    TransientStoreError,
)
from leasehold.lease.record import LeaseRecord, LeaseUpdate
from leasehold.store.base import LeaseStore

logger = logging.getLogger(__name__)


class InMemoryLeaseStore(LeaseStore):
    """Lease store backed by a dict, with compare-and-swap semantics.

    Args:
        latency: Seconds each operation sleeps before touching state,
            to let concurrent claimants interleave.
    """

    def __init__(self, latency: float = 0.0) -> None:
        self.latency = latency
        self._records: dict[tuple[str, str], LeaseRecord] = {}
        self._versions = count(1)
        self._lock = asyncio.Lock()
        self._fail_remaining = 0
        self._unavailable = False
        self.writes = 0
        self.conflicts = 0

    def fail_next(self, times: int = 1) -> None:
        """Make the next ``times`` operations raise TransientStoreError."""
        self._fail_remaining = times

    def set_unavailable(self, unavailable: bool) -> None:
        """Toggle a full outage."""
        self._unavailable = unavailable

    def snapshot(self, namespace: str, name: str) -> LeaseRecord | None:
        """Stored record without going through the failure simulation."""
        return self._records.get((namespace, name))

    async def _enter(self, operation: str, namespace: str, name: str) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        if self._unavailable:
            raise TransientStoreError(
                f"store unavailable during {operation}", namespace=namespace, name=name
            )
        if self._fail_remaining > 0:
            self._fail_remaining -= 1
            raise TransientStoreError(
                f"injected failure during {operation}", namespace=namespace, name=name
            )

    def _next_version(self) -> str:
        return str(next(self._versions))

    async def health_check(self) -> bool:
        return not self._unavailable

    async def create_if_absent(self, record: LeaseRecord) -> LeaseRecord:
        await self._enter("create", record.namespace, record.name)
        async with self._lock:
            key = (record.namespace, record.name)
            if key in self._records:
                raise AlreadyExists(
                    f"lease {record.namespace}/{record.name} already exists",
                    namespace=record.namespace,
                    name=record.name,
                )
            stored = replace(record, version=self._next_version(), labels=dict(record.labels))
            self._records[key] = stored
            self.writes += 1
            return stored

    async def get(self, namespace: str, name: str) -> LeaseRecord:
        await self._enter("get", namespace, name)
        try:
            return self._records[(namespace, name)]
        except KeyError:
            raise NotFound(
                f"lease {namespace}/{name} not found", namespace=namespace, name=name
            ) from None

    async def update(
        self,
        namespace: str,
        name: str,
        expected_version: str,
        changes: LeaseUpdate,
    ) -> LeaseRecord:
        await self._enter("update", namespace, name)
        async with self._lock:
            current = self._records.get((namespace, name))
            if current is None:
                raise NotFound(
                    f"lease {namespace}/{name} not found", namespace=namespace, name=name
                )
            if current.version != expected_version:
                self.conflicts += 1
                raise Conflict(
                    f"lease {namespace}/{name} is at version {current.version}, "
                    f"expected {expected_version}",
                    namespace=namespace,
                    name=name,
                )
            updated = changes.apply(current, self._next_version())
            self._records[(namespace, name)] = updated
            self.writes += 1
            return updated

    async def list(self, namespace: str) -> list[LeaseRecord]:
        await self._enter("list", namespace, "")
        return [
            record
            for (record_namespace, _), record in sorted(self._records.items())
            if record_namespace == namespace
        ]

    async def force_update(self, namespace: str, name: str, **fields: object) -> LeaseRecord:
        """Overwrite fields regardless of version, as an operator would."""
        async with self._lock:
            current = self._records[(namespace, name)]
            updated = replace(current, version=self._next_version(), **fields)  # type: ignore[arg-type]
            self._records[(namespace, name)] = updated
            self.writes += 1
            logger.debug(f"Force-updated lease {namespace}/{name} to version {updated.version}")
            return updated

    async def delete(self, namespace: str, name: str) -> None:
        """Remove a record, simulating external deletion."""
        async with self._lock:
            self._records.pop((namespace, name), None)
