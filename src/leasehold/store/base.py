"""Lease store client contract.

A lease store holds lease records and offers optimistic-concurrency
writes. Implementations:
- InMemoryLeaseStore: simulated store for tests and local runs
- RedisLeaseStore: Redis hashes with Lua compare-and-swap
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from leasehold.lease.record import LeaseRecord, LeaseUpdate


class LeaseStore(ABC):
    """Abstract lease store interface."""

    @abstractmethod
    async def create_if_absent(self, record: LeaseRecord) -> LeaseRecord:
        """Create ``record`` unless one with the same name exists.

        Raises:
            AlreadyExists: A record with this namespace and name exists
            TransientStoreError: The store could not be reached
        """

    @abstractmethod
    async def get(self, namespace: str, name: str) -> LeaseRecord:
        """Read a record.

        Raises:
            NotFound: No such record
            TransientStoreError: The store could not be reached
        """

    @abstractmethod
    async def update(
        self,
        namespace: str,
        name: str,
        expected_version: str,
        changes: LeaseUpdate,
    ) -> LeaseRecord:
        """Apply ``changes`` if the stored version is still ``expected_version``.

        Returns the record as written, carrying its new version.

        Raises:
            Conflict: The stored version differs from ``expected_version``
            NotFound: No such record
            TransientStoreError: The store could not be reached
        """

    @abstractmethod
    async def list(self, namespace: str) -> list[LeaseRecord]:
        """List the records in a namespace."""

    async def health_check(self) -> bool:
        """True if the store answers requests."""
        return True

    async def close(self) -> None:
        """Release connections held by the store."""
        return None
