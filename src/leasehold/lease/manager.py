"""Lease manager: the entry point for claiming a lease.

Example:
    store = await create_store(settings)
    manager = await LeaseManager.init(store, "scheduler", namespace="prod")

    receiver, task = await manager.spawn("pod-a", ClaimParams())
    await receiver.wait_for(lambda claim: claim.is_current_for("pod-a"))
    ...
    await task.stop()
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from leasehold.errors import (
    AlreadyExists,
    LeaseConfigError,
    LeaseInitError,
    LeaseStoreError,
    NotFound,
    TransientStoreError,
)
from leasehold.lease.machine import ClaimStateMachine
from leasehold.lease.observer import HolderObserver, HolderReceiver
from leasehold.lease.record import Claim, ClaimParams, Clock, LeaseRecord
from leasehold.lease.task import ClaimTask
from leasehold.observability.events import LeaseEvent, emit_event

if TYPE_CHECKING:
    from leasehold.store.base import LeaseStore

logger = logging.getLogger(__name__)


class LeaseManager:
    """Owns one lease record and spawns claims on it.

    Use ``LeaseManager.init`` rather than the constructor: it makes sure
    the record exists before anyone tries to claim it.
    """

    def __init__(
        self,
        store: LeaseStore,
        name: str,
        namespace: str = "default",
        labels: dict[str, str] | None = None,
    ) -> None:
        self.store = store
        self.name = name
        self.namespace = namespace
        self.labels = labels or {}

    @property
    def lease(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    async def init(
        cls,
        store: LeaseStore,
        name: str,
        namespace: str = "default",
        labels: dict[str, str] | None = None,
        retries: int = 0,
        retry_delay: float = 1.0,
    ) -> LeaseManager:
        """Create the lease record if it does not exist yet.

        An existing record is left untouched, so calling this any number of
        times is safe.

        Args:
            store: Lease store holding the record
            name: Lease name
            namespace: Logical partition of the record
            labels: Labels attached to a newly created record
            retries: How many times to retry when the store is unreachable
            retry_delay: Seconds between those retries

        Raises:
            LeaseInitError: The record could not be created or verified
        """
        if not name:
            raise LeaseInitError("lease name must not be empty")

        manager = cls(store, name, namespace, labels)
        record = LeaseRecord(name=name, namespace=namespace, labels=dict(manager.labels))
        attempt = 0
        while True:
            try:
                created = await store.create_if_absent(record)
            except AlreadyExists:
                emit_event(
                    LeaseEvent.RECORD_EXISTS,
                    f"Lease {manager.lease} already exists, no need to create it",
                    lease=manager.lease,
                )
                return manager
            except TransientStoreError as e:
                attempt += 1
                if attempt > retries:
                    logger.error(f"Error creating lease {manager.lease}: {e}")
                    raise LeaseInitError(
                        f"cannot reach store to create lease {manager.lease}"
                    ) from e
                logger.warning(
                    f"Store unavailable creating lease {manager.lease} "
                    f"(attempt {attempt}/{retries}), retrying in {retry_delay:.1f}s"
                )
                await asyncio.sleep(retry_delay)
            except LeaseStoreError as e:
                logger.error(f"Error creating lease {manager.lease}: {e}")
                raise LeaseInitError(f"cannot create lease {manager.lease}: {e}") from e
            else:
                emit_event(
                    LeaseEvent.RECORD_CREATED,
                    f"Created lease {manager.lease}",
                    lease=manager.lease,
                    version=created.version,
                )
                return manager

    async def holder(self) -> Claim:
        """Read the current holder directly from the store.

        Raises:
            LeaseStoreError: The record could not be read
        """
        record = await self.store.get(self.namespace, self.name)
        return record.to_claim()

    async def spawn(
        self,
        claimant: str,
        params: ClaimParams,
        clock: Clock | None = None,
    ) -> tuple[HolderReceiver, ClaimTask]:
        """Start claiming the lease as ``claimant``.

        The returned receiver starts out with the holder as currently
        stored, when the store can be read.

        Returns:
            The holder receiver and the running claim task

        Raises:
            LeaseConfigError: Empty claimant identity
        """
        if not claimant:
            raise LeaseConfigError("claimant identity must not be empty")

        initial = Claim.unclaimed()
        try:
            initial = await self.holder()
        except (NotFound, TransientStoreError) as e:
            logger.debug(f"Could not read lease {self.lease} before spawning: {e}")

        observer = HolderObserver(initial, clock=clock)
        machine = ClaimStateMachine(
            store=self.store,
            namespace=self.namespace,
            name=self.name,
            claimant=claimant,
            params=params,
            observer=observer,
            clock=clock,
            labels=self.labels,
        )
        task = ClaimTask(machine)
        task.start()
        return observer.subscribe(), task
