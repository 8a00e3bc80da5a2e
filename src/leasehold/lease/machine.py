"""Claim state machine.

Decides, for one claimant, when to read the lease, when to claim it, when
to renew it and when to back off. Each call to ``step()`` performs one
transition, including the store I/O that transition needs, and returns
how long to wait before the next step. The claim task owns the timing.

Transitions:

    PROBING   claimable                     -> CLAIMING  (now)
    PROBING   held by us                    -> HELD      (at renew deadline)
    PROBING   held by another claimant      -> PROBING   (poll, bounded by expiry)
    PROBING   record missing                -> PROBING   (record re-created, now)
    CLAIMING  written                       -> HELD      (at renew deadline)
    CLAIMING  conflict / missing            -> PROBING   (now)
    HELD      renewal due                   -> RENEWING  (now)
    RENEWING  written                       -> HELD      (at renew deadline)
    RENEWING  conflict, still ours          -> HELD      (version resynced)
    RENEWING  conflict, no longer ours      -> PROBING   (lost)
    RENEWING  missing                       -> PROBING   (lost)
    RENEWING  transient past expiry         -> PROBING   (assumed lost)
    any       transient                     -> BACKOFF   (exponential delay)
    BACKOFF   delay elapsed                 -> phase that backed off

The renew deadline is ``renew_time + duration - renew_grace_period``.

Every store call is bounded by ``store_timeout``; while renewing it is also
cut off when the claim expires, and a call that times out counts as a
transient error.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, TypeVar

from leasehold.errors import (
    AlreadyExists,
    Conflict,
    LeaseConfigError,
    NotFound,
    TransientStoreError,
)
from leasehold.lease.observer import HolderObserver
from leasehold.lease.record import (
    Claim,
    ClaimParams,
    Clock,
    LeaseRecord,
    LeaseUpdate,
    utcnow,
)
from leasehold.observability.events import LeaseEvent, emit_event
from leasehold.observability.metrics import get_metrics

if TYPE_CHECKING:
    from leasehold.store.base import LeaseStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ClaimPhase(str, Enum):
    """Phase of a claimant's state machine."""

    PROBING = "probing"
    CLAIMING = "claiming"
    HELD = "held"
    RENEWING = "renewing"
    BACKOFF = "backoff"


@dataclass
class ClaimState:
    """Local claim state, owned by exactly one state machine."""

    phase: ClaimPhase = ClaimPhase.PROBING
    belief: LeaseRecord | None = None
    last_error: Exception | None = None
    retries: int = 0
    resume_phase: ClaimPhase | None = None


class ClaimStateMachine:
    """Lease claim and renewal logic for one claimant.

    Args:
        store: Lease store to read and write through
        namespace: Namespace of the lease record
        name: Name of the lease record
        claimant: Identity written as holder when this claimant wins
        params: Claim timing
        observer: Where every holder change is published
        clock: Source of the current time (UTC)
        labels: Labels used if the record has to be re-created
    """

    def __init__(
        self,
        store: LeaseStore,
        namespace: str,
        name: str,
        claimant: str,
        params: ClaimParams,
        observer: HolderObserver,
        clock: Clock | None = None,
        labels: dict[str, str] | None = None,
    ) -> None:
        if not claimant:
            raise LeaseConfigError("claimant identity must not be empty")
        self.store = store
        self.namespace = namespace
        self.name = name
        self.claimant = claimant
        self.params = params
        self.observer = observer
        self.clock = clock or utcnow
        self.labels = labels or {}
        self.state = ClaimState()

    @property
    def lease(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def phase(self) -> ClaimPhase:
        return self.state.phase

    @property
    def is_holder(self) -> bool:
        """True while this claimant believes it holds an unexpired lease."""
        belief = self.state.belief
        return (
            self.state.phase in (ClaimPhase.HELD, ClaimPhase.RENEWING)
            or (
                self.state.phase == ClaimPhase.BACKOFF
                and self.state.resume_phase == ClaimPhase.RENEWING
            )
        ) and belief is not None and belief.is_held_by(self.claimant, self.clock())

    async def step(self) -> float:
        """Run one transition and return the delay before the next one, in seconds."""
        phase = self.state.phase
        if phase == ClaimPhase.PROBING:
            return await self._probe()
        if phase == ClaimPhase.CLAIMING:
            return await self._claim()
        if phase == ClaimPhase.HELD:
            return self._renewal_due()
        if phase == ClaimPhase.RENEWING:
            return await self._renew()
        return self._resume()

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def _probe(self) -> float:
        try:
            record = await self._bounded(self.store.get(self.namespace, self.name), "get")
        except NotFound:
            return await self._recreate()
        except TransientStoreError as e:
            return self._backoff(e, ClaimPhase.PROBING)

        self._observe(record)
        now = self.clock()

        if record.is_claimable(now):
            self.state.phase = ClaimPhase.CLAIMING
            return 0.0

        if record.holder_identity == self.claimant:
            # Our own claim survived, e.g. a restart within the lease duration
            self._enter_held(record)
            emit_event(
                LeaseEvent.CLAIM_ACQUIRED,
                f"Resumed existing claim on lease {self.lease}",
                lease=self.lease,
                claimant=self.claimant,
                version=record.version,
            )
            return self._renew_delay(record)

        self.state.phase = ClaimPhase.PROBING
        return self._poll_delay(record, now)

    async def _recreate(self) -> float:
        record = LeaseRecord(name=self.name, namespace=self.namespace, labels=dict(self.labels))
        try:
            created = await self._bounded(self.store.create_if_absent(record), "create")
        except AlreadyExists:
            # Someone else re-created it first; read it again
            return 0.0
        except TransientStoreError as e:
            return self._backoff(e, ClaimPhase.PROBING)

        emit_event(
            LeaseEvent.RECORD_CREATED,
            f"Lease {self.lease} was missing and has been re-created",
            lease=self.lease,
            claimant=self.claimant,
        )
        self._observe(created)
        return 0.0

    async def _claim(self) -> float:
        belief = self.state.belief
        if belief is None:
            self.state.phase = ClaimPhase.PROBING
            return 0.0

        now = self.clock()
        changes = LeaseUpdate(
            holder_identity=self.claimant,
            acquire_time=now,
            renew_time=now,
            duration=self.params.lease_duration,
        )
        try:
            record = await self._bounded(
                self.store.update(self.namespace, self.name, belief.version, changes), "claim"
            )
        except Conflict:
            self._conflict("claim")
            self.state.phase = ClaimPhase.PROBING
            return 0.0
        except NotFound:
            self.state.phase = ClaimPhase.PROBING
            return 0.0
        except TransientStoreError as e:
            # Re-read after backing off; the record may have moved on meanwhile
            return self._backoff(e, ClaimPhase.PROBING)

        self._enter_held(record)
        emit_event(
            LeaseEvent.CLAIM_ACQUIRED,
            f"Acquired lease {self.lease}",
            lease=self.lease,
            claimant=self.claimant,
            version=record.version,
        )
        return self._renew_delay(record)

    def _renewal_due(self) -> float:
        self.state.phase = ClaimPhase.RENEWING
        return 0.0

    async def _renew(self) -> float:
        belief = self.state.belief
        if belief is None:
            return self._lose("no record to renew")

        changes = LeaseUpdate(renew_time=self.clock(), duration=self.params.lease_duration)
        try:
            record = await self._bounded(
                self.store.update(self.namespace, self.name, belief.version, changes),
                "renew",
                deadline=belief.expires_at,
            )
        except Conflict:
            self._conflict("renew")
            return await self._resync()
        except NotFound:
            return self._lose("record was deleted")
        except TransientStoreError as e:
            return self._renew_failed(e)

        self._enter_held(record)
        emit_event(
            LeaseEvent.CLAIM_RENEWED,
            f"Renewed lease {self.lease}",
            lease=self.lease,
            claimant=self.claimant,
            version=record.version,
        )
        return self._renew_delay(record)

    async def _resync(self) -> float:
        belief = self.state.belief
        deadline = belief.expires_at if belief is not None else None
        try:
            record = await self._bounded(
                self.store.get(self.namespace, self.name), "resync", deadline=deadline
            )
        except NotFound:
            return self._lose("record was deleted")
        except TransientStoreError as e:
            return self._renew_failed(e)

        if record.is_held_by(self.claimant, self.clock()):
            # Still ours; someone touched another field. Carry on with the new version
            self._enter_held(record)
            return self._renew_delay(record)

        self._observe(record)
        return self._lose(f"lease now held by {record.holder_identity or 'nobody'}", record)

    def _renew_failed(self, error: TransientStoreError) -> float:
        belief = self.state.belief
        delay = self.params.backoff.delay(self.state.retries + 1)
        expires_at = belief.expires_at if belief is not None else None
        now = self.clock()
        if expires_at is None or now + timedelta(seconds=delay) >= expires_at:
            # A retry could not land before expiry; the store may already have let it lapse
            self.state.last_error = error
            self._transient(error, self.state.retries + 1)
            return self._lose("renewal retries cannot complete before expiry")
        return self._backoff(error, ClaimPhase.RENEWING, delay=delay)

    def _resume(self) -> float:
        self.state.phase = self.state.resume_phase or ClaimPhase.PROBING
        self.state.resume_phase = None
        return 0.0

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _bounded(
        self,
        call: Awaitable[T],
        operation: str,
        deadline: datetime | None = None,
    ) -> T:
        """Await a store call for at most ``store_timeout``, and never past ``deadline``.

        Raises:
            TransientStoreError: The call did not complete in time
        """
        timeout = self.params.store_timeout.total_seconds()
        if deadline is not None:
            timeout = min(timeout, max((deadline - self.clock()).total_seconds(), 0.0))
        try:
            async with asyncio.timeout(timeout):
                return await call
        except TimeoutError as e:
            raise TransientStoreError(
                f"{operation} on lease {self.lease} timed out after {timeout:.2f}s",
                namespace=self.namespace,
                name=self.name,
            ) from e

    def _observe(self, record: LeaseRecord) -> None:
        self.state.belief = record
        self.state.retries = 0
        self.observer.publish(record.to_claim())

    def _enter_held(self, record: LeaseRecord) -> None:
        self.state.phase = ClaimPhase.HELD
        self.state.last_error = None
        self._observe(record)
        get_metrics().set_leader(self.lease, self.claimant, True)

    def _lose(self, reason: str, record: LeaseRecord | None = None) -> float:
        self.state.phase = ClaimPhase.PROBING
        self.state.resume_phase = None
        if record is None:
            # Nothing trustworthy to report; never leave our own name published
            self.observer.publish(Claim.unclaimed())
        get_metrics().set_leader(self.lease, self.claimant, False)
        emit_event(
            LeaseEvent.CLAIM_LOST,
            f"Lost lease {self.lease}: {reason}",
            lease=self.lease,
            claimant=self.claimant,
        )
        return 0.0

    def _conflict(self, operation: str) -> None:
        emit_event(
            LeaseEvent.CONFLICT,
            f"Lease {self.lease} changed before {operation}",
            lease=self.lease,
            claimant=self.claimant,
        )

    def _transient(self, error: TransientStoreError, retries: int) -> None:
        emit_event(
            LeaseEvent.TRANSIENT_ERROR,
            f"Store error on lease {self.lease}: {error}",
            lease=self.lease,
            claimant=self.claimant,
            retries=retries,
        )

    def _backoff(
        self,
        error: TransientStoreError,
        resume: ClaimPhase,
        delay: float | None = None,
    ) -> float:
        self.state.retries += 1
        self.state.last_error = error
        self.state.resume_phase = resume
        self.state.phase = ClaimPhase.BACKOFF
        self._transient(error, self.state.retries)
        if delay is None:
            delay = self.params.backoff.delay(self.state.retries)
        return delay

    def _renew_delay(self, record: LeaseRecord) -> float:
        expires_at = record.expires_at
        if expires_at is None:
            return 0.0
        deadline = expires_at - self.params.renew_grace_period
        return max((deadline - self.clock()).total_seconds(), 0.0)

    def _poll_delay(self, record: LeaseRecord, now: datetime) -> float:
        remaining = timedelta(0)
        if record.expires_at is not None:
            remaining = record.expires_at - now
        # Wake just after the holder's claim would lapse, never faster than the poll floor
        delay = min(remaining, self.params.lease_duration)
        return max(delay, self.params.min_poll_interval).total_seconds()
