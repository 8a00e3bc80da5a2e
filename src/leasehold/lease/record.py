"""Lease record data model.

The lease record is the single shared resource all claimants compete for.
It is stored in the external coordination store and only ever changed
through the store's compare-and-swap on ``version``.

Example:
    record = LeaseRecord(name="scheduler", namespace="default")
    if record.is_claimable(utcnow()):
        ...
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta

from leasehold.errors import LeaseConfigError
from leasehold.lease.backoff import BackoffPolicy

Clock = Callable[[], datetime]

DEFAULT_LEASE_DURATION = timedelta(seconds=30)
DEFAULT_RENEW_GRACE_PERIOD = timedelta(seconds=1)
DEFAULT_MIN_POLL_INTERVAL = timedelta(seconds=1)
DEFAULT_STORE_TIMEOUT = timedelta(seconds=5)


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class LeaseRecord:
    """A lease as persisted in the coordination store."""

    name: str
    namespace: str = "default"
    holder_identity: str | None = None
    acquire_time: datetime | None = None
    renew_time: datetime | None = None
    duration: timedelta | None = None
    version: str = ""
    labels: dict[str, str] = field(default_factory=dict)

    @property
    def expires_at(self) -> datetime | None:
        """When the current claim stops being valid."""
        if self.renew_time is None or self.duration is None:
            return None
        return self.renew_time + self.duration

    def is_valid(self, now: datetime) -> bool:
        """True if a holder is recorded and the claim has not expired."""
        expires_at = self.expires_at
        return self.holder_identity is not None and expires_at is not None and now <= expires_at

    def is_claimable(self, now: datetime) -> bool:
        """True if the lease is unheld or expired."""
        return not self.is_valid(now)

    def is_held_by(self, claimant: str, now: datetime) -> bool:
        return self.holder_identity == claimant and self.is_valid(now)

    def to_claim(self) -> Claim:
        """Snapshot of the holder for publishing to observers."""
        if self.holder_identity is None:
            return Claim.unclaimed()
        return Claim(holder=self.holder_identity, expiry=self.expires_at)


@dataclass(frozen=True)
class LeaseUpdate:
    """Fields written by a compare-and-swap update.

    ``None`` leaves the stored value untouched.
    """

    holder_identity: str | None = None
    acquire_time: datetime | None = None
    renew_time: datetime | None = None
    duration: timedelta | None = None

    def apply(self, record: LeaseRecord, version: str) -> LeaseRecord:
        """Return ``record`` with these changes and a new version."""
        return replace(
            record,
            holder_identity=(
                self.holder_identity
                if self.holder_identity is not None
                else record.holder_identity
            ),
            acquire_time=self.acquire_time or record.acquire_time,
            renew_time=self.renew_time or record.renew_time,
            duration=self.duration if self.duration is not None else record.duration,
            version=version,
        )


@dataclass(frozen=True)
class Claim:
    """Who holds the lease, as last observed by a claim task.

    ``expiry`` bounds how long the observation can be trusted: once the
    local clock passes it, the claim is no longer reported as current even
    if nothing new has been published.
    """

    holder: str | None
    expiry: datetime | None

    @classmethod
    def unclaimed(cls) -> Claim:
        return cls(holder=None, expiry=None)

    def is_current(self, now: datetime | None = None) -> bool:
        """True if some claimant holds an unexpired lease."""
        if self.holder is None or self.expiry is None:
            return False
        return (now or utcnow()) < self.expiry

    def is_current_for(self, claimant: str, now: datetime | None = None) -> bool:
        """True if ``claimant`` holds an unexpired lease."""
        return self.holder == claimant and self.is_current(now)


@dataclass(frozen=True)
class ClaimParams:
    """Timing parameters for a claim.

    Args:
        lease_duration: How long a claim is valid after each renewal
        renew_grace_period: How long before expiry the holder renews
        min_poll_interval: Lower bound on the delay between reads while
            another claimant holds the lease
        backoff: Retry policy for transient store errors
        store_timeout: Upper bound on a single store call. While holding
            the lease a call is also cut off when the claim expires
    """

    lease_duration: timedelta = DEFAULT_LEASE_DURATION
    renew_grace_period: timedelta = DEFAULT_RENEW_GRACE_PERIOD
    min_poll_interval: timedelta = DEFAULT_MIN_POLL_INTERVAL
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)
    store_timeout: timedelta = DEFAULT_STORE_TIMEOUT

    def __post_init__(self) -> None:
        if self.lease_duration <= timedelta(0):
            raise LeaseConfigError("lease_duration must be positive")
        if self.renew_grace_period < timedelta(0):
            raise LeaseConfigError("renew_grace_period must not be negative")
        if self.renew_grace_period >= self.lease_duration:
            raise LeaseConfigError(
                f"renew_grace_period ({self.renew_grace_period}) must be shorter than "
                f"lease_duration ({self.lease_duration})"
            )
        if self.min_poll_interval <= timedelta(0):
            raise LeaseConfigError("min_poll_interval must be positive")
        if self.store_timeout <= timedelta(0):
            raise LeaseConfigError("store_timeout must be positive")
