"""Global pytest configuration and fixtures.

Provides an in-memory lease store, a controllable clock and fast claim
parameters shared across the lease tests.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from leasehold.lease.backoff import BackoffPolicy
from leasehold.lease.record import ClaimParams
from leasehold.store.memory import InMemoryLeaseStore

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "timing: end-to-end tests that run claimants against the wall clock"
    )


@pytest.fixture
def store() -> InMemoryLeaseStore:
    """Create a fresh in-memory lease store."""
    return InMemoryLeaseStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def params() -> ClaimParams:
    """30s lease renewed 1s before expiry."""
    return ClaimParams(
        lease_duration=timedelta(seconds=30),
        renew_grace_period=timedelta(seconds=1),
        min_poll_interval=timedelta(seconds=1),
        backoff=BackoffPolicy(initial=0.5, maximum=4.0, multiplier=2.0),
    )


@pytest.fixture
def fast_params() -> ClaimParams:
    """Scaled-down timing for tests that run against the wall clock."""
    return ClaimParams(
        lease_duration=timedelta(milliseconds=600),
        renew_grace_period=timedelta(milliseconds=200),
        min_poll_interval=timedelta(milliseconds=50),
        backoff=BackoffPolicy(initial=0.02, maximum=0.1, multiplier=2.0),
    )
