"""Tests for the lease record model."""

from datetime import timedelta

import pytest

from leasehold.errors import LeaseConfigError
from leasehold.lease.record import Claim, ClaimParams, LeaseRecord, LeaseUpdate


class TestLeaseRecord:
    """Tests for LeaseRecord validity."""

    def test_new_record_is_claimable(self, clock) -> None:
        """A record without holder is claimable."""
        record = LeaseRecord(name="lease-test")

        assert record.expires_at is None
        assert record.is_claimable(clock())
        assert not record.is_valid(clock())

    def test_held_record_is_valid_until_expiry(self, clock) -> None:
        """A claim is valid up to and including renew_time + duration."""
        record = LeaseRecord(
            name="lease-test",
            holder_identity="a",
            renew_time=clock(),
            duration=timedelta(seconds=30),
        )

        assert record.expires_at == clock() + timedelta(seconds=30)
        assert record.is_valid(clock())
        assert record.is_valid(clock.advance(30))
        assert record.is_claimable(clock.advance(0.001))

    def test_holder_without_renew_time_is_claimable(self, clock) -> None:
        """A holder with no renewal timestamp does not make a valid claim."""
        record = LeaseRecord(name="lease-test", holder_identity="a")

        assert record.is_claimable(clock())

    def test_is_held_by(self, clock) -> None:
        """is_held_by checks both identity and expiry."""
        record = LeaseRecord(
            name="lease-test",
            holder_identity="a",
            renew_time=clock(),
            duration=timedelta(seconds=10),
        )

        assert record.is_held_by("a", clock())
        assert not record.is_held_by("b", clock())
        assert not record.is_held_by("a", clock.advance(11))

    def test_to_claim(self, clock) -> None:
        """to_claim carries holder and expiry."""
        record = LeaseRecord(
            name="lease-test",
            holder_identity="a",
            renew_time=clock(),
            duration=timedelta(seconds=10),
        )

        claim = record.to_claim()

        assert claim.holder == "a"
        assert claim.expiry == clock() + timedelta(seconds=10)
        assert LeaseRecord(name="x").to_claim() == Claim.unclaimed()


class TestLeaseUpdate:
    """Tests for LeaseUpdate.apply."""

    def test_apply_only_touches_given_fields(self, clock) -> None:
        """Unset fields keep the stored values."""
        record = LeaseRecord(
            name="lease-test",
            holder_identity="a",
            acquire_time=clock(),
            renew_time=clock(),
            duration=timedelta(seconds=30),
            version="3",
            labels={"team": "ops"},
        )
        later = clock.advance(10)

        updated = LeaseUpdate(renew_time=later).apply(record, "4")

        assert updated.holder_identity == "a"
        assert updated.acquire_time == record.acquire_time
        assert updated.renew_time == later
        assert updated.duration == timedelta(seconds=30)
        assert updated.version == "4"
        assert updated.labels == {"team": "ops"}


class TestClaim:
    """Tests for the published Claim snapshot."""

    def test_unclaimed_is_never_current(self, clock) -> None:
        """The unclaimed value reports no holder."""
        claim = Claim.unclaimed()

        assert not claim.is_current(clock())
        assert not claim.is_current_for("a", clock())

    def test_current_for_holder_until_expiry(self, clock) -> None:
        """A claim stops being current once its expiry passes."""
        claim = Claim(holder="a", expiry=clock() + timedelta(seconds=5))

        assert claim.is_current_for("a", clock())
        assert not claim.is_current_for("b", clock())
        assert not claim.is_current_for("a", clock.advance(5))


class TestClaimParams:
    """Tests for ClaimParams validation."""

    def test_defaults(self) -> None:
        """Defaults are a 30s lease renewed 1s early."""
        params = ClaimParams()

        assert params.lease_duration == timedelta(seconds=30)
        assert params.renew_grace_period == timedelta(seconds=1)

    def test_grace_must_be_shorter_than_duration(self) -> None:
        """A grace period as long as the lease is rejected."""
        with pytest.raises(LeaseConfigError, match="shorter than"):
            ClaimParams(
                lease_duration=timedelta(seconds=5),
                renew_grace_period=timedelta(seconds=5),
            )

    def test_duration_must_be_positive(self) -> None:
        """A zero lease duration is rejected."""
        with pytest.raises(LeaseConfigError):
            ClaimParams(lease_duration=timedelta(0), renew_grace_period=timedelta(0))

    def test_negative_grace_rejected(self) -> None:
        """A negative grace period is rejected."""
        with pytest.raises(LeaseConfigError):
            ClaimParams(renew_grace_period=timedelta(seconds=-1))

    def test_store_timeout_must_be_positive(self) -> None:
        with pytest.raises(LeaseConfigError, match="store_timeout"):
            ClaimParams(store_timeout=timedelta(0))
