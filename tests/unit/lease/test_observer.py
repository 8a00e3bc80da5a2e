"""Tests for the holder observer broadcast."""

import asyncio
from datetime import timedelta

import pytest

from leasehold.errors import ObserverClosed
from leasehold.lease.observer import HolderObserver
from leasehold.lease.record import Claim, utcnow


def held_by(holder: str) -> Claim:
    return Claim(holder=holder, expiry=utcnow() + timedelta(seconds=30))


class TestHolderObserver:
    """Tests for publishing and reading the holder."""

    def test_starts_unclaimed(self) -> None:
        """Without an initial value the holder is unclaimed."""
        receiver = HolderObserver().subscribe()

        assert receiver.current == Claim.unclaimed()
        assert not receiver.is_current_for("a")

    def test_publish_updates_snapshot(self) -> None:
        """Readers see the latest published claim."""
        observer = HolderObserver()
        receiver = observer.subscribe()

        observer.publish(held_by("a"))

        assert receiver.current.holder == "a"
        assert receiver.get().holder == "a"
        assert receiver.is_current_for("a")
        assert observer.version == 1

    def test_publish_after_close_is_ignored(self) -> None:
        """A closed observer keeps its last value."""
        observer = HolderObserver(held_by("a"))
        observer.close()

        observer.publish(held_by("b"))

        assert observer.value.holder == "a"

    def test_is_current_for_uses_observer_clock(self, clock) -> None:
        """Expiry is judged by the clock the observer was given."""
        claim = Claim(holder="a", expiry=clock() + timedelta(seconds=30))
        receiver = HolderObserver(claim, clock=clock).subscribe()

        assert receiver.is_current_for("a")

        clock.advance(30)
        assert not receiver.is_current_for("a")


class TestWaitFor:
    """Tests for HolderReceiver.wait_for."""

    async def test_returns_immediately_when_predicate_holds(self) -> None:
        """No publish is needed if the current value already matches."""
        receiver = HolderObserver(held_by("a")).subscribe()

        claim = await receiver.wait_for(lambda c: c.holder == "a", timeout=0.1)

        assert claim.holder == "a"

    async def test_wakes_on_matching_publish(self) -> None:
        """A waiter resumes once a matching value is published."""
        observer = HolderObserver()
        receiver = observer.subscribe()
        waiter = asyncio.create_task(receiver.wait_for(lambda c: c.is_current_for("b")))

        await asyncio.sleep(0)
        observer.publish(held_by("a"))
        await asyncio.sleep(0)
        assert not waiter.done()

        observer.publish(held_by("b"))
        claim = await asyncio.wait_for(waiter, timeout=1.0)

        assert claim.holder == "b"

    async def test_all_waiters_woken(self) -> None:
        """Every waiter sees the publish."""
        observer = HolderObserver()
        receivers = [observer.subscribe() for _ in range(5)]
        waiters = [
            asyncio.create_task(r.wait_for(lambda c: c.holder == "a")) for r in receivers
        ]

        await asyncio.sleep(0)
        observer.publish(held_by("a"))
        claims = await asyncio.wait_for(asyncio.gather(*waiters), timeout=1.0)

        assert all(claim.holder == "a" for claim in claims)

    async def test_close_releases_waiters(self) -> None:
        """Closing the observer fails pending waits."""
        observer = HolderObserver()
        receiver = observer.subscribe()
        waiter = asyncio.create_task(receiver.wait_for(lambda c: c.holder == "a"))

        await asyncio.sleep(0)
        error = RuntimeError("boom")
        observer.close(error)

        with pytest.raises(ObserverClosed) as exc_info:
            await asyncio.wait_for(waiter, timeout=1.0)
        assert exc_info.value.error is error

    async def test_wait_on_closed_observer_fails_fast(self) -> None:
        """A wait started after close fails without blocking."""
        observer = HolderObserver()
        observer.close()

        with pytest.raises(ObserverClosed):
            await observer.subscribe().wait_for(lambda c: c.holder == "a", timeout=1.0)

    async def test_satisfied_predicate_wins_over_close(self) -> None:
        """A predicate that already holds is returned even after close."""
        observer = HolderObserver(held_by("a"))
        observer.close()

        claim = await observer.subscribe().wait_for(lambda c: c.holder == "a")

        assert claim.holder == "a"

    async def test_timeout(self) -> None:
        """wait_for gives up after the timeout."""
        receiver = HolderObserver().subscribe()

        with pytest.raises(asyncio.TimeoutError):
            await receiver.wait_for(lambda c: c.holder == "a", timeout=0.05)

    async def test_wakes_when_claim_expires(self) -> None:
        """Expiry alone satisfies a not-current predicate, with no publish."""
        observer = HolderObserver(
            Claim(holder="a", expiry=utcnow() + timedelta(milliseconds=50))
        )
        receiver = observer.subscribe()

        claim = await receiver.wait_for(lambda c: not c.is_current_for("a"), timeout=1.0)

        assert claim.holder == "a"
        assert observer.version == 0


class TestChanged:
    """Tests for HolderReceiver.changed."""

    async def test_returns_next_value(self) -> None:
        """changed() waits for a value the receiver has not seen."""
        observer = HolderObserver()
        receiver = observer.subscribe()
        waiter = asyncio.create_task(receiver.changed())

        await asyncio.sleep(0)
        assert not waiter.done()
        observer.publish(held_by("a"))

        claim = await asyncio.wait_for(waiter, timeout=1.0)
        assert claim.holder == "a"

    async def test_returns_immediately_for_unseen_value(self) -> None:
        """A value published before the call counts as a change."""
        observer = HolderObserver()
        receiver = observer.subscribe()
        observer.publish(held_by("a"))

        claim = await asyncio.wait_for(receiver.changed(), timeout=1.0)

        assert claim.holder == "a"

    async def test_raises_when_closed(self) -> None:
        """changed() fails once the writer is gone."""
        observer = HolderObserver()
        receiver = observer.subscribe()
        observer.close()

        with pytest.raises(ObserverClosed):
            await receiver.changed()
