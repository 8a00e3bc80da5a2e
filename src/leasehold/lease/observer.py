"""Holder observer: single-writer broadcast of the current lease holder.

The claim task is the only writer. Any number of local readers can take a
snapshot or block until a predicate over the holder becomes true:

    receiver, task = await manager.spawn("pod-a", params)
    await receiver.wait_for(lambda claim: claim.is_current_for("pod-a"))

Publishing replaces the value before waking waiters, and everything runs
on one event loop, so a waiter always re-evaluates against the latest
value and no update is lost.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from leasehold.errors import ObserverClosed
from leasehold.lease.record import Claim, Clock, utcnow

ClaimPredicate = Callable[[Claim], bool]


class HolderObserver:
    """Writer side of the holder broadcast."""

    def __init__(self, initial: Claim | None = None, clock: Clock | None = None) -> None:
        self._value = initial or Claim.unclaimed()
        self.clock = clock or utcnow
        self._version = 0
        self._changed = asyncio.Event()
        self._closed = False
        self._error: BaseException | None = None

    @property
    def value(self) -> Claim:
        return self._value

    @property
    def version(self) -> int:
        """Number of values published so far."""
        return self._version

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def error(self) -> BaseException | None:
        return self._error

    def publish(self, claim: Claim) -> None:
        """Replace the current value and wake every waiter."""
        if self._closed:
            return
        self._value = claim
        self._version += 1
        self._wake()

    def close(self, error: BaseException | None = None) -> None:
        """Mark the writer as terminated and wake every waiter."""
        if self._closed:
            return
        self._closed = True
        self._error = error
        self._wake()

    def _wake(self) -> None:
        # Waiters hold a reference to the old event; swap in a fresh one for the next change
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()

    def subscribe(self) -> HolderReceiver:
        return HolderReceiver(self)


class HolderReceiver:
    """Read side of the holder broadcast.

    Receivers are cheap; hand one to every component that needs to know
    who the leader is.
    """

    def __init__(self, observer: HolderObserver) -> None:
        self._observer = observer
        self._seen = observer.version

    @property
    def current(self) -> Claim:
        """Latest published claim."""
        return self._observer.value

    def get(self) -> Claim:
        return self._observer.value

    @property
    def closed(self) -> bool:
        return self._observer.closed

    def is_current_for(self, claimant: str) -> bool:
        """True if ``claimant`` holds an unexpired lease, as last observed."""
        return self._observer.value.is_current_for(claimant, self._observer.clock())

    def _raise_closed(self) -> None:
        raise ObserverClosed(self._observer.error)

    async def changed(self) -> Claim:
        """Wait for a value this receiver has not seen yet.

        Raises:
            ObserverClosed: The claim task terminated
        """
        while self._seen == self._observer.version:
            if self._observer.closed:
                self._raise_closed()
            await self._observer._changed.wait()
        self._seen = self._observer.version
        return self._observer.value

    async def wait_for(self, predicate: ClaimPredicate, timeout: float | None = None) -> Claim:
        """Wait until ``predicate`` holds for the current claim.

        The predicate is evaluated immediately, again on every publish, and
        again when the current claim expires, so predicates over
        ``is_current_for`` see an expired claim without waiting for a publish.

        Args:
            predicate: Condition over the current Claim
            timeout: Maximum time to wait in seconds (None = wait forever)

        Returns:
            The claim that satisfied the predicate

        Raises:
            ObserverClosed: The claim task terminated before the predicate held
            asyncio.TimeoutError: The timeout elapsed
        """
        if timeout is None:
            return await self._wait_for(predicate)
        return await asyncio.wait_for(self._wait_for(predicate), timeout=timeout)

    async def _wait_for(self, predicate: ClaimPredicate) -> Claim:
        while True:
            claim = self._observer.value
            self._seen = self._observer.version
            if predicate(claim):
                return claim
            if self._observer.closed:
                self._raise_closed()
            await self._next_change(claim)

    async def _next_change(self, claim: Claim) -> None:
        """Wait for a publish, or until ``claim`` expires if that comes first."""
        changed = self._observer._changed
        remaining = 0.0
        if claim.expiry is not None:
            remaining = (claim.expiry - self._observer.clock()).total_seconds()
        if remaining <= 0:
            await changed.wait()
            return
        try:
            async with asyncio.timeout(remaining):
                await changed.wait()
        except TimeoutError:
            pass
