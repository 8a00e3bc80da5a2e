"""Tests for the in-memory lease store."""

from datetime import timedelta

import pytest

from leasehold.errors import AlreadyExists, Conflict, NotFound, TransientStoreError
from leasehold.lease.record import LeaseRecord, LeaseUpdate
from leasehold.store.memory import InMemoryLeaseStore


class TestCreateAndGet:
    """Tests for create_if_absent and get."""

    async def test_create_assigns_version(self, store: InMemoryLeaseStore) -> None:
        """Created records get a version and can be read back."""
        created = await store.create_if_absent(LeaseRecord(name="a", labels={"k": "v"}))

        assert created.version
        assert await store.get("default", "a") == created

    async def test_create_existing_raises(self, store: InMemoryLeaseStore) -> None:
        """A second create fails without touching the record."""
        first = await store.create_if_absent(LeaseRecord(name="a"))

        with pytest.raises(AlreadyExists):
            await store.create_if_absent(LeaseRecord(name="a", holder_identity="x"))

        assert await store.get("default", "a") == first

    async def test_get_missing_raises(self, store: InMemoryLeaseStore) -> None:
        with pytest.raises(NotFound):
            await store.get("default", "missing")

    async def test_namespaces_are_separate(self, store: InMemoryLeaseStore) -> None:
        """The same name can exist in two namespaces."""
        await store.create_if_absent(LeaseRecord(name="a", namespace="one"))
        await store.create_if_absent(LeaseRecord(name="a", namespace="two"))

        with pytest.raises(NotFound):
            await store.get("three", "a")


class TestUpdate:
    """Tests for compare-and-swap updates."""

    async def test_update_with_current_version(self, store: InMemoryLeaseStore, clock) -> None:
        """A matching version is applied and produces a new version."""
        created = await store.create_if_absent(LeaseRecord(name="a"))

        updated = await store.update(
            "default",
            "a",
            created.version,
            LeaseUpdate(
                holder_identity="x", renew_time=clock(), duration=timedelta(seconds=10)
            ),
        )

        assert updated.holder_identity == "x"
        assert updated.version != created.version
        assert await store.get("default", "a") == updated

    async def test_update_with_stale_version_conflicts(self, store: InMemoryLeaseStore) -> None:
        """A stale version is rejected and counted."""
        created = await store.create_if_absent(LeaseRecord(name="a"))
        await store.update("default", "a", created.version, LeaseUpdate(holder_identity="x"))

        with pytest.raises(Conflict):
            await store.update("default", "a", created.version, LeaseUpdate(holder_identity="y"))

        assert (await store.get("default", "a")).holder_identity == "x"
        assert store.conflicts == 1

    async def test_update_missing_raises(self, store: InMemoryLeaseStore) -> None:
        with pytest.raises(NotFound):
            await store.update("default", "a", "1", LeaseUpdate(holder_identity="x"))


class TestList:
    """Tests for listing a namespace."""

    async def test_lists_namespace_sorted(self, store: InMemoryLeaseStore) -> None:
        """Only records in the namespace are returned, by name."""
        for name in ("c", "a", "b"):
            await store.create_if_absent(LeaseRecord(name=name))
        await store.create_if_absent(LeaseRecord(name="z", namespace="other"))

        records = await store.list("default")

        assert [r.name for r in records] == ["a", "b", "c"]
        assert await store.list("empty") == []


class TestFailureInjection:
    """Tests for the simulated outages."""

    async def test_fail_next(self, store: InMemoryLeaseStore) -> None:
        """fail_next fails exactly the requested number of calls."""
        await store.create_if_absent(LeaseRecord(name="a"))
        store.fail_next(2)

        for _ in range(2):
            with pytest.raises(TransientStoreError):
                await store.get("default", "a")
        await store.get("default", "a")

    async def test_unavailable_until_reset(self, store: InMemoryLeaseStore) -> None:
        store.set_unavailable(True)
        with pytest.raises(TransientStoreError):
            await store.list("default")

        store.set_unavailable(False)
        assert await store.list("default") == []

    async def test_health_check_follows_availability(self, store: InMemoryLeaseStore) -> None:
        assert await store.health_check()

        store.set_unavailable(True)
        assert not await store.health_check()

    async def test_force_update_bumps_version(self, store: InMemoryLeaseStore) -> None:
        """Operator writes invalidate outstanding versions."""
        created = await store.create_if_absent(LeaseRecord(name="a"))

        forced = await store.force_update("default", "a", holder_identity="ops")

        assert forced.version != created.version
        with pytest.raises(Conflict):
            await store.update("default", "a", created.version, LeaseUpdate(holder_identity="x"))

    async def test_delete(self, store: InMemoryLeaseStore) -> None:
        await store.create_if_absent(LeaseRecord(name="a"))

        await store.delete("default", "a")

        assert store.snapshot("default", "a") is None
