"""
Unit Tests - Member Store
"""
import asyncio

import pytest

from carwash.exceptions import InvalidArgumentError, MemberNotFoundError
from carwash.members.schemas import LoyaltyMember, MemberKind, SubscriptionMember


async def seed(repository, *records):
    for record in records:
        await repository.create(record)


class TestLoading:
    """Tests for eager and lazy loading"""

    async def test_load_only_subscriptions(self, store, subscriptions, loyalty, sample_subscription, sample_loyalty):
        """Test startup load leaves loyalty and prepaid for first use"""
        await seed(subscriptions, subscriptions.validate(sample_subscription))
        await seed(loyalty, loyalty.validate(sample_loyalty))

        await store.load()

        assert store.is_loaded(MemberKind.SUBSCRIPTION)
        assert not store.is_loaded(MemberKind.LOYALTY)
        assert not store.is_loaded(MemberKind.PREPAID)
        assert [m.id for m in store.members(MemberKind.SUBSCRIPTION)] == ["B123"]

    async def test_ensure_loaded_fetches_once(self, store, loyalty, sample_loyalty, monkeypatch):
        """Test concurrent first uses share one fetch"""
        await seed(loyalty, loyalty.validate(sample_loyalty))
        real_get_all = loyalty.get_all
        calls = []

        async def counting_get_all():
            calls.append(1)
            await asyncio.sleep(0.01)
            return await real_get_all()

        monkeypatch.setattr(loyalty, "get_all", counting_get_all)

        results = await asyncio.gather(*(store.ensure_loaded("loyalty") for _ in range(5)))

        assert len(calls) == 1
        assert all([m.id for m in r] == ["L1001"] for r in results)

    async def test_load_error_recorded(self, store, prepaid, monkeypatch):
        async def broken_get_all():
            raise ConnectionError("database unreachable")

        monkeypatch.setattr(prepaid, "get_all", broken_get_all)

        with pytest.raises(ConnectionError):
            await store.ensure_loaded(MemberKind.PREPAID)

        state = store.state(MemberKind.PREPAID)
        assert state.error == "Failed to load prepaid members"
        assert not state.loaded

    async def test_refresh_replaces_cache(self, store, subscriptions):
        await seed(subscriptions, SubscriptionMember(id="B100", name="First"))
        await store.load()

        # Written behind the store's back
        await subscriptions.create(SubscriptionMember(id="D200", name="Second"))
        assert len(store.members(MemberKind.SUBSCRIPTION)) == 1

        refreshed = await store.refresh(MemberKind.SUBSCRIPTION)

        assert sorted(m.id for m in refreshed) == ["B100", "D200"]

    async def test_clear(self, store, subscriptions, sample_subscription):
        await seed(subscriptions, subscriptions.validate(sample_subscription))
        await store.load()

        store.clear()

        assert not store.is_loaded(MemberKind.SUBSCRIPTION)
        assert store.members(MemberKind.SUBSCRIPTION) == []


class TestReadThrough:

    async def test_get_populates_cache(self, store, loyalty, sample_loyalty):
        await seed(loyalty, loyalty.validate(sample_loyalty))

        member = await store.get(MemberKind.LOYALTY, "L1001")

        assert member.name == "Sam Ortiz"
        assert store.state(MemberKind.LOYALTY).records["L1001"] == member

    async def test_get_absent(self, store):
        assert await store.get(MemberKind.LOYALTY, "L999") is None


class TestWriteThrough:
    """Tests for cache patching after writes"""

    async def test_create_then_get_from_cache(self, store, loyalty, sample_loyalty):
        record = loyalty.validate(sample_loyalty)

        await store.create(record)

        assert store.state("loyalty").records["L1001"] == record
        assert await loyalty.get("L1001") == record

    async def test_update_patches_cache(self, store, loyalty, sample_loyalty):
        await store.create(loyalty.validate(sample_loyalty))

        await store.update(MemberKind.LOYALTY, "L1001", {"visit_count": 4})

        cached = await store.get(MemberKind.LOYALTY, "L1001")
        stored = await loyalty.get("L1001")
        assert cached.visit_count == stored.visit_count == 4

    async def test_invalid_update_leaves_cache(self, store, loyalty, sample_loyalty):
        """Test the cache is untouched when the update is refused"""
        await store.create(loyalty.validate(sample_loyalty))

        with pytest.raises(InvalidArgumentError):
            await store.update(MemberKind.LOYALTY, "L1001", {"visit_count": "many"})

        assert store.state(MemberKind.LOYALTY).records["L1001"].visit_count == 3

    async def test_update_of_vanished_member_evicts(self, store):
        """Test a member deleted elsewhere is dropped from the cache"""
        ghost = LoyaltyMember(id="L2002", name="Ghost", visit_count=1)
        store.state(MemberKind.LOYALTY).records["L2002"] = ghost

        with pytest.raises(MemberNotFoundError):
            await store.update(MemberKind.LOYALTY, "L2002", {"visit_count": 2})

        assert "L2002" not in store.state(MemberKind.LOYALTY).records
        assert await store.get(MemberKind.LOYALTY, "L2002") is None

    async def test_delete_of_vanished_member_evicts(self, store):
        ghost = SubscriptionMember(id="U777", name="Ghost")
        store.state(MemberKind.SUBSCRIPTION).records["U777"] = ghost

        with pytest.raises(MemberNotFoundError):
            await store.delete(MemberKind.SUBSCRIPTION, "U777")

        assert await store.get(MemberKind.SUBSCRIPTION, "U777") is None

    async def test_delete_removes_from_cache(self, store, subscriptions, sample_subscription):
        await seed(subscriptions, subscriptions.validate(sample_subscription))
        await store.load()

        await store.delete(MemberKind.SUBSCRIPTION, "B123")

        assert store.members(MemberKind.SUBSCRIPTION) == []
        assert await subscriptions.get("B123") is None
