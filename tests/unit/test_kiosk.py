"""
Unit Tests - Kiosk Visit Logging
"""
import asyncio
from datetime import date

import pytest

from carwash.exceptions import (
    InvalidArgumentError,
    MemberNotFoundError,
    NoWashesRemainingError,
    TransactionAbortedError,
)
from carwash.kiosk.service import KioskService, classify_code
from carwash.members import LoyaltyRepository, MemberStore, PrepaidRepository, SubscriptionRepository
from carwash.members.schemas import (
    LoyaltyMember,
    MemberKind,
    PrepaidMember,
    SubscriptionMember,
)

from tests.conftest import TODAY_KEY


class TestClassifyCode:
    """Tests for kiosk code grammar"""

    @pytest.mark.parametrize(
        "code, kind",
        [
            ("B123", MemberKind.SUBSCRIPTION),
            ("U12345", MemberKind.SUBSCRIPTION),
            ("L1001", MemberKind.LOYALTY),
            ("L100", MemberKind.LOYALTY),
            ("BB101", MemberKind.PREPAID),
            ("DB20456", MemberKind.PREPAID),
        ],
    )
    def test_valid_codes(self, code, kind):
        assert classify_code(code) == kind

    @pytest.mark.parametrize("code", ["", "B12", "L123456", "LB123", "X123", "b123", "BB12"])
    def test_invalid_codes(self, code):
        with pytest.raises(InvalidArgumentError):
            classify_code(code)


class TestLookup:

    async def test_lookup_loyalty(self, kiosk, loyalty, sample_loyalty):
        await loyalty.create(loyalty.validate(sample_loyalty))

        member = await kiosk.lookup("L1001")

        assert isinstance(member, LoyaltyMember)

    async def test_lookup_unknown(self, kiosk):
        with pytest.raises(MemberNotFoundError, match="No member found with ID: D999"):
            await kiosk.lookup("D999")


class TestMemberVisits:
    """Tests for logging visits by member code"""

    async def test_subscription_visit_uses_tier(self, kiosk, subscriptions):
        await subscriptions.create(SubscriptionMember(id="U123", name="Pat Kim"))

        visit = await kiosk.log_member_visit("U123")

        assert visit.service_type == "U"
        assert visit.free_wash is False
        assert visit.snapshot.counters["subscription"] == 1
        assert visit.snapshot.counters["subU"] == 1

    async def test_loyalty_visit_needs_service_type(self, kiosk, loyalty, aggregator, sample_loyalty):
        await loyalty.create(loyalty.validate(sample_loyalty))

        with pytest.raises(InvalidArgumentError):
            await kiosk.log_member_visit("L1001")

        assert (await loyalty.get("L1001")).visit_count == 3
        assert await aggregator.get_aggregate(TODAY_KEY) is None

    async def test_loyalty_visit_counts(self, kiosk, loyalty, sample_loyalty):
        await loyalty.create(loyalty.validate(sample_loyalty))

        visit = await kiosk.log_member_visit("L1001", "D")

        assert visit.free_wash is False
        assert visit.member.visit_count == 4
        assert visit.member.last_visit_date == date(2026, 10, 19)
        assert visit.snapshot.counters["loyD"] == 1
        assert (await loyalty.get("L1001")).visit_count == 4

    async def test_tenth_loyalty_visit_is_free_unlimited(self, kiosk, loyalty):
        """Test the visit that reaches a multiple of ten is logged as a free U"""
        await loyalty.create(LoyaltyMember(id="L2002", name="Jo Park", visit_count=9))

        visit = await kiosk.log_member_visit("L2002", "B")

        assert visit.free_wash is True
        assert visit.service_type == "U"
        assert visit.member.visit_count == 10
        assert visit.snapshot.counters["loyU"] == 1
        assert visit.snapshot.counters["loyB"] == 0

    def test_next_wash_free(self, kiosk):
        assert kiosk.is_next_wash_free(9)
        assert kiosk.is_next_wash_free(19)
        assert not kiosk.is_next_wash_free(10)
        assert not kiosk.is_next_wash_free(0)

    async def test_prepaid_visit_decrements(self, kiosk, prepaid, sample_prepaid):
        await prepaid.create(prepaid.validate(sample_prepaid))

        visit = await kiosk.log_member_visit("DB101")

        assert visit.member.prepaid_washes == 2
        assert visit.service_type == "D"
        assert visit.snapshot.counters["preD"] == 1
        assert (await prepaid.get("DB101")).prepaid_washes == 2

    async def test_prepaid_without_washes_refused(self, kiosk, prepaid, aggregator):
        """Test an empty prepaid pack logs nothing"""
        await prepaid.create(PrepaidMember(id="BB300", name="Lee Ward", tier="B", prepaid_washes=0))

        with pytest.raises(NoWashesRemainingError):
            await kiosk.log_member_visit("BB300")

        assert (await prepaid.get("BB300")).prepaid_washes == 0
        assert await aggregator.get_aggregate(TODAY_KEY) is None


class TestCashVisits:

    async def test_cash_visit(self, kiosk):
        snapshot = await kiosk.log_cash_visit("B")

        assert snapshot.counters["cash"] == 1
        assert snapshot.counters["cashB"] == 1

    async def test_cash_visit_unknown_service(self, kiosk):
        with pytest.raises(InvalidArgumentError):
            await kiosk.log_cash_visit("Z")


class TestSharedDatabase:
    """Two kiosks with separate member stores, as in two server workers"""

    @pytest.fixture
    def other_kiosk(self, session_factory, aggregator) -> KioskService:
        other_store = MemberStore(
            SubscriptionRepository(session_factory),
            LoyaltyRepository(session_factory),
            PrepaidRepository(session_factory),
        )
        return KioskService(other_store, aggregator, free_wash_interval=10)

    async def test_prepaid_balance_not_overdrawn(self, kiosk, other_kiosk, prepaid, aggregator):
        await prepaid.create(PrepaidMember(id="DB500", name="Ash Young", tier="D", prepaid_washes=2))

        await kiosk.log_member_visit("DB500")
        await other_kiosk.log_member_visit("DB500")
        with pytest.raises(NoWashesRemainingError):
            await kiosk.log_member_visit("DB500")

        assert (await prepaid.get("DB500")).prepaid_washes == 0
        assert (await aggregator.get_aggregate(TODAY_KEY)).counters["preD"] == 2

    async def test_loyalty_punches_not_lost(self, kiosk, other_kiosk, loyalty):
        await loyalty.create(LoyaltyMember(id="L600", name="Max Hill", visit_count=0))

        await kiosk.log_member_visit("L600", "B")
        await other_kiosk.log_member_visit("L600", "B")
        visit = await kiosk.log_member_visit("L600", "B")

        assert visit.member.visit_count == 3
        assert (await loyalty.get("L600")).visit_count == 3

    async def test_concurrent_redemptions(self, kiosk, other_kiosk, prepaid):
        await prepaid.create(PrepaidMember(id="UB700", name="Cy Lane", tier="U", prepaid_washes=3))

        results = await asyncio.gather(
            *(k.log_member_visit("UB700") for k in (kiosk, other_kiosk) * 3),
            return_exceptions=True,
        )

        refused = [r for r in results if isinstance(r, NoWashesRemainingError)]
        assert len(refused) == 3
        assert len(results) - len(refused) == 3
        assert (await prepaid.get("UB700")).prepaid_washes == 0

    async def test_member_deleted_elsewhere(self, kiosk, other_kiosk, loyalty):
        await loyalty.create(LoyaltyMember(id="L800", name="Bo Dean", visit_count=1))
        await kiosk.lookup("L800")

        await other_kiosk.store.delete(MemberKind.LOYALTY, "L800")

        with pytest.raises(MemberNotFoundError):
            await kiosk.log_member_visit("L800", "B")
        assert await kiosk.store.get(MemberKind.LOYALTY, "L800") is None

    async def test_member_keeps_changing(self, kiosk, prepaid, monkeypatch):
        await prepaid.create(PrepaidMember(id="BB900", name="Di Fox", tier="B", prepaid_washes=5))

        async def always_changed(member_id, expected, updates):
            return None

        monkeypatch.setattr(prepaid, "update_if", always_changed)
        monkeypatch.setattr(kiosk, "max_attempts", 3)

        with pytest.raises(TransactionAbortedError):
            await kiosk.log_member_visit("BB900")
