"""
Kiosk Service

The attendant types a member code; the code's shape tells which collection
to search. Logging a visit updates the member where the membership needs it
(loyalty punch count, prepaid balance) and then records the visit in the
daily aggregate.

Code grammar:
    L + 3-5 digits          loyalty
    B/D/U + B + 3-5 digits  prepaid
    B/D/U + 3-5 digits      subscription
"""

import re
from datetime import date
from typing import Any, Callable, Dict, Optional

import structlog
from pydantic import BaseModel

from carwash.config import get_settings
from carwash.exceptions import (
    InvalidArgumentError,
    MemberNotFoundError,
    NoWashesRemainingError,
    TransactionAbortedError,
)
from carwash.members.schemas import LoyaltyMember, Member, MemberKind, PrepaidMember
from carwash.members.store import AnyMember, MemberStore
from carwash.visits.aggregation import VisitAggregator
from carwash.visits.schemas import (
    ServiceType,
    VisitCategory,
    VisitSnapshot,
    parse_service_type,
)

logger = structlog.get_logger(__name__)
settings = get_settings()

KIOSK_CODE = re.compile(r"^([BDUL]\d{3,5}|[BDU]B\d{3,5})$")


class KioskVisit(BaseModel):
    """Result of logging a member visit"""
    member: Member
    service_type: ServiceType
    free_wash: bool = False
    snapshot: VisitSnapshot


def classify_code(code: str) -> MemberKind:
    """
    Membership kind a kiosk code belongs to.

    Raises:
        InvalidArgumentError: Code does not follow the kiosk grammar
    """
    if not isinstance(code, str) or not KIOSK_CODE.match(code):
        raise InvalidArgumentError(
            "Code must be B/D/U/L + 3-5 digits (e.g. B123) "
            "or BB/DB/UB + 3-5 digits for prepaid (e.g. BB101)"
        )
    if code[0] == "L":
        return MemberKind.LOYALTY
    if code[1] == "B":
        return MemberKind.PREPAID
    return MemberKind.SUBSCRIPTION


class KioskService:
    """Member lookup and visit logging for the front desk"""

    def __init__(
        self,
        store: MemberStore,
        visits: VisitAggregator,
        free_wash_interval: Optional[int] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.store = store
        self.visits = visits
        self.free_wash_interval = free_wash_interval or settings.members.free_wash_interval
        self._today = today or visits.today
        self.max_attempts = visits.max_attempts

    async def lookup(self, code: str) -> AnyMember:
        """
        Member record for a typed code.

        Raises:
            InvalidArgumentError: Malformed code
            MemberNotFoundError: No member with that code
        """
        kind = classify_code(code)
        member = await self.store.get(kind, code)
        if member is None:
            raise MemberNotFoundError(f"No member found with ID: {code}", code)
        return member

    def is_next_wash_free(self, visit_count: int) -> bool:
        return (visit_count + 1) % self.free_wash_interval == 0

    async def _current(self, kind: MemberKind, code: str) -> AnyMember:
        """Member as stored right now; other workers may have changed it."""
        member = await self.store.repository(kind).get(code)
        if member is None:
            self.store.state(kind).records.pop(code, None)
            raise MemberNotFoundError(f"No member found with ID: {code}", code)
        return self.store.put(member)

    async def _charge(self, kind: MemberKind, code: str, charge: Callable[[AnyMember], Dict[str, Any]]):
        """
        Re-read the member, let ``charge`` compute the new field values from
        the stored ones, and write them only if those fields are unchanged.

        Returns:
            (member before the visit, member after the visit)
        """
        repository = self.store.repository(kind)
        for _ in range(self.max_attempts):
            before = await self._current(kind, code)
            changes = charge(before)
            expected = {name: getattr(before, name) for name in changes if name != "last_visit_date"}
            after = await repository.update_if(code, expected, changes)
            if after is not None:
                return before, self.store.put(after)

        logger.warning("Member kept changing under the kiosk", member_id=code, attempts=self.max_attempts)
        raise TransactionAbortedError(code, self.max_attempts, target=f"{kind.value} member")

    async def log_member_visit(self, code: str, service_type: Optional[str] = None) -> KioskVisit:
        """
        Log a visit for the member behind a code.

        Subscription and prepaid visits use the tier letter of the code as
        the service type. Loyalty visits need a service type unless this
        visit earns the free wash, which is always logged as Unlimited.
        Punch counts and prepaid balances are read from the database, not
        the cache, and written with a compare-and-set.

        Raises:
            InvalidArgumentError: Missing or unknown service type
            NoWashesRemainingError: Prepaid balance is zero
            TransactionAbortedError: The member kept changing concurrently
        """
        kind = classify_code(code)
        requested = parse_service_type(service_type)
        today = self._today()

        if kind == MemberKind.SUBSCRIPTION:
            member = await self.lookup(code)
            service = ServiceType(member.id[0])
            snapshot = await self.visits.record_visit(VisitCategory.SUBSCRIPTION.value, service.value)
            return KioskVisit(member=member, service_type=service, snapshot=snapshot)

        if kind == MemberKind.LOYALTY:
            def punch(member: LoyaltyMember) -> Dict[str, Any]:
                if requested is None and not self.is_next_wash_free(member.visit_count):
                    raise InvalidArgumentError("Loyalty visits need a service type (B, D or U)")
                return {"visit_count": member.visit_count + 1, "last_visit_date": today}

            before, updated = await self._charge(kind, code, punch)
            free_wash = self.is_next_wash_free(before.visit_count)
            service = ServiceType.UNLIMITED if free_wash else requested
            snapshot = await self.visits.record_visit(VisitCategory.LOYALTY.value, service.value)

            if free_wash:
                logger.info("Free loyalty wash earned", member_id=code, visit_count=updated.visit_count)
            return KioskVisit(member=updated, service_type=service, free_wash=free_wash, snapshot=snapshot)

        def redeem(member: PrepaidMember) -> Dict[str, Any]:
            if member.prepaid_washes <= 0:
                raise NoWashesRemainingError(member.id)
            return {"prepaid_washes": member.prepaid_washes - 1, "last_visit_date": today}

        before, updated = await self._charge(kind, code, redeem)
        service = ServiceType(updated.tier)
        snapshot = await self.visits.record_visit(VisitCategory.PREPAID.value, service.value)
        return KioskVisit(member=updated, service_type=service, snapshot=snapshot)

    async def log_cash_visit(self, service_type: str) -> VisitSnapshot:
        """Walk-in customer paying cash."""
        if service_type is None:
            raise InvalidArgumentError("Cash visits need a service type (B, D or U)")
        return await self.visits.record_visit(VisitCategory.CASH.value, service_type)
