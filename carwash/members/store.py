"""
Member Store

In-process mirror of the three member collections. Subscription members are
loaded eagerly at startup; loyalty and prepaid members load on first use.

Reads go through the cache and fall back to the repository on a miss.
Writes go to the repository first and patch the cache only once they
succeed. The mirror is never reconciled with other processes; refresh()
reloads a kind on demand.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog

from carwash.exceptions import MemberNotFoundError
from carwash.members.repository import (
    LoyaltyRepository,
    MemberRepository,
    PrepaidRepository,
    SubscriptionRepository,
)
from carwash.members.schemas import (
    LoyaltyMember,
    MemberKind,
    PrepaidMember,
    SubscriptionMember,
)

logger = structlog.get_logger(__name__)

AnyMember = Union[SubscriptionMember, LoyaltyMember, PrepaidMember]


@dataclass
class CollectionState:
    """Cached records and load state for one kind"""
    records: Dict[str, AnyMember] = field(default_factory=dict)
    loaded: bool = False
    error: Optional[str] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class MemberStore:
    """
    Read-through / write-through cache over the member repositories.

    Example:
        store = MemberStore(SubscriptionRepository(f), LoyaltyRepository(f), PrepaidRepository(f))
        await store.load()
        member = await store.get(MemberKind.LOYALTY, "L1001")
    """

    def __init__(
        self,
        subscriptions: SubscriptionRepository,
        loyalty: LoyaltyRepository,
        prepaid: PrepaidRepository,
    ):
        self._repositories: Dict[MemberKind, MemberRepository] = {
            MemberKind.SUBSCRIPTION: subscriptions,
            MemberKind.LOYALTY: loyalty,
            MemberKind.PREPAID: prepaid,
        }
        self._state: Dict[MemberKind, CollectionState] = {
            kind: CollectionState() for kind in MemberKind
        }

    def repository(self, kind: Union[MemberKind, str]) -> MemberRepository:
        return self._repositories[MemberKind(kind)]

    def state(self, kind: Union[MemberKind, str]) -> CollectionState:
        return self._state[MemberKind(kind)]

    def is_loaded(self, kind: Union[MemberKind, str]) -> bool:
        return self.state(kind).loaded

    def members(self, kind: Union[MemberKind, str]) -> List[AnyMember]:
        """Cached records of one kind as currently mirrored."""
        return list(self.state(kind).records.values())

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def load(self) -> None:
        """Eager load done at startup; only subscription members."""
        await self.ensure_loaded(MemberKind.SUBSCRIPTION)

    async def ensure_loaded(self, kind: Union[MemberKind, str]) -> List[AnyMember]:
        """
        Load a kind once. Concurrent callers wait for the same fetch.

        Returns:
            The cached records of that kind
        """
        kind = MemberKind(kind)
        state = self._state[kind]
        if state.loaded:
            return self.members(kind)

        async with state.lock:
            if not state.loaded:
                await self._fetch(kind, state)
        return self.members(kind)

    async def refresh(self, kind: Union[MemberKind, str]) -> List[AnyMember]:
        """Replace the cached records of a kind with a fresh full read."""
        kind = MemberKind(kind)
        state = self._state[kind]
        async with state.lock:
            await self._fetch(kind, state)
        return self.members(kind)

    async def _fetch(self, kind: MemberKind, state: CollectionState) -> None:
        state.error = None
        try:
            records = await self._repositories[kind].get_all()
        except Exception as e:
            state.error = f"Failed to load {kind.value} members"
            logger.error("Member load failed", kind=kind.value, error=str(e), error_type=type(e).__name__)
            raise

        state.records = {r.id: r for r in records}
        state.loaded = True
        logger.info("Members cached", kind=kind.value, count=len(records))

    def clear(self) -> None:
        """Forget everything, e.g. when the operator signs out."""
        for kind in MemberKind:
            self._state[kind] = CollectionState()

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    async def get(self, kind: Union[MemberKind, str], member_id: str) -> Optional[AnyMember]:
        """Cached record, else fetched and cached; None when absent."""
        state = self.state(kind)
        cached = state.records.get(member_id)
        if cached is not None:
            return cached

        record = await self.repository(kind).get(member_id)
        if record is not None:
            state.records.setdefault(record.id, record)
        return record

    async def create(self, record: AnyMember) -> str:
        member_id = await self.repository(record.kind).create(record)
        self.state(record.kind).records[member_id] = record
        return member_id

    async def update(
        self,
        kind: Union[MemberKind, str],
        member_id: str,
        updates: Mapping[str, Any],
    ) -> str:
        repository = self.repository(kind)
        changes = repository.validate_updates(updates)
        records = self.state(kind).records
        try:
            await repository.update(member_id, changes)
        except MemberNotFoundError:
            # deleted elsewhere; stop serving the stale copy
            records.pop(member_id, None)
            raise

        cached = records.get(member_id)
        if cached is not None:
            records[member_id] = cached.model_copy(update=changes)
        return member_id

    def put(self, record: AnyMember) -> AnyMember:
        """Replace the cached copy with a record read from the repository."""
        self.state(record.kind).records[record.id] = record
        return record

    async def delete(self, kind: Union[MemberKind, str], member_id: str) -> str:
        records = self.state(kind).records
        try:
            await self.repository(kind).delete(member_id)
        except MemberNotFoundError:
            records.pop(member_id, None)
            raise
        records.pop(member_id, None)
        return member_id
