"""
Member Repositories

Point CRUD over one flat record per member id. The three membership kinds
share MemberRepository and differ only in table, record schema, update
schema and id format.

create() is an unconditional overwrite; update() and delete() require the
record to exist.
"""

import re
from typing import Any, ClassVar, Dict, Generic, List, Mapping, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel, ValidationError
from sqlalchemy import select
from sqlalchemy import update as sql_update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carwash.database.connection import get_db
from carwash.database.models import (
    Base,
    LoyaltyMemberRow,
    PrepaidMemberRow,
    SubscriptionMemberRow,
)
from carwash.exceptions import InvalidArgumentError, MemberNotFoundError
from carwash.members.schemas import (
    LOYALTY_ID,
    PREPAID_ID,
    SUBSCRIPTION_ID,
    LoyaltyMember,
    LoyaltyMemberUpdate,
    MemberKind,
    PrepaidMember,
    PrepaidMemberUpdate,
    SubscriptionMember,
    SubscriptionMemberUpdate,
)

logger = structlog.get_logger(__name__)

RecordT = TypeVar("RecordT", SubscriptionMember, LoyaltyMember, PrepaidMember)

# Columns an update may clear
_NULLABLE_FIELDS = frozenset({"email", "issue_date", "last_visit_date"})


class MemberRepository(Generic[RecordT]):
    """
    CRUD for one membership kind.

    Subclasses bind the table, schemas and id format.
    """

    kind: ClassVar[MemberKind]
    label: ClassVar[str]
    model: ClassVar[Type[Base]]
    schema: ClassVar[Type[BaseModel]]
    update_schema: ClassVar[Type[BaseModel]]
    id_pattern: ClassVar[re.Pattern]

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory

    def _check_id(self, member_id: str) -> None:
        if not isinstance(member_id, str) or not self.id_pattern.match(member_id):
            raise InvalidArgumentError(
                f"Invalid {self.kind.value} member ID {member_id!r}; expected {self.id_pattern.pattern}"
            )

    def _to_record(self, row: Base) -> RecordT:
        return self.schema.model_validate(row)

    def validate(self, data: Mapping[str, Any]) -> RecordT:
        """Build a record of this kind from raw fields."""
        try:
            return self.schema.model_validate({**data, "kind": self.kind.value})
        except ValidationError as e:
            raise InvalidArgumentError(f"Invalid {self.kind.value} member: {e}") from e

    def validate_updates(self, updates: Mapping[str, Any]) -> Dict[str, Any]:
        """Check a partial update and return only the fields it sets."""
        try:
            parsed = self.update_schema.model_validate(dict(updates))
        except ValidationError as e:
            raise InvalidArgumentError(f"Invalid {self.kind.value} member update: {e}") from e

        changes = parsed.model_dump(exclude_unset=True)
        cleared = [k for k, v in changes.items() if v is None and k not in _NULLABLE_FIELDS]
        if cleared:
            raise InvalidArgumentError(f"Fields cannot be cleared: {', '.join(sorted(cleared))}")
        return changes

    async def create(self, record: RecordT) -> str:
        """
        Write the full record at its id, replacing any existing one.

        Returns:
            The member id
        """
        if not isinstance(record, self.schema):
            raise InvalidArgumentError(
                f"Expected {self.schema.__name__}, got {type(record).__name__}"
            )

        fields = record.model_dump(exclude={"kind"})
        async with get_db(self._session_factory) as db:
            await db.merge(self.model(**fields))

        logger.info("Member saved", kind=self.kind.value, member_id=record.id)
        return record.id

    async def get(self, member_id: str) -> Optional[RecordT]:
        """Record for the id, or None when absent."""
        self._check_id(member_id)

        async with get_db(self._session_factory) as db:
            row = await db.get(self.model, member_id)
            return self._to_record(row) if row is not None else None

    async def get_all(self) -> List[RecordT]:
        """Every record of this kind, unordered."""
        async with get_db(self._session_factory) as db:
            result = await db.execute(select(self.model))
            rows = result.scalars().all()
            records = [self._to_record(r) for r in rows]

        logger.debug("Members loaded", kind=self.kind.value, count=len(records))
        return records

    async def update(self, member_id: str, updates: Mapping[str, Any]) -> str:
        """
        Apply a partial update to an existing record.

        Raises:
            MemberNotFoundError: No record with that id
            InvalidArgumentError: Malformed id or update fields
        """
        self._check_id(member_id)
        changes = self.validate_updates(updates)

        async with get_db(self._session_factory) as db:
            row = await db.get(self.model, member_id)
            if row is None:
                raise self._not_found(member_id)
            for field, value in changes.items():
                setattr(row, field, value)

        logger.info("Member updated", kind=self.kind.value, member_id=member_id, fields=sorted(changes))
        return member_id

    async def update_if(
        self,
        member_id: str,
        expected: Mapping[str, Any],
        updates: Mapping[str, Any],
    ) -> Optional[RecordT]:
        """
        Apply a partial update only while the stored fields still equal
        ``expected``, in a single UPDATE statement.

        Returns:
            The updated record, or None when another writer changed one of
            the expected fields first

        Raises:
            MemberNotFoundError: No record with that id
        """
        self._check_id(member_id)
        changes = self.validate_updates(updates)
        guards = [getattr(self.model, name) == value for name, value in expected.items()]

        async with get_db(self._session_factory) as db:
            result = await db.execute(
                sql_update(self.model)
                .where(self.model.id == member_id, *guards)
                .values(**changes)
                .execution_options(synchronize_session=False)
            )
            row = await db.get(self.model, member_id)
            if row is None:
                raise self._not_found(member_id)
            if result.rowcount == 0:
                logger.debug("Member changed concurrently", kind=self.kind.value, member_id=member_id)
                return None
            record = self._to_record(row)

        logger.info("Member updated", kind=self.kind.value, member_id=member_id, fields=sorted(changes))
        return record

    async def delete(self, member_id: str) -> str:
        """
        Remove an existing record.

        Raises:
            MemberNotFoundError: No record with that id
        """
        self._check_id(member_id)

        async with get_db(self._session_factory) as db:
            row = await db.get(self.model, member_id)
            if row is None:
                raise self._not_found(member_id)
            await db.delete(row)

        logger.info("Member deleted", kind=self.kind.value, member_id=member_id)
        return member_id

    def _not_found(self, member_id: str) -> MemberNotFoundError:
        logger.warning("Member not found", kind=self.kind.value, member_id=member_id)
        return MemberNotFoundError(f"{self.label} with ID {member_id} does not exist", member_id)


class SubscriptionRepository(MemberRepository[SubscriptionMember]):
    kind = MemberKind.SUBSCRIPTION
    label = "Member"
    model = SubscriptionMemberRow
    schema = SubscriptionMember
    update_schema = SubscriptionMemberUpdate
    id_pattern = SUBSCRIPTION_ID


class LoyaltyRepository(MemberRepository[LoyaltyMember]):
    kind = MemberKind.LOYALTY
    label = "Loyalty member"
    model = LoyaltyMemberRow
    schema = LoyaltyMember
    update_schema = LoyaltyMemberUpdate
    id_pattern = LOYALTY_ID


class PrepaidRepository(MemberRepository[PrepaidMember]):
    kind = MemberKind.PREPAID
    label = "Prepaid member"
    model = PrepaidMemberRow
    schema = PrepaidMember
    update_schema = PrepaidMemberUpdate
    id_pattern = PREPAID_ID
