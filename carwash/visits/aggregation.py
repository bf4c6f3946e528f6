"""
Daily Visit Aggregation

One aggregate row per UTC calendar day holds the running visit count plus
per-category and per-service breakdown counters.

Increments are a read-modify-write inside one transaction. The row carries a
version column (SQLAlchemy ``version_id_col``); the UPDATE only matches the
version that was read, so a concurrent writer makes the flush fail with
StaleDataError and the whole cycle is retried. Two callers creating the same
new day collide on the primary key instead, which is retried the same way.
"""

import asyncio
import random
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, List, Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from carwash.config import get_settings
from carwash.database.connection import get_db
from carwash.database.models import DailyVisit
from carwash.exceptions import (
    InvalidArgumentError,
    PurgeIncompleteError,
    TransactionAbortedError,
)
from carwash.visits.schemas import (
    COUNTER_NAMES,
    DailyAggregate,
    PurgeResult,
    ServiceType,
    VisitCategory,
    VisitSnapshot,
    cross_counter,
    parse_category,
    parse_date_key,
    parse_service_type,
    to_date_key,
)

logger = structlog.get_logger(__name__)
settings = get_settings()

# Write conflicts that mean "someone else got there first"
_CONFLICTS = (StaleDataError, IntegrityError)

_MAX_BACKOFF_SECONDS = 0.25


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class VisitAggregator:
    """
    Records visit events and serves the daily aggregates.

    Example:
        aggregator = VisitAggregator(session_factory)
        snapshot = await aggregator.record_visit("subscription", "B")
        week = await aggregator.get_range("2026-10-12", "2026-10-19")
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        clock: Callable[[], datetime] = utc_now,
        max_attempts: Optional[int] = None,
        backoff_ms: Optional[int] = None,
        purge_concurrency: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self.max_attempts = settings.visits.transaction_max_attempts if max_attempts is None else max_attempts
        self.backoff_ms = settings.visits.transaction_backoff_ms if backoff_ms is None else backoff_ms
        self.purge_concurrency = settings.visits.purge_concurrency if purge_concurrency is None else purge_concurrency

        if self.max_attempts < 1:
            raise InvalidArgumentError("max_attempts must be at least 1")
        if self.purge_concurrency < 1:
            raise InvalidArgumentError("purge_concurrency must be at least 1")

    def _now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            return now.replace(tzinfo=timezone.utc)
        return now.astimezone(timezone.utc)

    def today(self) -> date:
        """Current UTC calendar day"""
        return self._now().date()

    def _backoff(self, attempt: int) -> float:
        ceiling = self.backoff_ms / 1000 * (2 ** (attempt - 1))
        return random.uniform(0, min(ceiling, _MAX_BACKOFF_SECONDS))

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def record_visit(
        self,
        category: Optional[str] = None,
        service_type: Optional[str] = None,
    ) -> VisitSnapshot:
        """
        Record one visit against today's aggregate.

        Args:
            category: subscription, loyalty, prepaid or cash
            service_type: B, D or U; only together with a category

        Returns:
            VisitSnapshot: count and every known counter after the increment

        Raises:
            InvalidArgumentError: Unknown category or service type, or a
                service type without a category
            TransactionAbortedError: Conflicts persisted for every attempt
        """
        parsed_category = parse_category(category)
        parsed_service = parse_service_type(service_type)
        if parsed_service is not None and parsed_category is None:
            raise InvalidArgumentError("Service type requires a category")

        date_key = to_date_key(self.today())
        last_conflict: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                snapshot = await self._apply_visit(date_key, parsed_category, parsed_service)
            except _CONFLICTS as e:
                last_conflict = e
                logger.debug(
                    "Visit transaction conflict",
                    date_key=date_key,
                    attempt=attempt,
                    error_type=type(e).__name__,
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self._backoff(attempt))
                continue

            logger.info(
                "Visit recorded",
                date_key=date_key,
                category=parsed_category.value if parsed_category else None,
                service_type=parsed_service.value if parsed_service else None,
                count=snapshot.count,
                attempts=attempt,
            )
            return snapshot

        logger.error(
            "Visit transaction aborted",
            date_key=date_key,
            attempts=self.max_attempts,
            error=str(last_conflict),
        )
        raise TransactionAbortedError(date_key, self.max_attempts) from last_conflict

    async def _apply_visit(
        self,
        date_key: str,
        category: Optional[VisitCategory],
        service_type: Optional[ServiceType],
    ) -> VisitSnapshot:
        """One read-modify-write attempt; conflicts surface on commit."""
        now = self._now()

        async with get_db(self._session_factory) as db:
            row = await db.get(DailyVisit, date_key)
            if row is None:
                day = parse_date_key(date_key)
                row = DailyVisit(
                    date_key=date_key,
                    date=datetime.combine(day, time.min, tzinfo=timezone.utc),
                    count=0,
                    counters={},
                    created_at=now,
                    last_updated=now,
                )
                db.add(row)

            counters = dict(row.counters or {})
            if category is not None:
                counters[category.value] = counters.get(category.value, 0) + 1
                if service_type is not None:
                    name = cross_counter(category, service_type)
                    counters[name] = counters.get(name, 0) + 1

            row.count = (row.count or 0) + 1
            row.counters = counters
            row.last_updated = now

            snapshot = VisitSnapshot(
                date_key=date_key,
                count=row.count,
                counters={name: counters.get(name, 0) for name in COUNTER_NAMES},
            )

        return snapshot

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_aggregate(self, date_key: str) -> Optional[DailyAggregate]:
        """Aggregate for one day, or None when nothing was recorded."""
        parse_date_key(date_key)

        async with get_db(self._session_factory) as db:
            row = await db.get(DailyVisit, date_key)
            if row is None:
                return None
            return DailyAggregate.model_validate(row)

    async def get_range(self, start_key: str, end_key: str) -> List[DailyAggregate]:
        """
        Aggregates for every recorded day from start to end, both inclusive.

        Returns:
            List sorted ascending by date key; empty when nothing matches
        """
        parse_date_key(start_key)
        parse_date_key(end_key)

        async with get_db(self._session_factory) as db:
            result = await db.execute(
                select(DailyVisit)
                .where(DailyVisit.date_key >= start_key, DailyVisit.date_key <= end_key)
                .order_by(DailyVisit.date_key)
            )
            rows = result.scalars().all()

        logger.debug("Visit range loaded", start=start_key, end=end_key, days=len(rows))
        return [DailyAggregate.model_validate(r) for r in rows]

    # -------------------------------------------------------------------------
    # Retention
    # -------------------------------------------------------------------------

    async def purge_older_than(self, retention_days: Optional[int] = None) -> PurgeResult:
        """
        Delete aggregates strictly older than today minus retention_days.

        Each delete is its own transaction; at most purge_concurrency run at
        once. Failed deletes do not undo the successful ones.

        Returns:
            PurgeResult with targeted, confirmed deleted and failed keys

        Raises:
            PurgeIncompleteError: One or more deletes failed; carries the result
        """
        if retention_days is None:
            retention_days = settings.visits.retention_days
        if retention_days < 0:
            raise InvalidArgumentError("retention_days must not be negative")

        cutoff_key = to_date_key(self.today() - timedelta(days=retention_days))

        async with get_db(self._session_factory) as db:
            result = await db.execute(
                select(DailyVisit.date_key)
                .where(DailyVisit.date_key < cutoff_key)
                .order_by(DailyVisit.date_key)
            )
            keys = list(result.scalars().all())

        semaphore = asyncio.Semaphore(self.purge_concurrency)

        async def bounded_delete(key: str) -> None:
            async with semaphore:
                await self._delete_aggregate(key)

        outcomes = await asyncio.gather(
            *(bounded_delete(key) for key in keys),
            return_exceptions=True,
        )

        failed_ids: List[str] = []
        for key, outcome in zip(keys, outcomes):
            if isinstance(outcome, Exception):
                logger.error(
                    "Failed to delete aggregate",
                    date_key=key,
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
                failed_ids.append(key)
            elif isinstance(outcome, BaseException):
                raise outcome

        purge = PurgeResult(
            cutoff_key=cutoff_key,
            targeted=len(keys),
            deleted=len(keys) - len(failed_ids),
            failed_ids=failed_ids,
        )
        logger.info(
            "Visit aggregates purged",
            cutoff=cutoff_key,
            targeted=purge.targeted,
            deleted=purge.deleted,
            failed=len(failed_ids),
        )

        if failed_ids:
            raise PurgeIncompleteError(purge)
        return purge

    async def _delete_aggregate(self, date_key: str) -> None:
        async with get_db(self._session_factory) as db:
            await db.execute(delete(DailyVisit).where(DailyVisit.date_key == date_key))
