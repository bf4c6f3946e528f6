"""
Visit API Endpoints

Record visit events and read the daily aggregates.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from carwash.exceptions import NotFoundError
from carwash.serving.api.dependencies import get_visit_aggregator
from carwash.serving.cache import analytics_cache
from carwash.visits.aggregation import VisitAggregator
from carwash.visits.schemas import DailyAggregate, PurgeResult, VisitSnapshot

router = APIRouter()


class VisitRequest(BaseModel):
    """Visit event; both fields are optional"""
    category: Optional[str] = None
    service_type: Optional[str] = None


@router.post("", response_model=VisitSnapshot)
async def record_visit(
    visit: VisitRequest,
    visits: VisitAggregator = Depends(get_visit_aggregator),
) -> VisitSnapshot:
    """Count one visit against today's aggregate."""
    snapshot = await visits.record_visit(visit.category, visit.service_type)
    await analytics_cache.invalidate_all()
    return snapshot


@router.get("", response_model=List[DailyAggregate])
async def list_aggregates(
    start: str = Query(..., description="First day, YYYY-MM-DD"),
    end: str = Query(..., description="Last day, YYYY-MM-DD"),
    visits: VisitAggregator = Depends(get_visit_aggregator),
) -> List[DailyAggregate]:
    """Stored aggregates from start to end inclusive, oldest first."""
    return await visits.get_range(start, end)


@router.post("/purge", response_model=PurgeResult)
async def purge_aggregates(
    retention_days: Optional[int] = Query(default=None, ge=0),
    visits: VisitAggregator = Depends(get_visit_aggregator),
) -> PurgeResult:
    """Delete aggregates older than the retention window."""
    try:
        return await visits.purge_older_than(retention_days)
    finally:
        await analytics_cache.invalidate_all()


@router.get("/{date_key}", response_model=DailyAggregate)
async def get_aggregate(
    date_key: str,
    visits: VisitAggregator = Depends(get_visit_aggregator),
) -> DailyAggregate:
    aggregate = await visits.get_aggregate(date_key)
    if aggregate is None:
        raise NotFoundError(f"No visits recorded for {date_key}", date_key)
    return aggregate
