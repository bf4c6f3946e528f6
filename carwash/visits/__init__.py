"""
Visits Module
"""
from .aggregation import VisitAggregator
from .schemas import (
    COUNTER_NAMES,
    DailyAggregate,
    PurgeResult,
    ServiceType,
    VisitCategory,
    VisitSnapshot,
)

__all__ = [
    "VisitAggregator",
    "COUNTER_NAMES",
    "DailyAggregate",
    "PurgeResult",
    "ServiceType",
    "VisitCategory",
    "VisitSnapshot",
]
