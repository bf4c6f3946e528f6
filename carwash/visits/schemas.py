"""
Visit aggregate schemas and counter naming.
"""

import re
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from carwash.exceptions import InvalidArgumentError


class VisitCategory(str, Enum):
    """Customer kind at the time of the visit"""
    SUBSCRIPTION = "subscription"
    LOYALTY = "loyalty"
    PREPAID = "prepaid"
    CASH = "cash"


class ServiceType(str, Enum):
    """Wash tier performed"""
    BASIC = "B"
    DELUXE = "D"
    UNLIMITED = "U"


CATEGORY_PREFIX: Dict[VisitCategory, str] = {
    VisitCategory.SUBSCRIPTION: "sub",
    VisitCategory.LOYALTY: "loy",
    VisitCategory.PREPAID: "pre",
    VisitCategory.CASH: "cash",
}


def cross_counter(category: VisitCategory, service_type: ServiceType) -> str:
    """Counter name for one category/service pair, e.g. subB"""
    return f"{CATEGORY_PREFIX[category]}{service_type.value}"


# Every counter a snapshot reports, in display order
COUNTER_NAMES: List[str] = [c.value for c in VisitCategory] + [
    cross_counter(c, s) for c in VisitCategory for s in ServiceType
]

_DATE_KEY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_date_key(value: str) -> date:
    """
    Parse a YYYY-MM-DD aggregate key.

    Raises:
        InvalidArgumentError: If the key is not a real calendar date
    """
    if not isinstance(value, str) or not _DATE_KEY.match(value):
        raise InvalidArgumentError(f"Date key must be YYYY-MM-DD, got {value!r}")
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise InvalidArgumentError(f"Date key must be YYYY-MM-DD, got {value!r}") from e


def to_date_key(day: date) -> str:
    return day.isoformat()


def parse_category(value: Optional[str]) -> Optional[VisitCategory]:
    if value is None:
        return None
    try:
        return VisitCategory(value)
    except ValueError:
        allowed = ", ".join(c.value for c in VisitCategory)
        raise InvalidArgumentError(f"Invalid category {value!r}; expected one of: {allowed}") from None


def parse_service_type(value: Optional[str]) -> Optional[ServiceType]:
    if value is None:
        return None
    try:
        return ServiceType(value)
    except ValueError:
        allowed = ", ".join(s.value for s in ServiceType)
        raise InvalidArgumentError(f"Invalid service type {value!r}; expected one of: {allowed}") from None


class DailyAggregate(BaseModel):
    """Stored aggregate for one day"""
    model_config = ConfigDict(from_attributes=True)

    date_key: str
    date: datetime
    count: int
    counters: Dict[str, int] = Field(default_factory=dict)
    created_at: datetime
    last_updated: datetime

    def counter(self, name: str) -> int:
        return self.counters.get(name, 0)


class VisitSnapshot(BaseModel):
    """Post-increment state returned by record_visit"""
    date_key: str
    count: int
    counters: Dict[str, int]


class PurgeResult(BaseModel):
    """Outcome of an age-based purge"""
    cutoff_key: str
    targeted: int
    deleted: int
    failed_ids: List[str] = Field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed_ids
