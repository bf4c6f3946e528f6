"""
Database Models

Each table is a keyed collection of flat records:

- DailyVisit: one aggregate row per calendar day, keyed by "YYYY-MM-DD"
- SubscriptionMemberRow: monthly subscription members ("members")
- LoyaltyMemberRow: punch-card loyalty members ("loyalty_members")
- PrepaidMemberRow: prepaid wash-pack members ("prepaid_members")

Member ids are the human-entered codes typed at the kiosk.
"""

from datetime import date, datetime
from typing import Dict, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# JSONB on PostgreSQL, plain JSON elsewhere
CounterMap = JSON().with_variant(JSONB(), "postgresql")


# =============================================================================
# VISIT AGGREGATES
# =============================================================================

class DailyVisit(Base):
    """
    Daily Visit Aggregate

    Running visit counters for one UTC calendar day. Rows are only written
    through a versioned read-modify-write; a stale version aborts the flush.
    """
    __tablename__ = "daily_visits"

    date_key: Mapped[str] = mapped_column(String(10), primary_key=True)  # YYYY-MM-DD
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)  # 00:00 UTC
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Only counters incremented at least once are present
    counters: Mapped[Dict[str, int]] = mapped_column(CounterMap, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_daily_visits_date", "date"),
    )


# =============================================================================
# MEMBERS
# =============================================================================

class SubscriptionMemberRow(Base):
    """Unlimited-wash subscription member; id is tier letter + 3 digits"""
    __tablename__ = "members"

    id: Mapped[str] = mapped_column(String(16), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    car: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    valid_payment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    email: Mapped[Optional[str]] = mapped_column(String(320))


class LoyaltyMemberRow(Base):
    """Loyalty card member; every Nth visit is free"""
    __tablename__ = "loyalty_members"

    id: Mapped[str] = mapped_column(String(16), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    issue_date: Mapped[Optional[date]] = mapped_column(Date)
    last_visit_date: Mapped[Optional[date]] = mapped_column(Date)
    visit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    email: Mapped[Optional[str]] = mapped_column(String(320))


class PrepaidMemberRow(Base):
    """Prepaid wash-pack member; tier letter fixes the wash type"""
    __tablename__ = "prepaid_members"

    id: Mapped[str] = mapped_column(String(16), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    tier: Mapped[str] = mapped_column(String(1), nullable=False)
    issue_date: Mapped[Optional[date]] = mapped_column(Date)
    last_visit_date: Mapped[Optional[date]] = mapped_column(Date)
    prepaid_washes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    email: Mapped[Optional[str]] = mapped_column(String(320))
