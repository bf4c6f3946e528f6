"""
Member record schemas.

Each membership kind is its own record type tagged by ``kind``; ``Member``
is the discriminated union used wherever any kind may appear. The update
schemas list the fields a partial update may touch and reject anything else.
"""

import re
from datetime import date
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MemberKind(str, Enum):
    """Membership kinds, each stored in its own table"""
    SUBSCRIPTION = "subscription"
    LOYALTY = "loyalty"
    PREPAID = "prepaid"


SUBSCRIPTION_ID = re.compile(r"^[BDU]\d{3}$")
LOYALTY_ID = re.compile(r"^L\d{3,5}$")
PREPAID_ID = re.compile(r"^[BDU]B\d{3,5}$")

TIERS = ("B", "D", "U")


class _MemberBase(BaseModel):
    model_config = ConfigDict(from_attributes=True, str_strip_whitespace=True)

    id: str
    name: str = Field(min_length=1, max_length=200)
    notes: str = ""
    email: Optional[str] = Field(default=None, max_length=320)

    @field_validator("email")
    @classmethod
    def blank_email_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class SubscriptionMember(_MemberBase):
    """Subscription member, id like B123"""
    kind: Literal["subscription"] = "subscription"
    id: str = Field(pattern=SUBSCRIPTION_ID.pattern)
    car: str = ""
    is_active: bool = True
    valid_payment: bool = True

    @property
    def tier(self) -> str:
        return self.id[0]


class LoyaltyMember(_MemberBase):
    """Loyalty member, id like L1001"""
    kind: Literal["loyalty"] = "loyalty"
    id: str = Field(pattern=LOYALTY_ID.pattern)
    issue_date: Optional[date] = None
    last_visit_date: Optional[date] = None
    visit_count: int = Field(default=0, ge=0)


class PrepaidMember(_MemberBase):
    """Prepaid member, id like DB204"""
    kind: Literal["prepaid"] = "prepaid"
    id: str = Field(pattern=PREPAID_ID.pattern)
    tier: Literal["B", "D", "U"]
    issue_date: Optional[date] = None
    last_visit_date: Optional[date] = None
    prepaid_washes: int = Field(default=0, ge=0)


Member = Annotated[
    Union[SubscriptionMember, LoyaltyMember, PrepaidMember],
    Field(discriminator="kind"),
]


# =============================================================================
# PARTIAL UPDATES
# =============================================================================

class _MemberUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    notes: Optional[str] = None
    email: Optional[str] = Field(default=None, max_length=320)


class SubscriptionMemberUpdate(_MemberUpdate):
    car: Optional[str] = None
    is_active: Optional[bool] = None
    valid_payment: Optional[bool] = None


class LoyaltyMemberUpdate(_MemberUpdate):
    issue_date: Optional[date] = None
    last_visit_date: Optional[date] = None
    visit_count: Optional[int] = Field(default=None, ge=0)


class PrepaidMemberUpdate(_MemberUpdate):
    tier: Optional[Literal["B", "D", "U"]] = None
    issue_date: Optional[date] = None
    last_visit_date: Optional[date] = None
    prepaid_washes: Optional[int] = Field(default=None, ge=0)
