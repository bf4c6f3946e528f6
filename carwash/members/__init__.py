"""
Members Module
"""
from .repository import (
    LoyaltyRepository,
    MemberRepository,
    PrepaidRepository,
    SubscriptionRepository,
)
from .schemas import (
    LoyaltyMember,
    Member,
    MemberKind,
    PrepaidMember,
    SubscriptionMember,
)
from .store import MemberStore

__all__ = [
    "LoyaltyRepository",
    "MemberRepository",
    "PrepaidRepository",
    "SubscriptionRepository",
    "LoyaltyMember",
    "Member",
    "MemberKind",
    "PrepaidMember",
    "SubscriptionMember",
    "MemberStore",
]
