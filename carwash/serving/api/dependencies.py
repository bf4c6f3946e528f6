"""
FastAPI Dependencies

Request-scoped access to the services the application lifespan builds.
Tests replace these through app.dependency_overrides.
"""

from typing import AsyncGenerator

from fastapi import Depends, Request

from carwash.database.connection import get_session_factory
from carwash.kiosk.service import KioskService
from carwash.members.store import MemberStore
from carwash.visits.aggregation import VisitAggregator
from carwash.weather.client import OpenMeteoClient


def get_member_store(request: Request) -> MemberStore:
    """The per-application member store held on app.state."""
    store = getattr(request.app.state, "member_store", None)
    if store is None:
        raise RuntimeError("Member store not initialized")
    return store


def get_visit_aggregator() -> VisitAggregator:
    return VisitAggregator(get_session_factory())


def get_kiosk_service(
    store: MemberStore = Depends(get_member_store),
    visits: VisitAggregator = Depends(get_visit_aggregator),
) -> KioskService:
    return KioskService(store, visits)


async def get_weather_client() -> AsyncGenerator[OpenMeteoClient, None]:
    """Weather client closed after the request."""
    async with OpenMeteoClient() as client:
        yield client
