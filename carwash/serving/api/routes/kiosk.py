"""
Kiosk API Endpoints

Front desk lookups and visit logging by typed member code.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from carwash.kiosk.service import KioskService, KioskVisit
from carwash.members.schemas import Member
from carwash.serving.api.dependencies import get_kiosk_service
from carwash.serving.cache import analytics_cache
from carwash.visits.schemas import VisitSnapshot

router = APIRouter()


class CodeRequest(BaseModel):
    code: str


class MemberVisitRequest(BaseModel):
    code: str
    service_type: Optional[str] = None


class CashVisitRequest(BaseModel):
    service_type: str


@router.post("/lookup", response_model=Member)
async def lookup_member(
    request: CodeRequest,
    kiosk: KioskService = Depends(get_kiosk_service),
):
    return await kiosk.lookup(request.code.strip().upper())


@router.post("/visits", response_model=KioskVisit)
async def log_member_visit(
    request: MemberVisitRequest,
    kiosk: KioskService = Depends(get_kiosk_service),
) -> KioskVisit:
    """
    Log a visit for a member code.

    Loyalty members need a service type unless the visit is their free wash.
    """
    visit = await kiosk.log_member_visit(request.code.strip().upper(), request.service_type)
    await analytics_cache.invalidate_all()
    return visit


@router.post("/cash", response_model=VisitSnapshot)
async def log_cash_visit(
    request: CashVisitRequest,
    kiosk: KioskService = Depends(get_kiosk_service),
) -> VisitSnapshot:
    snapshot = await kiosk.log_cash_visit(request.service_type)
    await analytics_cache.invalidate_all()
    return snapshot
