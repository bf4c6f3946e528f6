"""
Member API Endpoints

CRUD over the three membership kinds. Reads and writes go through the
application's member store, so the cache stays in step with the database.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, status
from pydantic import BaseModel

from carwash.exceptions import MemberNotFoundError
from carwash.members.schemas import Member, MemberKind
from carwash.members.store import MemberStore
from carwash.serving.api.dependencies import get_member_store

router = APIRouter()


class MemberIdResponse(BaseModel):
    id: str


@router.get("/{kind}", response_model=List[Member])
async def list_members(
    kind: MemberKind,
    store: MemberStore = Depends(get_member_store),
):
    """All members of a kind, loading the kind on first use."""
    return await store.ensure_loaded(kind)


@router.post("/{kind}/refresh", response_model=List[Member])
async def refresh_members(
    kind: MemberKind,
    store: MemberStore = Depends(get_member_store),
):
    """Reload a kind from the database, replacing the cached records."""
    return await store.refresh(kind)


@router.get("/{kind}/{member_id}", response_model=Member)
async def get_member(
    kind: MemberKind,
    member_id: str,
    store: MemberStore = Depends(get_member_store),
):
    member = await store.get(kind, member_id)
    if member is None:
        raise MemberNotFoundError(
            f"{store.repository(kind).label} with ID {member_id} does not exist", member_id
        )
    return member


@router.post("/{kind}", response_model=MemberIdResponse, status_code=status.HTTP_201_CREATED)
async def create_member(
    kind: MemberKind,
    payload: Dict[str, Any] = Body(...),
    store: MemberStore = Depends(get_member_store),
) -> MemberIdResponse:
    """
    Save a member record at its id.

    An existing record with the same id is replaced.
    """
    record = store.repository(kind).validate(payload)
    member_id = await store.create(record)
    return MemberIdResponse(id=member_id)


@router.patch("/{kind}/{member_id}", response_model=Member)
async def update_member(
    kind: MemberKind,
    member_id: str,
    updates: Dict[str, Any] = Body(...),
    store: MemberStore = Depends(get_member_store),
):
    """Apply a partial update and return the updated record."""
    await store.update(kind, member_id, updates)
    return await store.get(kind, member_id)


@router.delete("/{kind}/{member_id}", response_model=MemberIdResponse)
async def delete_member(
    kind: MemberKind,
    member_id: str,
    store: MemberStore = Depends(get_member_store),
) -> MemberIdResponse:
    return MemberIdResponse(id=await store.delete(kind, member_id))
