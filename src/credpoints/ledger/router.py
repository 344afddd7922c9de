"""Ledger API endpoints: balance and posting history."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from credpoints.auth.dependencies import get_current_actor
from credpoints.auth.jwt import Actor
from credpoints.database import get_session
from credpoints.ledger.schemas import BalanceResponse, LedgerEntriesResponse, LedgerEntryResponse
from credpoints.ledger.service import get_balance, list_entries

router = APIRouter(prefix="/api/v1", tags=["Ledger"])


@router.get("/ledger/balance", response_model=BalanceResponse)
async def my_balance(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """Get the caller's CRED point balance."""
    return BalanceResponse(user_id=actor.id, cred_points=await get_balance(db, actor.id))


@router.get("/ledger/entries", response_model=LedgerEntriesResponse)
async def my_entries(
    limit: int = Query(50, ge=1, le=200),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_session),
):
    """Get the caller's postings, newest first."""
    entries = await list_entries(db, actor.id, limit=limit)
    return LedgerEntriesResponse(
        entries=[LedgerEntryResponse.model_validate(e) for e in entries],
        balance=await get_balance(db, actor.id),
    )
