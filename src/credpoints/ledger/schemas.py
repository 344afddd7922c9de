"""Pydantic response models for ledger endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class BalanceResponse(BaseModel):
    user_id: str
    cred_points: int


class LedgerEntryResponse(BaseModel):
    id: int
    amount: int
    source: str
    source_id: str | None = None
    description: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class LedgerEntriesResponse(BaseModel):
    entries: list[LedgerEntryResponse]
    balance: int
