"""Ledger service tests: atomic balances and idempotent postings."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import func, select

from credpoints.db.models import PointLedgerEntry
from credpoints.exceptions import NotFoundError, ValidationError
from credpoints.ledger.service import (
    credit,
    debit,
    get_balance,
    get_entry_by_key,
    list_entries,
    post_delta,
)

pytestmark = pytest.mark.asyncio


class TestCreditDebit:

    async def test_credit_returns_new_balance(self, db_session, campus):
        balance = await credit(db_session, campus.staff.id, 25)
        await db_session.commit()
        assert balance == 25
        assert await get_balance(db_session, campus.staff.id) == 25

    async def test_debit_reduces_balance(self, db_session, campus):
        await credit(db_session, campus.staff.id, 40)
        balance = await debit(db_session, campus.staff.id, 15)
        await db_session.commit()
        assert balance == 25

    async def test_zero_amount_is_allowed(self, db_session, campus):
        assert await credit(db_session, campus.staff.id, 0) == 0

    @pytest.mark.parametrize("amount", [-5, 2.5, "10", True])
    async def test_invalid_amount_rejected(self, db_session, campus, amount):
        with pytest.raises(ValidationError):
            await credit(db_session, campus.staff.id, amount)

    async def test_unknown_user_raises(self, db_session, campus):
        with pytest.raises(NotFoundError):
            await credit(db_session, "00000000-0000-0000-0000-000000000000", 10)

    async def test_unknown_user_balance_is_zero(self, db_session, campus):
        assert await get_balance(db_session, "00000000-0000-0000-0000-000000000000") == 0


class TestIdempotency:

    async def test_repeated_key_posts_once(self, db_session, campus):
        first = await post_delta(db_session, campus.staff.id, 10, idempotency_key="req-1:0:approved:ledger")
        await db_session.commit()
        second = await post_delta(db_session, campus.staff.id, 10, idempotency_key="req-1:0:approved:ledger")
        await db_session.commit()

        assert first.applied is True
        assert second.applied is False
        assert second.balance == 10
        count = await db_session.execute(select(func.count()).select_from(PointLedgerEntry))
        assert count.scalar_one() == 1

    async def test_entry_lookup_by_key(self, db_session, campus):
        await post_delta(db_session, campus.staff.id, 7, source_id="req-9", idempotency_key="k-7")
        await db_session.commit()
        entry = await get_entry_by_key(db_session, "k-7")
        assert entry is not None
        assert entry.amount == 7
        assert entry.source_id == "req-9"

    async def test_negative_delta_posts_debit(self, db_session, campus):
        await credit(db_session, campus.staff.id, 20)
        posting = await post_delta(db_session, campus.staff.id, -5)
        await db_session.commit()
        assert posting.balance == 15


class TestConcurrency:

    async def test_concurrent_credits_never_lose_updates(self, session_factory, campus):
        """Two postings racing on one balance both land: 10 + 15 = 25."""

        async def post(amount: int, key: str) -> None:
            async with session_factory() as db:
                await credit(db, campus.staff.id, amount, idempotency_key=key)
                await db.commit()

        await asyncio.gather(post(10, "a"), post(15, "b"))

        async with session_factory() as db:
            assert await get_balance(db, campus.staff.id) == 25

    async def test_concurrent_same_key_posts_once(self, session_factory, campus):

        async def post() -> None:
            async with session_factory() as db:
                await credit(db, campus.staff.id, 10, idempotency_key="same")
                await db.commit()

        await asyncio.gather(post(), post(), post())

        async with session_factory() as db:
            assert await get_balance(db, campus.staff.id) == 10


class TestHistory:

    async def test_entries_newest_first(self, db_session, campus):
        for amount in (1, 2, 3):
            await credit(db_session, campus.staff.id, amount)
        await db_session.commit()

        entries = await list_entries(db_session, campus.staff.id)
        assert [e.amount for e in entries] == [3, 2, 1]

    async def test_entries_limit(self, db_session, campus):
        for amount in (1, 2, 3):
            await credit(db_session, campus.staff.id, amount)
        await db_session.commit()
        assert len(await list_entries(db_session, campus.staff.id, limit=2)) == 2
