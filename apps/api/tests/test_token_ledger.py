import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from models.token_ledger import TokenLedgerEntry
from models.user_token import UserToken
from services import tokens
from services.errors import InsufficientTokens, ValidationError
from services.identity import Subject, SubjectType


MEMBER = Subject(kind=SubjectType.THIRD_PARTY, id="member-1")
SAME_ID_ANON = Subject(kind=SubjectType.ANONYMOUS, id="member-1")


@pytest.mark.asyncio
async def test_balance_defaults_to_zero_without_a_row(session_maker):
    async with session_maker() as db:
        assert await tokens.get_balance(MEMBER, db) == 0
        rows = (await db.execute(select(UserToken))).scalars().all()
    assert rows == []


@pytest.mark.asyncio
async def test_grant_creates_then_increments_balance(session_maker):
    async with session_maker() as db:
        assert await tokens.grant(MEMBER, 100, db) == 100
        assert await tokens.grant(MEMBER, 25, db) == 125
        assert await tokens.get_balance(MEMBER, db) == 125

        rows = (await db.execute(select(UserToken))).scalars().all()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_balances_are_keyed_by_subject_type_as_well_as_id(session_maker):
    async with session_maker() as db:
        await tokens.grant(MEMBER, 300, db)
        await tokens.grant(SAME_ID_ANON, 5, db)
        assert await tokens.get_balance(MEMBER, db) == 300
        assert await tokens.get_balance(SAME_ID_ANON, db) == 5


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -5, 2.5, "10", True, None])
async def test_grant_and_debit_reject_non_positive_amounts(session_maker, amount):
    async with session_maker() as db:
        with pytest.raises(ValidationError):
            await tokens.grant(MEMBER, amount, db)
        with pytest.raises(ValidationError):
            await tokens.debit(MEMBER, amount, db)
        assert await tokens.get_balance(MEMBER, db) == 0


@pytest.mark.asyncio
async def test_debit_spends_exact_balance(session_maker):
    async with session_maker() as db:
        await tokens.grant(MEMBER, 250, db)
        assert await tokens.debit(MEMBER, 250, db, feature="solid_color") == 0
        assert await tokens.get_balance(MEMBER, db) == 0


@pytest.mark.asyncio
async def test_debit_rejects_shortfall_and_leaves_balance_untouched(session_maker):
    async with session_maker() as db:
        await tokens.grant(MEMBER, 100, db)
        with pytest.raises(InsufficientTokens) as exc_info:
            await tokens.debit(MEMBER, 250, db)
        assert await tokens.get_balance(MEMBER, db) == 100

    error = exc_info.value
    assert error.status_code == 400
    assert error.to_payload() == {
        "error": "Insufficient tokens",
        "tokensNeeded": 150,
        "currentBalance": 100,
        "required": 250,
    }


@pytest.mark.asyncio
async def test_debit_without_balance_row_reports_zero_balance(session_maker):
    async with session_maker() as db:
        with pytest.raises(InsufficientTokens) as exc_info:
            await tokens.debit(MEMBER, 1, db)
    assert exc_info.value.current == 0
    assert exc_info.value.needed == 1


@pytest.mark.asyncio
async def test_reset_zeroes_balance_and_creates_missing_row(session_maker):
    async with session_maker() as db:
        await tokens.grant(MEMBER, 400, db)
        assert await tokens.reset(MEMBER, db) == 0
        assert await tokens.get_balance(MEMBER, db) == 0

        assert await tokens.reset(SAME_ID_ANON, db) == 0
        row = (
            await db.execute(
                select(UserToken).where(UserToken.user_id == "member-1", UserToken.user_type == "anonymous")
            )
        ).scalar_one()
    assert row.balance == 0


@pytest.mark.asyncio
async def test_ledger_entries_sum_to_current_balance(session_maker):
    async with session_maker() as db:
        await tokens.grant(MEMBER, 1000, db)
        await tokens.debit(MEMBER, 250, db, feature="solid_color")
        await tokens.claim_daily_reward(MEMBER, db)
        with pytest.raises(InsufficientTokens):
            await tokens.debit(MEMBER, 5000, db)
        await tokens.debit(MEMBER, 500, db, feature="gradient")

        entries = (
            await db.execute(select(TokenLedgerEntry).where(TokenLedgerEntry.user_id == MEMBER.id))
        ).scalars().all()
        balance = await tokens.get_balance(MEMBER, db)

    assert balance == 1000 - 250 + 50 - 500
    assert sum(entry.delta_tokens for entry in entries) == balance
    assert sorted(entry.entry_type for entry in entries) == [
        "admin_grant",
        "daily_reward",
        "purchase",
        "purchase",
    ]


@pytest.mark.asyncio
async def test_concurrent_debits_never_overdraw(session_maker):
    async with session_maker() as db:
        await tokens.grant(MEMBER, 300, db)

    async def _spend():
        async with session_maker() as db:
            try:
                return await tokens.debit(MEMBER, 250, db, feature="solid_color")
            except InsufficientTokens:
                return None

    results = await asyncio.gather(_spend(), _spend())

    assert sorted(results, key=lambda value: value is None) == [50, None]
    async with session_maker() as db:
        assert await tokens.get_balance(MEMBER, db) == 50


@pytest.mark.asyncio
async def test_daily_reward_granted_once_per_interval(session_maker):
    first_claim = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    async with session_maker() as db:
        first = await tokens.claim_daily_reward(MEMBER, db, now=first_claim)
        assert first["awarded"] is True
        assert first["amount"] == 50
        assert first["balance"] == 50
        assert first["next_award_at"] == (first_claim + timedelta(hours=24)).isoformat()

        repeat = await tokens.claim_daily_reward(MEMBER, db, now=first_claim + timedelta(hours=23))
        assert repeat["awarded"] is False
        assert repeat["amount"] == 0
        assert repeat["balance"] == 50
        assert repeat["last_awarded_at"] == first_claim.isoformat()

        later = await tokens.claim_daily_reward(MEMBER, db, now=first_claim + timedelta(hours=24))
        assert later["awarded"] is True
        assert later["balance"] == 100


@pytest.mark.asyncio
async def test_daily_reward_tops_up_existing_balance_row(session_maker):
    async with session_maker() as db:
        await tokens.grant(MEMBER, 10, db)
        result = await tokens.claim_daily_reward(MEMBER, db)
    assert result["awarded"] is True
    assert result["balance"] == 60


@pytest.mark.asyncio
async def test_concurrent_daily_reward_claims_award_once(session_maker):
    now = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

    async def _claim():
        async with session_maker() as db:
            return await tokens.claim_daily_reward(MEMBER, db, now=now)

    results = await asyncio.gather(_claim(), _claim())

    assert sorted(result["awarded"] for result in results) == [False, True]
    async with session_maker() as db:
        assert await tokens.get_balance(MEMBER, db) == 50


@pytest.mark.asyncio
async def test_token_summary_lists_recent_entries_and_costs(session_maker):
    async with session_maker() as db:
        await tokens.grant(MEMBER, 700, db, reason="welcome")
        await tokens.debit(MEMBER, 250, db, feature="solid_color")
        summary = await tokens.get_token_summary(MEMBER, db)

    assert summary["balance"] == 450
    assert summary["subjectId"] == "member-1"
    assert summary["subjectType"] == "third_party"
    assert summary["last_awarded_at"] is None
    assert summary["next_award_at"] is None
    assert summary["costs"]["solid_color"] == 250
    assert {entry["entry_type"] for entry in summary["recent_entries"]} == {"admin_grant", "purchase"}
    assert sum(entry["delta_tokens"] for entry in summary["recent_entries"]) == 450


@pytest.mark.asyncio
async def test_reset_entry_cancels_exactly_the_previous_balance(session_maker):
    async with session_maker() as db:
        await tokens.grant(MEMBER, 120, db)

    async def _grant():
        async with session_maker() as db:
            await tokens.grant(MEMBER, 30, db)

    async def _reset():
        async with session_maker() as db:
            await tokens.reset(MEMBER, db)

    await asyncio.gather(_grant(), _reset(), _grant())

    async with session_maker() as db:
        entries = (
            await db.execute(select(TokenLedgerEntry).where(TokenLedgerEntry.user_id == MEMBER.id))
        ).scalars().all()
        balance = await tokens.get_balance(MEMBER, db)

    reset_entry = next(entry for entry in entries if entry.entry_type == "admin_reset")
    assert reset_entry.balance_after == 0
    assert reset_entry.delta_tokens in {-120, -150, -180}
    assert sum(entry.delta_tokens for entry in entries) == balance
