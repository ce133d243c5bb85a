"""Token ledger: balance reads, grants, debits, resets and the daily reward.

Every balance change is a single conditional statement against the
``user_tokens`` row of the subject, so concurrent requests for the same
subject cannot both spend the same tokens.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional
import uuid

from sqlalchemy import func, or_, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.token_ledger import TokenLedgerEntry
from models.user_token import UserToken
from services.catalog import get_catalog
from services.errors import InsufficientTokens, PersistenceFailure, ValidationError
from services.identity import Subject

logger = logging.getLogger(__name__)

ENTRY_DAILY_REWARD = "daily_reward"
ENTRY_ADMIN_GRANT = "admin_grant"
ENTRY_ADMIN_RESET = "admin_reset"
ENTRY_PURCHASE = "purchase"


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _subject_clause(subject: Subject):
    return (UserToken.user_id == subject.id, UserToken.user_type == subject.kind.value)


def _insert_for(db: AsyncSession):
    """Pick the dialect insert construct that supports ON CONFLICT."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise PersistenceFailure(f"Unsupported database dialect: {dialect}")


def _require_positive(amount: Any) -> int:
    try:
        value = int(amount)
    except (TypeError, ValueError):
        raise ValidationError("Amount must be a positive integer") from None
    if isinstance(amount, bool) or value != amount or value <= 0:
        raise ValidationError("Amount must be a positive integer")
    return value


@asynccontextmanager
async def persistence_guard(db: AsyncSession, action: str):
    """Roll back and surface store errors as ``PersistenceFailure``."""
    try:
        yield
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Token ledger failed to %s: %s", action, exc)
        raise PersistenceFailure(f"Failed to {action}", details=str(exc)) from exc


async def get_balance(subject: Subject, db: AsyncSession) -> int:
    async with persistence_guard(db, "read token balance"):
        result = await db.execute(select(UserToken.balance).where(*_subject_clause(subject)))
        return int(result.scalar_one_or_none() or 0)


async def _insert_entry(
    subject: Subject,
    db: AsyncSession,
    *,
    entry_type: str,
    delta_tokens: int,
    balance_after: int,
    feature: Optional[str] = None,
    reason: Optional[str] = None,
) -> TokenLedgerEntry:
    entry = TokenLedgerEntry(
        id=str(uuid.uuid4()),
        user_id=subject.id,
        user_type=subject.kind.value,
        entry_type=entry_type,
        delta_tokens=int(delta_tokens),
        balance_after=int(balance_after),
        feature=feature,
        reason=reason,
    )
    db.add(entry)
    await db.flush()
    return entry


async def grant(
    subject: Subject,
    amount: int,
    db: AsyncSession,
    *,
    entry_type: str = ENTRY_ADMIN_GRANT,
    reason: Optional[str] = None,
    commit: bool = True,
) -> int:
    """Credit ``amount`` tokens, creating the balance row if needed."""
    credit = _require_positive(amount)
    insert = _insert_for(db)
    async with persistence_guard(db, "grant tokens"):
        stmt = insert(UserToken).values(
            id=str(uuid.uuid4()),
            user_id=subject.id,
            user_type=subject.kind.value,
            balance=credit,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[UserToken.user_id, UserToken.user_type],
            set_={"balance": UserToken.balance + credit, "updated_at": func.now()},
        )
        await db.execute(stmt)
        balance_after = await _read_balance(subject, db)
        await _insert_entry(
            subject,
            db,
            entry_type=entry_type,
            delta_tokens=credit,
            balance_after=balance_after,
            reason=reason,
        )
        if commit:
            await db.commit()

    logger.info("tokens_granted subject=%s/%s amount=%s balance=%s", subject.kind.value, subject.id, credit, balance_after)
    return balance_after


async def debit(
    subject: Subject,
    amount: int,
    db: AsyncSession,
    *,
    feature: Optional[str] = None,
    reason: Optional[str] = None,
    commit: bool = True,
) -> int:
    """Spend ``amount`` tokens or raise ``InsufficientTokens`` leaving the balance untouched."""
    cost = _require_positive(amount)
    async with persistence_guard(db, "deduct tokens"):
        result = await db.execute(
            update(UserToken)
            .where(*_subject_clause(subject), UserToken.balance >= cost)
            .values(balance=UserToken.balance - cost, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        debited = result.rowcount == 1
        if debited:
            balance_after = await _read_balance(subject, db)
            await _insert_entry(
                subject,
                db,
                entry_type=ENTRY_PURCHASE,
                delta_tokens=-cost,
                balance_after=balance_after,
                feature=feature,
                reason=reason,
            )
            if commit:
                await db.commit()
        else:
            current = await _read_balance(subject, db)
            if commit:
                await db.rollback()

    if not debited:
        raise InsufficientTokens(needed=cost - current, current=current, required=cost)

    logger.info(
        "tokens_debited subject=%s/%s amount=%s feature=%s balance=%s",
        subject.kind.value,
        subject.id,
        cost,
        feature,
        balance_after,
    )
    return balance_after


async def reset(
    subject: Subject,
    db: AsyncSession,
    *,
    reason: Optional[str] = None,
    commit: bool = True,
) -> int:
    """Set the balance to 0 whatever it was.

    The row is created if missing and locked before the old balance is read,
    so the ledger entry always cancels exactly what was there.
    """
    insert = _insert_for(db)
    async with persistence_guard(db, "reset tokens"):
        await db.execute(
            insert(UserToken)
            .values(
                id=str(uuid.uuid4()),
                user_id=subject.id,
                user_type=subject.kind.value,
                balance=0,
            )
            .on_conflict_do_nothing(index_elements=[UserToken.user_id, UserToken.user_type])
        )
        result = await db.execute(
            select(UserToken.balance).where(*_subject_clause(subject)).with_for_update()
        )
        previous = int(result.scalar_one() or 0)
        await db.execute(
            update(UserToken)
            .where(*_subject_clause(subject))
            .values(balance=0, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        await _insert_entry(
            subject,
            db,
            entry_type=ENTRY_ADMIN_RESET,
            delta_tokens=-previous,
            balance_after=0,
            reason=reason,
        )
        if commit:
            await db.commit()

    logger.info("tokens_reset subject=%s/%s previous=%s", subject.kind.value, subject.id, previous)
    return 0


async def _read_balance(subject: Subject, db: AsyncSession) -> int:
    result = await db.execute(select(UserToken.balance).where(*_subject_clause(subject)))
    return int(result.scalar_one_or_none() or 0)


def _reward_interval() -> timedelta:
    return timedelta(hours=max(int(settings.DAILY_REWARD_INTERVAL_HOURS), 1))


async def claim_daily_reward(
    subject: Subject,
    db: AsyncSession,
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Grant the daily reward at most once per reward interval."""
    current = _as_utc(now) or datetime.now(timezone.utc)
    amount = max(int(settings.DAILY_REWARD_TOKENS), 0)
    cutoff = current - _reward_interval()
    insert = _insert_for(db)

    async with persistence_guard(db, "grant daily reward"):
        result = await db.execute(
            update(UserToken)
            .where(
                *_subject_clause(subject),
                or_(UserToken.last_awarded_at.is_(None), UserToken.last_awarded_at <= cutoff),
            )
            .values(
                balance=UserToken.balance + amount,
                last_awarded_at=current,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        awarded = result.rowcount == 1
        if not awarded:
            inserted = await db.execute(
                insert(UserToken)
                .values(
                    id=str(uuid.uuid4()),
                    user_id=subject.id,
                    user_type=subject.kind.value,
                    balance=amount,
                    last_awarded_at=current,
                )
                .on_conflict_do_nothing(index_elements=[UserToken.user_id, UserToken.user_type])
            )
            awarded = inserted.rowcount == 1

        row = (
            await db.execute(
                select(UserToken.balance, UserToken.last_awarded_at).where(*_subject_clause(subject))
            )
        ).one()
        balance = int(row.balance or 0)
        if awarded and amount > 0:
            await _insert_entry(
                subject,
                db,
                entry_type=ENTRY_DAILY_REWARD,
                delta_tokens=amount,
                balance_after=balance,
                reason="Daily login reward",
            )
        await db.commit()

    last_awarded_at = _as_utc(row.last_awarded_at)
    if awarded:
        logger.info("daily_reward subject=%s/%s amount=%s balance=%s", subject.kind.value, subject.id, amount, balance)
    return {
        "balance": balance,
        "awarded": awarded,
        "amount": amount if awarded else 0,
        "last_awarded_at": last_awarded_at.isoformat() if last_awarded_at else None,
        "next_award_at": (last_awarded_at + _reward_interval()).isoformat() if last_awarded_at else None,
    }


async def get_balance_summary(subject: Subject, db: AsyncSession) -> Dict[str, Any]:
    async with persistence_guard(db, "read token balance"):
        result = await db.execute(
            select(UserToken.balance, UserToken.last_awarded_at).where(*_subject_clause(subject))
        )
        row = result.one_or_none()
    last_awarded_at = _as_utc(row.last_awarded_at) if row else None
    return {
        "balance": int(row.balance or 0) if row else 0,
        "last_awarded_at": last_awarded_at.isoformat() if last_awarded_at else None,
    }


async def get_token_summary(subject: Subject, db: AsyncSession, *, limit: int = 30) -> Dict[str, Any]:
    summary = await get_balance_summary(subject, db)
    async with persistence_guard(db, "read token history"):
        result = await db.execute(
            select(TokenLedgerEntry)
            .where(
                TokenLedgerEntry.user_id == subject.id,
                TokenLedgerEntry.user_type == subject.kind.value,
            )
            .order_by(TokenLedgerEntry.created_at.desc())
            .limit(max(1, min(int(limit), 100)))
        )
        entries = result.scalars().all()

    last_awarded_at = summary["last_awarded_at"]
    next_award_at = None
    if last_awarded_at:
        next_award_at = (datetime.fromisoformat(last_awarded_at) + _reward_interval()).isoformat()
    return {
        **summary,
        **subject.as_dict(),
        "next_award_at": next_award_at,
        "daily_reward_tokens": max(int(settings.DAILY_REWARD_TOKENS), 0),
        "costs": get_catalog().as_dict(),
        "recent_entries": [
            {
                "id": entry.id,
                "entry_type": entry.entry_type,
                "delta_tokens": entry.delta_tokens,
                "balance_after": entry.balance_after,
                "feature": entry.feature,
                "reason": entry.reason,
                "created_at": entry.created_at.isoformat() if entry.created_at else None,
            }
            for entry in entries
        ],
    }
