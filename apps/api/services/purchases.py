"""Purchase transaction: token debit plus attribute write, all or nothing."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services import tokens
from services.errors import PersistenceFailure, ServiceError
from services.identity import Subject

logger = logging.getLogger(__name__)


async def run_purchase(
    subject: Subject,
    db: AsyncSession,
    *,
    feature: str,
    cost: int,
    apply: Callable[[], Awaitable[None]],
    failure_message: str,
) -> int:
    """Debit ``cost`` and run ``apply`` as one transaction; return the new balance."""
    try:
        if cost > 0:
            new_balance = await tokens.debit(subject, cost, db, feature=feature, commit=False)
        else:
            new_balance = await tokens.get_balance(subject, db)
        await apply()
        await db.flush()
        await db.commit()
    except ServiceError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception(
            "Purchase rolled back subject=%s/%s feature=%s cost=%s: %s",
            subject.kind.value,
            subject.id,
            feature,
            cost,
            exc,
        )
        raise PersistenceFailure(failure_message, details=str(exc)) from exc

    logger.info(
        "cosmetic_purchased subject=%s/%s feature=%s cost=%s balance=%s",
        subject.kind.value,
        subject.id,
        feature,
        cost,
        new_balance,
    )
    return new_balance
