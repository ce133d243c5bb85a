"""Admin token operations and the moderation audit log."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.moderation_audit import ModerationAuditLog
from services import tokens
from services.errors import ValidationError
from services.identity import Subject

logger = logging.getLogger(__name__)

ACTION_GRANT_TOKENS = "GRANT_TOKENS"
ACTION_RESET_TOKENS = "RESET_TOKENS"


async def record_audit_entry(
    db: AsyncSession,
    *,
    actor_id: Optional[str],
    actor_email: Optional[str],
    action: str,
    subject: Subject,
    meta: Optional[Dict[str, Any]] = None,
) -> bool:
    """Append one audit row. Failures are logged and never raised."""
    try:
        db.add(
            ModerationAuditLog(
                id=str(uuid.uuid4()),
                actor_id=actor_id,
                actor_email=actor_email,
                action=action,
                subject_type=subject.kind.value,
                subject_id=subject.id,
                meta=meta or {},
            )
        )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.warning(
            "Audit log write failed action=%s subject=%s/%s: %s",
            action,
            subject.kind.value,
            subject.id,
            exc,
        )
        return False
    return True


async def admin_grant_tokens(
    subject: Subject,
    amount: int,
    db: AsyncSession,
    *,
    actor_id: Optional[str],
    actor_email: Optional[str],
) -> Dict[str, Any]:
    ceiling = int(settings.ADMIN_GRANT_MAX_TOKENS)
    if ceiling > 0 and isinstance(amount, int) and amount > ceiling:
        raise ValidationError(f"Amount must be at most {ceiling}", maxAmount=ceiling)
    balance = await tokens.grant(
        subject,
        amount,
        db,
        entry_type=tokens.ENTRY_ADMIN_GRANT,
        reason=f"Granted by {actor_email or actor_id or 'admin'}",
    )
    audited = await record_audit_entry(
        db,
        actor_id=actor_id,
        actor_email=actor_email,
        action=ACTION_GRANT_TOKENS,
        subject=subject,
        meta={"amount": int(amount)},
    )
    return {"success": True, "balance": balance, "audited": audited}


async def admin_reset_tokens(
    subject: Subject,
    db: AsyncSession,
    *,
    actor_id: Optional[str],
    actor_email: Optional[str],
) -> Dict[str, Any]:
    balance = await tokens.reset(
        subject,
        db,
        reason=f"Reset by {actor_email or actor_id or 'admin'}",
    )
    audited = await record_audit_entry(
        db,
        actor_id=actor_id,
        actor_email=actor_email,
        action=ACTION_RESET_TOKENS,
        subject=subject,
        meta={"balance": balance},
    )
    return {"success": True, "balance": balance, "audited": audited}


async def list_audit_entries(db: AsyncSession, *, limit: int = 50) -> list:
    async with tokens.persistence_guard(db, "read audit log"):
        result = await db.execute(
            select(ModerationAuditLog)
            .order_by(ModerationAuditLog.created_at.desc())
            .limit(max(1, min(int(limit), 200)))
        )
        rows = result.scalars().all()
    return [
        {
            "id": row.id,
            "actor_id": row.actor_id,
            "actor_email": row.actor_email,
            "action": row.action,
            "subject_type": row.subject_type,
            "subject_id": row.subject_id,
            "meta": row.meta or {},
            "created_at": row.created_at.isoformat() if row.created_at else None,
        }
        for row in rows
    ]
