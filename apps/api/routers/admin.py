"""Admin router for manual token adjustments and the moderation audit log."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, require_admin, subject_from_payload
from services.moderation import admin_grant_tokens, admin_reset_tokens, list_audit_entries
from services.tokens import get_balance

router = APIRouter()


class AdminGrantRequest(BaseModel):
    subject_type: str = Field(alias="subjectType", min_length=1)
    subject_id: str = Field(alias="subjectId", min_length=1)
    amount: int = Field(gt=0)

    model_config = ConfigDict(populate_by_name=True)


class AdminResetRequest(BaseModel):
    subject_type: str = Field(alias="subjectType", min_length=1)
    subject_id: str = Field(alias="subjectId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


@router.get("/tokens")
async def admin_token_balance(
    subject_type: Optional[str] = Query(default=None, alias="subjectType"),
    subject_id: Optional[str] = Query(default=None, alias="subjectId"),
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    subject = subject_from_payload(subject_type, subject_id)
    return {"balance": await get_balance(subject, db), **subject.as_dict()}


@router.post("/tokens")
async def admin_grant(
    request: AdminGrantRequest,
    admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Credit tokens to any subject and record the action."""
    subject = subject_from_payload(request.subject_type, request.subject_id)
    return await admin_grant_tokens(
        subject,
        request.amount,
        db,
        actor_id=admin.subject.id,
        actor_email=admin.email,
    )


@router.delete("/tokens")
async def admin_reset(
    request: AdminResetRequest = Body(...),
    admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Reset a subject's balance to zero and record the action."""
    subject = subject_from_payload(request.subject_type, request.subject_id)
    return await admin_reset_tokens(
        subject,
        db,
        actor_id=admin.subject.id,
        actor_email=admin.email,
    )


@router.get("/audit-log")
async def admin_audit_log(
    limit: int = Query(default=50, ge=1, le=200),
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return {"entries": await list_audit_entries(db, limit=limit)}
