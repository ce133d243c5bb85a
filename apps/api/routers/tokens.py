"""Token balance and daily reward router."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, ensure_subject_scope, get_auth_context
from services.catalog import get_catalog
from services.tokens import claim_daily_reward, get_balance_summary, get_token_summary

router = APIRouter()


class DailyRewardRequest(BaseModel):
    subject_id: Optional[str] = Field(default=None, alias="subjectId")

    model_config = ConfigDict(populate_by_name=True)


@router.get("")
async def token_balance(
    subject_id: Optional[str] = Query(default=None, alias="subjectId"),
    subject_type: Optional[str] = Query(default=None, alias="subjectType"),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    subject = ensure_subject_scope(auth, subject_id, subject_type)
    return await get_balance_summary(subject, db)


@router.post("")
async def daily_reward(
    request: Optional[DailyRewardRequest] = None,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Grant the daily login reward if the reward interval has elapsed."""
    subject = ensure_subject_scope(auth, request.subject_id if request else None)
    return await claim_daily_reward(subject, db)


@router.get("/history")
async def token_history(
    limit: int = Query(default=30, ge=1, le=100),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await get_token_summary(auth.subject, db, limit=limit)


@router.get("/catalog")
async def token_catalog():
    """Public cosmetic price list."""
    return get_catalog().as_dict()
