"""User cosmetics router: username colors, GIF avatars and username changes."""

from __future__ import annotations

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, ensure_subject_scope, get_auth_context
from routers.rate_limit import rate_limit
from services.accounts import change_username
from services.cosmetics import apply_username_color, get_cosmetic_state, purchase_gif_profile

router = APIRouter()


class UsernameColorRequest(BaseModel):
    subject_id: Optional[str] = Field(default=None, alias="subjectId")
    color_type: Literal["solid", "gradient", "remove", "purchase-animated-gradient"] = Field(alias="colorType")
    color: Optional[str] = None
    gradient_colors: Optional[List[str]] = Field(default=None, alias="gradientColors", max_length=32)

    model_config = ConfigDict(populate_by_name=True)


class ChangeUsernameRequest(BaseModel):
    subject_id: Optional[str] = Field(default=None, alias="subjectId")
    new_username: str = Field(alias="newUsername", min_length=1, max_length=64)

    model_config = ConfigDict(populate_by_name=True)


class GifProfileRequest(BaseModel):
    subject_id: Optional[str] = Field(default=None, alias="subjectId")

    model_config = ConfigDict(populate_by_name=True)


@router.get("/username-color")
async def username_color_state(
    subject_id: Optional[str] = Query(default=None, alias="subjectId"),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Current username color plus everything the account has bought."""
    subject = ensure_subject_scope(auth, subject_id)
    return await get_cosmetic_state(subject, db)


@router.post("/username-color")
async def update_username_color(
    request: UsernameColorRequest,
    _rate_limit: None = Depends(rate_limit("username_color", limit=60, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    subject = ensure_subject_scope(auth, request.subject_id)
    return await apply_username_color(
        subject,
        db,
        color_type=request.color_type,
        color=request.color,
        gradient_colors=request.gradient_colors,
    )


@router.get("/gif-profile")
async def gif_profile_state(
    subject_id: Optional[str] = Query(default=None, alias="subjectId"),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    subject = ensure_subject_scope(auth, subject_id)
    state = await get_cosmetic_state(subject, db)
    return {"gif_profile_enabled": state["gif_profile_enabled"]}


@router.post("/gif-profile")
async def buy_gif_profile(
    request: Optional[GifProfileRequest] = None,
    _rate_limit: None = Depends(rate_limit("gif_profile", limit=20, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """One-time purchase unlocking animated avatar uploads."""
    subject = ensure_subject_scope(auth, request.subject_id if request else None)
    return await purchase_gif_profile(subject, db)


@router.post("/change-username")
async def update_username(
    request: ChangeUsernameRequest,
    _rate_limit: None = Depends(rate_limit("change_username", limit=20, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    subject = ensure_subject_scope(auth, request.subject_id)
    return await change_username(subject, request.new_username, db)
