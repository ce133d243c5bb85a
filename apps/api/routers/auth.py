"""
Authentication router for anonymous accounts and session introspection.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import get_db
from models.anon_user import AnonUser
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from services.accounts import authenticate_anon_account, register_anon_account
from services.session_token import create_session_token

router = APIRouter()


class AnonCredentialsRequest(BaseModel):
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1, max_length=128)


class AnonSessionResponse(BaseModel):
    subject_id: str
    subject_type: str = "anonymous"
    username: str
    session_token: str
    session_expires_at: int


class CurrentSubjectResponse(BaseModel):
    subject_id: str
    subject_type: str
    email: Optional[str] = None
    username: Optional[str] = None
    is_admin: bool = False


def _session_response(account: AnonUser) -> AnonSessionResponse:
    session = create_session_token(account.id, account.username)
    return AnonSessionResponse(
        subject_id=account.id,
        username=account.username,
        session_token=session["token"],
        session_expires_at=session["expires_at"],
    )


@router.post("/anonymous/register", response_model=AnonSessionResponse)
async def register_anonymous(
    request: AnonCredentialsRequest,
    _rate_limit: None = Depends(rate_limit("anon_register", limit=10, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
):
    """Create an anonymous account and return a session token for it."""
    account = await register_anon_account(request.username, request.password, db)
    return _session_response(account)


@router.post("/anonymous/login", response_model=AnonSessionResponse)
async def login_anonymous(
    request: AnonCredentialsRequest,
    _rate_limit: None = Depends(rate_limit("anon_login", limit=30, window_seconds=900)),
    db: AsyncSession = Depends(get_db),
):
    account = await authenticate_anon_account(request.username, request.password, db)
    return _session_response(account)


@router.get("/me", response_model=CurrentSubjectResponse)
async def get_current_subject(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Return who the bearer token resolves to."""
    username = auth.username
    if auth.subject.is_anonymous:
        result = await db.execute(select(AnonUser.username).where(AnonUser.id == auth.subject.id))
        username = result.scalar_one_or_none() or username

    return CurrentSubjectResponse(
        subject_id=auth.subject.id,
        subject_type=auth.subject.kind.value,
        email=auth.email,
        username=username,
        is_admin=not auth.subject.is_anonymous and auth.is_admin,
    )


@router.post("/logout")
async def logout(_auth: AuthContext = Depends(get_auth_context)):
    """Frontend-managed logout acknowledgment endpoint."""
    return {"message": "Logged out successfully"}
