"""Anonymous account registration, login and paid username changes."""

from __future__ import annotations

import logging
from typing import Any, Dict
import uuid

import bcrypt
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.anon_user import AnonUser
from models.confession import ConfessionComment, ConfessionPost
from services import tokens
from services.catalog import FEATURE_USERNAME_CHANGE, get_catalog
from services.errors import NotFound, Unauthorized, ValidationError
from services.identity import Subject, SubjectType, normalize_username, username_problem
from services.purchases import run_purchase

logger = logging.getLogger(__name__)

PASSWORD_MIN_LENGTH = 8
# bcrypt only looks at the first 72 bytes.
PASSWORD_MAX_BYTES = 72

# Verified against when no account matches, so every login pays one bcrypt check.
_UNKNOWN_ACCOUNT_HASH = bcrypt.hashpw(b"unknown-account", bcrypt.gensalt()).decode("utf-8")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def _validate_password(password: Any) -> str:
    if not isinstance(password, str) or len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValidationError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes")
    return password


def _validate_new_username(value: Any) -> str:
    if not value or not isinstance(value, str):
        raise ValidationError("New username is required")
    normalized = normalize_username(value)
    problem = username_problem(normalized)
    if problem:
        raise ValidationError(problem)
    return normalized


async def load_anon_user(subject: Subject, db: AsyncSession, *, for_update: bool = False) -> AnonUser:
    """Return the anonymous account behind ``subject`` or raise ``NotFound``.

    ``for_update`` locks the row until the transaction ends so purchases
    computed from the loaded profile cannot interleave.
    """
    if not subject.is_anonymous:
        raise NotFound("Only anonymous accounts have a profile here")
    async with tokens.persistence_guard(db, "load account"):
        stmt = select(AnonUser).where(AnonUser.id == subject.id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        account = result.scalar_one_or_none()
    if not account:
        raise NotFound("User not found")
    return account


async def _username_taken(username: str, db: AsyncSession) -> bool:
    async with tokens.persistence_guard(db, "check username"):
        result = await db.execute(
            select(AnonUser.id).where(func.lower(AnonUser.username) == username.lower()).limit(1)
        )
        return result.scalar_one_or_none() is not None


async def register_anon_account(username: Any, password: Any, db: AsyncSession) -> AnonUser:
    normalized = _validate_new_username(username)
    secret = _validate_password(password)
    if await _username_taken(normalized, db):
        raise ValidationError("Username already taken")

    account = AnonUser(
        id=str(uuid.uuid4()),
        username=normalized,
        password_hash=hash_password(secret),
        previous_usernames=[],
        purchased_solid_colors=[],
        purchased_gradient_colors=[],
        purchased_gradient_color_slots=0,
        animated_gradient_enabled=False,
        gif_profile_enabled=False,
    )
    db.add(account)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ValidationError("Username already taken") from exc
    logger.info("anon_account_registered id=%s username=%s", account.id, account.username)
    return account


async def authenticate_anon_account(username: Any, password: Any, db: AsyncSession) -> AnonUser:
    normalized = normalize_username(username)
    if not normalized or not isinstance(password, str):
        raise Unauthorized("Invalid username or password")
    async with tokens.persistence_guard(db, "load account"):
        result = await db.execute(select(AnonUser).where(func.lower(AnonUser.username) == normalized))
        account = result.scalar_one_or_none()
    password_hash = account.password_hash if account else _UNKNOWN_ACCOUNT_HASH
    if not verify_password(password, password_hash) or not account:
        raise Unauthorized("Invalid username or password")
    return account


async def _propagate_username(subject: Subject, username: str, db: AsyncSession) -> Dict[str, Any]:
    """Rewrite the author name on every post and comment of ``subject``.

    Best effort: the rename itself is already committed.
    """
    counts: Dict[str, Any] = {"posts": 0, "comments": 0}
    for key, model in (("posts", ConfessionPost), ("comments", ConfessionComment)):
        try:
            result = await db.execute(
                update(model)
                .where(model.user_id == subject.id, model.user_type == subject.kind.value)
                .values(username=username)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            counts[key] = int(result.rowcount or 0)
        except SQLAlchemyError as exc:
            await db.rollback()
            counts[key] = None
            logger.warning("Error updating %s for renamed account %s: %s", key, subject.id, exc)
    return counts


async def change_username(subject: Subject, new_username: Any, db: AsyncSession) -> Dict[str, Any]:
    normalized = _validate_new_username(new_username)
    account = await load_anon_user(subject, db, for_update=True)
    previous = account.username
    if (previous or "").lower() == normalized:
        raise ValidationError("New username must be different from current username")
    if await _username_taken(normalized, db):
        raise ValidationError("Username already taken")

    cost = get_catalog().username_change

    async def _apply() -> None:
        account.previous_usernames = [*list(account.previous_usernames or []), previous]
        account.username = normalized
        try:
            await db.flush()
        except IntegrityError as exc:
            raise ValidationError("Username already taken") from exc

    new_balance = await run_purchase(
        subject,
        db,
        feature=FEATURE_USERNAME_CHANGE,
        cost=cost,
        apply=_apply,
        failure_message="Failed to update username",
    )
    propagated = await _propagate_username(subject, normalized, db)
    logger.info("username_changed id=%s from=%s to=%s", subject.id, previous, normalized)
    return {
        "success": True,
        "newUsername": normalized,
        "previousUsername": previous,
        "cost": cost,
        "newBalance": new_balance,
        "propagated": propagated,
    }


def anonymous_subject(account: AnonUser) -> Subject:
    return Subject(kind=SubjectType.ANONYMOUS, id=account.id)
