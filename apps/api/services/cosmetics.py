"""Cosmetic purchase rules for anonymous accounts.

A priced purchase debits tokens and writes the cosmetic attribute inside one
database transaction: either both land or neither does. The account row is
loaded with a row lock first, so concurrent purchases for one account price
and merge against the committed profile of the previous one.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from models.anon_user import AnonUser
from services import tokens
from services.accounts import load_anon_user
from services.catalog import (
    FEATURE_ANIMATED_GRADIENT,
    FEATURE_GIF_PROFILE,
    FEATURE_GRADIENT,
    FEATURE_SOLID_COLOR,
    get_catalog,
)
from services.errors import AlreadyOwned, ValidationError
from services.identity import Subject
from services.purchases import run_purchase

HEX_COLOR_PATTERN = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")

COLOR_TYPE_SOLID = "solid"
COLOR_TYPE_GRADIENT = "gradient"
COLOR_TYPE_REMOVE = "remove"
COLOR_TYPE_ANIMATED = "purchase-animated-gradient"
COLOR_TYPES = (COLOR_TYPE_SOLID, COLOR_TYPE_GRADIENT, COLOR_TYPE_REMOVE, COLOR_TYPE_ANIMATED)


def is_hex_color(value: Any) -> bool:
    return isinstance(value, str) and bool(HEX_COLOR_PATTERN.match(value))


def validate_solid_color(color: Any) -> str:
    if not color or not isinstance(color, str):
        raise ValidationError("Color is required for solid color type")
    if not is_hex_color(color):
        raise ValidationError("Invalid color format. Must be a valid hex color (e.g., #FF5733)")
    return color


def validate_gradient(colors: Any) -> List[str]:
    if not isinstance(colors, (list, tuple)) or len(colors) < 2:
        raise ValidationError("Gradient must have at least 2 colors")
    for color in colors:
        if not is_hex_color(color):
            raise ValidationError(f"Invalid gradient color: {color}. Must be a valid hex color")
    return list(colors)


def _gradient_already_purchased(purchased: Sequence[Sequence[str]], colors: Sequence[str]) -> bool:
    return any(list(existing) == list(colors) for existing in purchased or [])


async def apply_solid_color(subject: Subject, color: Any, db: AsyncSession) -> Dict[str, Any]:
    color = validate_solid_color(color)
    account = await load_anon_user(subject, db, for_update=True)
    cost = get_catalog().solid_color

    async def _apply() -> None:
        purchased = list(account.purchased_solid_colors or [])
        if color not in purchased:
            purchased.append(color)
        account.username_color = color
        account.username_color_gradient = None
        account.purchased_solid_colors = purchased

    new_balance = await run_purchase(
        subject,
        db,
        feature=FEATURE_SOLID_COLOR,
        cost=cost,
        apply=_apply,
        failure_message="Failed to update username color",
    )
    return {
        "success": True,
        "colorType": COLOR_TYPE_SOLID,
        "color": color,
        "cost": cost,
        "newBalance": new_balance,
    }


async def apply_gradient(subject: Subject, gradient_colors: Any, db: AsyncSession) -> Dict[str, Any]:
    colors = validate_gradient(gradient_colors)
    account = await load_anon_user(subject, db, for_update=True)
    current_slots = int(account.purchased_gradient_color_slots or 0)
    cost, required_slots = get_catalog().gradient_cost(len(colors), current_slots)
    new_slots = max(current_slots, required_slots)

    async def _apply() -> None:
        purchased = [list(item) for item in (account.purchased_gradient_colors or [])]
        if not _gradient_already_purchased(purchased, colors):
            purchased.append(list(colors))
        account.username_color = None
        account.username_color_gradient = list(colors)
        account.purchased_gradient_colors = purchased
        account.purchased_gradient_color_slots = new_slots

    new_balance = await run_purchase(
        subject,
        db,
        feature=FEATURE_GRADIENT,
        cost=cost,
        apply=_apply,
        failure_message="Failed to update username gradient",
    )
    return {
        "success": True,
        "colorType": COLOR_TYPE_GRADIENT,
        "gradientColors": colors,
        "cost": cost,
        "purchasedGradientColorSlots": new_slots,
        "newBalance": new_balance,
    }


async def remove_color(subject: Subject, db: AsyncSession) -> Dict[str, Any]:
    account = await load_anon_user(subject, db, for_update=True)
    async with tokens.persistence_guard(db, "remove username color"):
        account.username_color = None
        account.username_color_gradient = None
        await db.commit()
    return {"success": True, "message": "Username color removed"}


async def _enable_one_time_feature(
    subject: Subject,
    db: AsyncSession,
    *,
    column,
    feature: str,
    cost: int,
    already_owned_message: str,
    failure_message: str,
) -> int:
    account = await load_anon_user(subject, db, for_update=True)
    if getattr(account, column.key):
        raise AlreadyOwned(already_owned_message)

    async def _apply() -> None:
        # Conditional flip so two racing purchases cannot both pay.
        result = await db.execute(
            update(AnonUser)
            .where(AnonUser.id == subject.id, column == False)  # noqa: E712
            .values({column: True, AnonUser.updated_at: datetime.now(timezone.utc)})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise AlreadyOwned(already_owned_message)

    new_balance = await run_purchase(
        subject,
        db,
        feature=feature,
        cost=cost,
        apply=_apply,
        failure_message=failure_message,
    )
    return new_balance


async def purchase_animated_gradient(subject: Subject, db: AsyncSession) -> Dict[str, Any]:
    cost = get_catalog().animated_gradient
    new_balance = await _enable_one_time_feature(
        subject,
        db,
        column=AnonUser.animated_gradient_enabled,
        feature=FEATURE_ANIMATED_GRADIENT,
        cost=cost,
        already_owned_message="Animated gradient is already enabled",
        failure_message="Failed to enable animated gradient",
    )
    return {
        "success": True,
        "animatedGradientEnabled": True,
        "cost": cost,
        "newBalance": new_balance,
    }


async def purchase_gif_profile(subject: Subject, db: AsyncSession) -> Dict[str, Any]:
    cost = get_catalog().gif_profile
    new_balance = await _enable_one_time_feature(
        subject,
        db,
        column=AnonUser.gif_profile_enabled,
        feature=FEATURE_GIF_PROFILE,
        cost=cost,
        already_owned_message="GIF profile feature is already enabled",
        failure_message="Failed to enable GIF profile",
    )
    return {
        "success": True,
        "gif_profile_enabled": True,
        "cost": cost,
        "newBalance": new_balance,
        "message": "GIF profile feature enabled successfully",
    }


async def apply_username_color(
    subject: Subject,
    db: AsyncSession,
    *,
    color_type: str,
    color: Optional[str] = None,
    gradient_colors: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Dispatch one ``colorType`` request onto its purchase rule."""
    if color_type == COLOR_TYPE_REMOVE:
        return await remove_color(subject, db)
    if color_type == COLOR_TYPE_SOLID:
        return await apply_solid_color(subject, color, db)
    if color_type == COLOR_TYPE_GRADIENT:
        return await apply_gradient(subject, gradient_colors, db)
    if color_type == COLOR_TYPE_ANIMATED:
        return await purchase_animated_gradient(subject, db)
    raise ValidationError(
        "Invalid color type. Must be 'solid', 'gradient', 'remove', or 'purchase-animated-gradient'"
    )


async def get_cosmetic_state(subject: Subject, db: AsyncSession) -> Dict[str, Any]:
    account = await load_anon_user(subject, db)
    return {
        "username": account.username,
        "username_color": account.username_color or None,
        "username_color_gradient": list(account.username_color_gradient) if account.username_color_gradient else None,
        "purchased_solid_colors": list(account.purchased_solid_colors or []),
        "purchased_gradient_colors": [list(item) for item in (account.purchased_gradient_colors or [])],
        "purchased_gradient_color_slots": int(account.purchased_gradient_color_slots or 0),
        "animated_gradient_enabled": bool(account.animated_gradient_enabled),
        "gif_profile_enabled": bool(account.gif_profile_enabled),
    }
