"""Cosmetic price list."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Tuple

from config import settings


FEATURE_SOLID_COLOR = "solid_color"
FEATURE_GRADIENT = "gradient"
FEATURE_ANIMATED_GRADIENT = "animated_gradient"
FEATURE_GIF_PROFILE = "gif_profile"
FEATURE_USERNAME_CHANGE = "username_change"


@dataclass(frozen=True)
class CosmeticCatalog:
    solid_color: int
    gradient: int
    gradient_slot: int
    free_gradient_colors: int
    animated_gradient: int
    gif_profile: int
    username_change: int

    def gradient_cost(self, color_count: int, purchased_slots: int) -> Tuple[int, int]:
        """Return ``(cost, required_slots)`` for a gradient with ``color_count`` colors.

        Slots already bought are never charged again.
        """
        required_slots = max(0, int(color_count) - self.free_gradient_colors)
        new_slots = max(0, required_slots - max(int(purchased_slots or 0), 0))
        return self.gradient + new_slots * self.gradient_slot, required_slots

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def get_catalog() -> CosmeticCatalog:
    """Build the catalog from current settings."""
    return CosmeticCatalog(
        solid_color=max(int(settings.TOKEN_COST_SOLID_COLOR), 0),
        gradient=max(int(settings.TOKEN_COST_GRADIENT), 0),
        gradient_slot=max(int(settings.TOKEN_COST_GRADIENT_SLOT), 0),
        free_gradient_colors=max(int(settings.FREE_GRADIENT_COLORS), 0),
        animated_gradient=max(int(settings.TOKEN_COST_ANIMATED_GRADIENT), 0),
        gif_profile=max(int(settings.TOKEN_COST_GIF_PROFILE), 0),
        username_change=max(int(settings.TOKEN_COST_USERNAME_CHANGE), 0),
    )
