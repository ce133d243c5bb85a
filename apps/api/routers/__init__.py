"""Routers package."""

from . import (
    health,
    auth,
    tokens,
    users,
    admin,
)
