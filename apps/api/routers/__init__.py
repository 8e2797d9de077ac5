"""Routers package."""

from . import (
    health,
    scripts,
    contributions,
    admin,
)
