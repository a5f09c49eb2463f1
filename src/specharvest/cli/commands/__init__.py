"""CLI command modules."""

from . import db, harvest, schedule

__all__ = [
    "db",
    "harvest",
    "schedule",
]
