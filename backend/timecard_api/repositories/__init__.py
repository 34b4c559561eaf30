"""
Repository layer for data access.

All database access should go through these repositories rather than
directly using SQLAlchemy models.

Usage:
    from timecard_api.repositories import UsageRepository

    usage_repo = UsageRepository()
    record = usage_repo.get_for_day("guest:127.0.0.1", date.today())
"""

from .base import BaseRepository
from .usage_repository import UsageRepository

__all__ = [
    'BaseRepository',
    'UsageRepository',
]
