from datetime import date
from typing import Optional
from .base import BaseRepository
from ..models.usage import DailyUsage


class UsageRepository(BaseRepository[DailyUsage]):
    """Repository for DailyUsage counters."""

    def __init__(self):
        super().__init__(DailyUsage)

    def get_for_day(self, identity_key: str, usage_date: date) -> Optional[DailyUsage]:
        """
        Get the counter row of one identity for one day.

        Args:
            identity_key: Account id or guest key
            usage_date: Calendar day of the counter

        Returns:
            DailyUsage instance or None when nothing was recorded that day
        """
        return self.session.query(DailyUsage).filter_by(
            identity_key=identity_key,
            usage_date=usage_date
        ).first()

    def set_count(self, identity_key: str, is_guest: bool, usage_date: date, count: int) -> DailyUsage:
        """Create or overwrite the counter of one identity for one day."""
        record = self.get_for_day(identity_key, usage_date)
        if record is None:
            return self.create(
                identity_key=identity_key,
                is_guest=is_guest,
                usage_date=usage_date,
                count=count
            )
        record.count = count
        record.is_guest = is_guest
        self.commit()
        return record
