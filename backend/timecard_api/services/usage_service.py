from typing import Callable, Optional

from flask import Request

from usage import UsageIdentity, UsageStore
from ..repositories.usage_repository import UsageRepository
from ..utils import today


ACCOUNT_HEADER = 'X-Account-Id'
GUEST_HEADER = 'X-Guest-Id'


class SqlUsageStore(UsageStore):
    """Account-remote usage counters persisted in the daily_usage table."""

    def __init__(self, repo: Optional[UsageRepository] = None, current_day: Callable = today):
        self.repo = repo or UsageRepository()
        self.current_day = current_day

    def get(self, identity: UsageIdentity) -> int:
        record = self.repo.get_for_day(identity.key, self.current_day())
        return record.count if record else 0

    def set(self, identity: UsageIdentity, count: int) -> None:
        self.repo.set_count(identity.key, identity.is_guest, self.current_day(), count)


def resolve_identity(request: Request) -> UsageIdentity:
    """
    Accounts are identified by header; guests by their own key or address.

    Headers are trusted as sent. An authenticating proxy in front of the API
    is expected to set X-Account-Id and drop any client-supplied value.
    """
    account_id = (request.headers.get(ACCOUNT_HEADER) or '').strip()
    if account_id:
        return UsageIdentity(key=f'account:{account_id}', is_guest=False)
    guest_id = (request.headers.get(GUEST_HEADER) or '').strip() or (request.remote_addr or 'unknown')
    return UsageIdentity(key=f'guest:{guest_id}', is_guest=True)
