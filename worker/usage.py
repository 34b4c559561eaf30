"""
Daily usage accounting.

Counts are per identity and per calendar day: a stored count from an earlier
day reads as zero. Guests are held to a daily limit, accounts are not.
"""
import json
import logging
import os
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Callable, Dict, Optional

from errors import QuotaExceededError

logger = logging.getLogger('timecard_worker.usage')

GUEST_DAILY_LIMIT = int(os.environ.get("GUEST_DAILY_LIMIT", "2"))
DEFAULT_USAGE_FILE = os.environ.get("USAGE_FILE", str(Path.home() / ".timecard_ocr_usage.json"))


def today_string() -> str:
    return date.today().isoformat()


@dataclass(frozen=True)
class UsageIdentity:
    key: str
    is_guest: bool = True


class UsageStore:
    """Persistence capability for today's count of one identity."""

    def get(self, identity: UsageIdentity) -> int:
        raise NotImplementedError

    def set(self, identity: UsageIdentity, count: int) -> None:
        raise NotImplementedError


class InMemoryUsageStore(UsageStore):
    def __init__(self, today: Callable[[], str] = today_string):
        self._today = today
        self._counts: Dict[str, Dict[str, object]] = {}

    def get(self, identity: UsageIdentity) -> int:
        record = self._counts.get(identity.key)
        if not record or record.get('date') != self._today():
            return 0
        return int(record.get('count', 0))

    def set(self, identity: UsageIdentity, count: int) -> None:
        self._counts[identity.key] = {'date': self._today(), 'count': count}


class JsonFileUsageStore(UsageStore):
    """Guest-local store: ``{identity: {"date": "YYYY-MM-DD", "count": n}}`` on disk."""

    def __init__(self, path: Optional[str] = None, today: Callable[[], str] = today_string):
        self.path = Path(path or DEFAULT_USAGE_FILE)
        self._today = today

    def _load(self) -> Dict[str, Dict[str, object]]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable usage file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, identity: UsageIdentity) -> int:
        record = self._load().get(identity.key)
        if not isinstance(record, dict) or record.get('date') != self._today():
            return 0
        try:
            return int(record.get('count', 0))
        except (TypeError, ValueError):
            return 0

    def set(self, identity: UsageIdentity, count: int) -> None:
        data = self._load()
        data[identity.key] = {'date': self._today(), 'count': count}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding='utf-8')


class UsageTracker:
    """Quota checks and counter increments on top of a UsageStore."""

    def __init__(self, store: UsageStore, daily_limit: int = GUEST_DAILY_LIMIT):
        self.store = store
        self.daily_limit = daily_limit

    def limit_for(self, identity: UsageIdentity) -> Optional[int]:
        return self.daily_limit if identity.is_guest else None

    def remaining(self, identity: UsageIdentity) -> Optional[int]:
        limit = self.limit_for(identity)
        if limit is None:
            return None
        return max(0, limit - self.store.get(identity))

    def check_quota(self, identity: UsageIdentity) -> None:
        limit = self.limit_for(identity)
        if limit is None:
            return
        count = self.store.get(identity)
        if count >= limit:
            raise QuotaExceededError(
                f"本日の利用回数制限（{limit}回）に達しました。明日またご利用ください。",
                count=count,
                limit=limit,
            )

    def record_success(self, identity: UsageIdentity) -> int:
        count = self.store.get(identity) + 1
        self.store.set(identity, count)
        logger.debug(f"Usage for {identity.key} is now {count}")
        return count
