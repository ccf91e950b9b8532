"""In-memory presence tracking driven by client heartbeats.

A user is online while their last heartbeat is younger than the freshness
window. There is no offline event: a missing heartbeat is the only signal.
"""
import logging
import threading
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from market_server.messaging.models import PresenceRecord
from market_server.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

DEFAULT_ONLINE_THRESHOLD_SECONDS = 60


class PresenceStore:
    """Last-heartbeat map answering single and batched online queries."""

    def __init__(
        self,
        online_threshold_seconds: float = DEFAULT_ONLINE_THRESHOLD_SECONDS,
        clock: Callable[[], datetime] = utc_now
    ):
        self.online_threshold_seconds = online_threshold_seconds
        self._clock = clock
        self._records: Dict[str, PresenceRecord] = {}
        self._lock = threading.RLock()

    def heartbeat(self, user_id: str) -> PresenceRecord:
        """Record a heartbeat for ``user_id`` at the current time."""
        now = self._clock()
        with self._lock:
            record = self._records.get(user_id)
            if record is None:
                record = PresenceRecord(user_id, now)
                self._records[user_id] = record
                logger.debug(f"PRESENCE: first heartbeat user={user_id}")
            else:
                record.last_heartbeat_at = now
        return record

    def _fresh(self, record: Optional[PresenceRecord], now: datetime) -> bool:
        return record is not None and record.age_seconds(now) < self.online_threshold_seconds

    def is_online(self, user_id: str) -> bool:
        with self._lock:
            return self._fresh(self._records.get(user_id), self._clock())

    def is_online_batch(self, user_ids: Iterable[str]) -> Dict[str, bool]:
        """Online flag for every requested id; unknown ids are False."""
        now = self._clock()
        with self._lock:
            return {uid: self._fresh(self._records.get(uid), now) for uid in user_ids}

    def last_seen(self, user_id: str) -> Optional[datetime]:
        with self._lock:
            record = self._records.get(user_id)
            return record.last_heartbeat_at if record else None

    def online_users(self) -> List[str]:
        now = self._clock()
        with self._lock:
            return [uid for uid, record in self._records.items() if self._fresh(record, now)]

    def remove(self, user_id: str) -> bool:
        """Forget a user (logout)."""
        with self._lock:
            return self._records.pop(user_id, None) is not None

    def cleanup(self) -> int:
        """Drop records older than twice the freshness window."""
        now = self._clock()
        cutoff = self.online_threshold_seconds * 2
        with self._lock:
            stale = [uid for uid, record in self._records.items() if record.age_seconds(now) >= cutoff]
            for uid in stale:
                del self._records[uid]
        if stale:
            logger.debug(f"PRESENCE: cleaned up {len(stale)} stale record(s)")
        return len(stale)

    def __len__(self):
        with self._lock:
            return len(self._records)
