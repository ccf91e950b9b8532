"""Short-lived typing state for the REST polling fallback.

Entries expire after a few seconds; nothing here is persisted.
"""
import logging
import threading
from datetime import datetime
from typing import Callable, Dict, List

from market_server.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

DEFAULT_TYPING_TIMEOUT_SECONDS = 3


class TypingIndicatorStore:
    """conversation_id -> {user_id: last typing timestamp}"""

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TYPING_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = utc_now
    ):
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._typing: Dict[str, Dict[str, datetime]] = {}
        self._lock = threading.RLock()

    def _active(self, ts: datetime, now: datetime) -> bool:
        return (now - ts).total_seconds() < self.timeout_seconds

    def set_typing(self, conversation_id: str, user_id: str):
        with self._lock:
            self._typing.setdefault(conversation_id, {})[user_id] = self._clock()

    def clear_typing(self, conversation_id: str, user_id: str):
        with self._lock:
            users = self._typing.get(conversation_id)
            if not users:
                return
            users.pop(user_id, None)
            if not users:
                del self._typing[conversation_id]

    def typing_users(self, conversation_id: str) -> List[str]:
        now = self._clock()
        with self._lock:
            users = self._typing.get(conversation_id, {})
            return [uid for uid, ts in users.items() if self._active(ts, now)]

    def is_typing(self, conversation_id: str, user_id: str) -> bool:
        now = self._clock()
        with self._lock:
            ts = self._typing.get(conversation_id, {}).get(user_id)
            return ts is not None and self._active(ts, now)

    def cleanup(self) -> int:
        now = self._clock()
        removed = 0
        with self._lock:
            for conversation_id in list(self._typing):
                users = self._typing[conversation_id]
                for uid in [u for u, ts in users.items() if not self._active(ts, now)]:
                    del users[uid]
                    removed += 1
                if not users:
                    del self._typing[conversation_id]
        return removed
