"""HTTP side of presence: heartbeats out, online status in.

Heartbeats are plain POSTs with no retry; a lost beat is covered by the
server's freshness window. Status answers are cached briefly and refreshed
by a poller.
"""
import logging
import threading
import time
from typing import Callable, Dict, Iterable, List, Optional, Set

import httpx

from config import config
from market_server.client.registry import CallbackRegistry

logger = logging.getLogger(__name__)

STATUS_POLL_INTERVAL_SECONDS = 10
STATUS_STALE_AFTER_SECONDS = 5
REQUEST_TIMEOUT_SECONDS = 10


class _ApiClient:

    def __init__(self, base_url: str, token: str, session: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.session = session or httpx.Client(timeout=REQUEST_TIMEOUT_SECONDS)

    def _headers(self) -> Dict[str, str]:
        return {'Authorization': f'Bearer {self.token}'}

    def _request(self, method: str, path: str, **kwargs) -> Optional[dict]:
        try:
            resp = self.session.request(
                method,
                f"{self.base_url}{path}",
                headers=self._headers(),
                timeout=REQUEST_TIMEOUT_SECONDS,
                **kwargs
            )
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"PRESENCE_CLIENT: {method} {path} failed: {e}")
            return None


class HeartbeatSender(_ApiClient):
    """Posts a heartbeat every ``PRESENCE_HEARTBEAT_INTERVAL_SECONDS`` and when the app becomes visible."""

    def __init__(
        self,
        base_url: str,
        token: str,
        interval_seconds: Optional[float] = None,
        session: Optional[httpx.Client] = None
    ):
        super().__init__(base_url, token, session)
        self.interval = interval_seconds or config.PRESENCE_HEARTBEAT_INTERVAL_SECONDS
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def beat(self) -> bool:
        return self._request('POST', '/api/realtime/heartbeat') is not None

    def on_visibility_change(self, visible: bool):
        if visible:
            self.beat()

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name='presence-heartbeat', daemon=True)
        self._thread.start()

    def stop(self):
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join()
        self._thread = None

    def _run(self):
        while not self._stop_event.is_set():
            self.beat()
            if self._stop_event.wait(self.interval):
                break


class PresenceClient(_ApiClient):
    """Cached online status for a set of watched users."""

    def __init__(
        self,
        base_url: str,
        token: str,
        poll_interval_seconds: float = STATUS_POLL_INTERVAL_SECONDS,
        stale_after_seconds: float = STATUS_STALE_AFTER_SECONDS,
        session: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        super().__init__(base_url, token, session)
        self.poll_interval = poll_interval_seconds
        self.stale_after = stale_after_seconds
        self._clock = clock
        self._cache: Dict[str, tuple] = {}
        self._watched: Set[str] = set()
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._changes = CallbackRegistry('presence_change')

    def _cached(self, user_id: str) -> Optional[bool]:
        with self._lock:
            entry = self._cache.get(user_id)
        if entry is None:
            return None
        online, fetched_at = entry
        if self._clock() - fetched_at >= self.stale_after:
            return None
        return online

    def _store(self, statuses: Dict[str, bool]):
        now = self._clock()
        changed = []
        with self._lock:
            for user_id, online in statuses.items():
                previous = self._cache.get(user_id)
                self._cache[user_id] = (bool(online), now)
                if previous is None or previous[0] != bool(online):
                    changed.append((user_id, bool(online)))
        for user_id, online in changed:
            self._changes.dispatch(user_id, online)

    def is_online(self, user_id: str) -> bool:
        """Online flag, refetched once the cached answer is stale. Unknown -> False."""
        cached = self._cached(user_id)
        if cached is not None:
            return cached
        data = self._request('GET', f'/api/realtime/status/{user_id}')
        if data is None:
            return False
        online = bool(data.get('online'))
        self._store({user_id: online})
        return online

    def batch(self, user_ids: Iterable[str]) -> Dict[str, bool]:
        ids: List[str] = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        data = self._request('POST', '/api/realtime/status/batch', json={'userIds': ids})
        statuses = (data or {}).get('statuses') or {}
        result = {uid: bool(statuses.get(uid, False)) for uid in ids}
        if data is not None:
            self._store(result)
        return result

    def watch(self, user_ids: Iterable[str]):
        with self._lock:
            self._watched.update(user_ids)

    def unwatch(self, user_ids: Iterable[str]):
        with self._lock:
            self._watched.difference_update(user_ids)

    def on_change(self, callback: Callable[[str, bool], None]) -> Callable[[], None]:
        return self._changes.subscribe(callback)

    def poll_once(self) -> Dict[str, bool]:
        with self._lock:
            watched = sorted(self._watched)
        return self.batch(watched)

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name='presence-poller', daemon=True)
        self._thread.start()

    def stop(self):
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join()
        self._thread = None

    def _run(self):
        while not self._stop_event.is_set():
            self.poll_once()
            if self._stop_event.wait(self.poll_interval):
                break
