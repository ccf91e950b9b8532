import logging
import threading
from typing import Callable, List

logger = logging.getLogger(__name__)


class CallbackRegistry:
    """Ordered list of subscribers for one event.

    ``subscribe`` returns a function that removes exactly that subscription.
    A subscriber that raises is logged and does not stop the others.
    """

    def __init__(self, name: str):
        self.name = name
        self._callbacks: List[Callable] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable) -> Callable[[], None]:
        if not callable(callback):
            raise TypeError(f"{self.name} callback must be callable")
        entry = [callback]
        with self._lock:
            self._callbacks.append(entry)

        def unsubscribe():
            with self._lock:
                self._callbacks = [e for e in self._callbacks if e is not entry]

        return unsubscribe

    def dispatch(self, *args) -> int:
        """Invoke every subscriber in registration order. Returns how many succeeded."""
        with self._lock:
            callbacks = [e[0] for e in self._callbacks]
        ok = 0
        for callback in callbacks:
            try:
                callback(*args)
                ok += 1
            except Exception:
                logger.exception(f"Error in {self.name} callback")
        return ok

    def clear(self):
        with self._lock:
            self._callbacks = []

    def __len__(self):
        with self._lock:
            return len(self._callbacks)
