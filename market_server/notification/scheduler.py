import threading
import logging

logger = logging.getLogger(__name__)


class PresenceSweeper:
    """Daemon thread that drops stale presence and typing entries."""

    def __init__(self, presence_store, typing_store=None, interval_seconds=30):
        self.interval = interval_seconds
        self.presence_store = presence_store
        self.typing_store = typing_store
        self.thread = threading.Thread(target=self.run, name='presence-sweeper', daemon=True)
        self.running = False
        self._stop_event = threading.Event()

    def start(self):
        self.running = True
        self.thread.start()
        logger.info(f"[Sweeper] started, interval={self.interval}s")

    def stop(self):
        self.running = False
        self._stop_event.set()
        if self.thread.is_alive():
            self.thread.join()

    def run(self):
        while self.running:
            self.sweep()
            if self._stop_event.wait(self.interval):
                break

    def sweep(self):
        removed_presence = 0
        removed_typing = 0
        try:
            removed_presence = self.presence_store.cleanup()
            if self.typing_store is not None:
                removed_typing = self.typing_store.cleanup()
        except Exception as e:
            logger.error(f"[Sweeper] cleanup failed: {e}")
        if removed_presence or removed_typing:
            logger.debug(f"[Sweeper] removed presence={removed_presence}, typing={removed_typing}")
        return removed_presence, removed_typing
