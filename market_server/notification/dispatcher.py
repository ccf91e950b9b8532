"""Desktop notifications for incoming chat messages.

The dispatcher decides whether a ``new_message`` event deserves a
notification and hands it to a platform backend. It never asks for
permission on its own: ``request_permission`` is only called from an
explicit user action (see ``NotificationPrompt``).
"""
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from market_server.messaging.models import Message, ThreadKey
from market_server.utils.time_utils import to_iso

logger = logging.getLogger(__name__)

NOTIFICATION_TAG = 'new-message'
PREVIEW_LENGTH = 100
AUTO_CLOSE_SECONDS = 5
DEFAULT_SENDER_NAME = 'Someone'
DEFAULT_LISTING_TITLE = 'Item'
PROMPT_DISMISSED_KEY = 'notification-prompt-dismissed'


class NotificationPermission:
    DEFAULT = 'default'
    GRANTED = 'granted'
    DENIED = 'denied'


def message_preview(content: Optional[str], length: int = PREVIEW_LENGTH) -> str:
    return (content or '')[:length]


def build_message_notification(message: Message, preview_length: int = PREVIEW_LENGTH) -> Dict[str, Any]:
    """Payload of the ``message_notification`` event sent to the receiver."""
    return {
        'messageId': message.message_id,
        'listingId': message.listing_id,
        'senderId': message.sender_id,
        'preview': message_preview(message.content, preview_length),
        'createdAt': to_iso(message.created_at)
    }


class NotificationHandle(ABC):
    """A notification currently on screen."""

    on_click: Optional[Callable[[], None]] = None

    @abstractmethod
    def close(self):
        pass


class NotificationBackend(ABC):
    """Platform notification API."""

    @property
    @abstractmethod
    def supported(self) -> bool:
        pass

    @abstractmethod
    def permission(self) -> str:
        pass

    @abstractmethod
    def request_permission(self) -> str:
        pass

    @abstractmethod
    def show(self, title: str, body: str, tag: str) -> NotificationHandle:
        pass

    @abstractmethod
    def focus_window(self):
        pass


class UnsupportedNotificationBackend(NotificationBackend):
    """Backend for environments without notifications. Everything is a no-op."""

    @property
    def supported(self) -> bool:
        return False

    def permission(self) -> str:
        return NotificationPermission.DENIED

    def request_permission(self) -> str:
        return NotificationPermission.DENIED

    def show(self, title: str, body: str, tag: str) -> NotificationHandle:
        raise RuntimeError('Notifications are not supported')

    def focus_window(self):
        pass


class NotificationDispatcher:
    """Shows a notification for messages that arrive while the user is elsewhere."""

    def __init__(
        self,
        backend: NotificationBackend,
        viewer_id: str,
        on_navigate: Optional[Callable[[Message], None]] = None,
        auto_close_seconds: float = AUTO_CLOSE_SECONDS,
        preview_length: int = PREVIEW_LENGTH,
        timer_factory: Callable[..., Any] = threading.Timer
    ):
        self.backend = backend
        self.viewer_id = viewer_id
        self.on_navigate = on_navigate
        self.auto_close_seconds = auto_close_seconds
        self.preview_length = preview_length
        self._timer_factory = timer_factory
        self._active_thread: Optional[ThreadKey] = None
        self._window_focused = False

    def set_active_thread(self, listing_id: Optional[str], other_user_id: Optional[str] = None):
        """Thread currently open in the UI; ``None`` when no thread is open."""
        self._active_thread = (listing_id, other_user_id) if listing_id else None

    def set_window_focused(self, focused: bool):
        self._window_focused = bool(focused)

    def _is_active(self, message: Message) -> bool:
        return self._window_focused and self._active_thread == message.thread_key(self.viewer_id)

    def should_notify(self, message: Message) -> bool:
        if message.receiver_id != self.viewer_id:
            return False
        if self._is_active(message):
            return False
        if not self.backend.supported:
            return False
        try:
            return self.backend.permission() == NotificationPermission.GRANTED
        except Exception as e:
            logger.warning(f"NOTIFY: permission lookup failed: {e}")
            return False

    def notify_new_message(
        self,
        message: Message,
        sender_name: Optional[str] = None,
        listing_title: Optional[str] = None
    ) -> Optional[NotificationHandle]:
        """Show a notification for ``message`` if the rules allow. Never raises."""
        if not self.should_notify(message):
            logger.debug(f"NOTIFY: skipped message={message.message_id}")
            return None

        title = f"New message from {sender_name or DEFAULT_SENDER_NAME}"
        body = f"{listing_title or DEFAULT_LISTING_TITLE}\n{message_preview(message.content, self.preview_length)}"
        try:
            handle = self.backend.show(title, body, NOTIFICATION_TAG)
        except Exception as e:
            logger.warning(f"NOTIFY: backend failed to show notification: {e}")
            return None

        def on_click():
            try:
                self.backend.focus_window()
                if self.on_navigate:
                    self.on_navigate(message)
            except Exception as e:
                logger.warning(f"NOTIFY: click handler failed: {e}")
            finally:
                _close(handle)

        handle.on_click = on_click
        if self.auto_close_seconds:
            timer = self._timer_factory(self.auto_close_seconds, _close, args=(handle,))
            timer.daemon = True
            timer.start()
        return handle

    def request_permission(self) -> str:
        """User-initiated permission request."""
        if not self.backend.supported:
            return NotificationPermission.DENIED
        try:
            return self.backend.request_permission()
        except Exception as e:
            logger.warning(f"NOTIFY: permission request failed: {e}")
            return NotificationPermission.DENIED


def _close(handle: NotificationHandle):
    try:
        handle.close()
    except Exception as e:
        logger.debug(f"NOTIFY: close failed: {e}")


class NotificationPrompt:
    """Decides whether to offer the "enable notifications" prompt.

    Dismissal is remembered in a small JSON state file.
    """

    def __init__(self, backend: NotificationBackend, state_path: str):
        self.backend = backend
        self.state_path = state_path

    def _load_state(self) -> Dict[str, Any]:
        if not os.path.exists(self.state_path):
            return {}
        try:
            with open(self.state_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except Exception as e:
            logger.warning(f"Error loading prompt state from {self.state_path}: {e}")
            return {}

    def _save_state(self, state: Dict[str, Any]) -> bool:
        try:
            directory = os.path.dirname(self.state_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.state_path, 'w', encoding='utf-8') as f:
                json.dump(state, f, indent=2)
            return True
        except Exception as e:
            logger.error(f"Error saving prompt state to {self.state_path}: {e}")
            return False

    @property
    def dismissed(self) -> bool:
        return bool(self._load_state().get(PROMPT_DISMISSED_KEY))

    def should_show(self) -> bool:
        if not self.backend.supported:
            return False
        if self.backend.permission() in (NotificationPermission.GRANTED, NotificationPermission.DENIED):
            return False
        return not self.dismissed

    def dismiss(self) -> bool:
        state = self._load_state()
        state[PROMPT_DISMISSED_KEY] = True
        return self._save_state(state)

    def enable(self) -> bool:
        """Enable action: ask for permission. Returns True when granted."""
        if not self.backend.supported:
            return False
        try:
            return self.backend.request_permission() == NotificationPermission.GRANTED
        except Exception as e:
            logger.warning(f"NOTIFY: permission request failed: {e}")
            return False
