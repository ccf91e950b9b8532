"""Client delivery adapter for the realtime chat channel.

Owns the single Socket.IO connection of a signed-in user, authenticates it,
re-joins remembered conversations after reconnecting and fans incoming events
out to subscribers. Realtime is an accelerator: every failure here is
logged and surfaced through the connection state, never raised.
"""
import logging
import threading
import time
from typing import Callable, Dict, Optional, Tuple

import socketio

from market_server.client.reconnect import ReconnectPolicy
from market_server.client.registry import CallbackRegistry
from market_server.messaging.models import Message
from market_server.websocket.event_emitter import EventEmitter

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 10
DEFAULT_TRANSPORTS = ('websocket', 'polling')


class ConnectionState:
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    FAILED = 'failed'


def _default_client_factory():
    return socketio.Client(reconnection=False, logger=False)


class RealtimeClient:
    """One realtime connection plus adapter-level subscriptions.

    Subscriptions belong to the adapter, not to a connection, so they survive
    reconnects and a ``stop``/``start`` cycle.
    """

    def __init__(
        self,
        server_url: str,
        socketio_path: str = 'socket.io',
        transports=DEFAULT_TRANSPORTS,
        policy: Optional[ReconnectPolicy] = None,
        connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
        client_factory: Callable[[], socketio.Client] = _default_client_factory,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.server_url = server_url
        self.socketio_path = socketio_path
        self.transports = list(transports)
        self.policy = policy or ReconnectPolicy()
        self.connect_timeout = connect_timeout
        self._client_factory = client_factory
        self._sleep = sleep

        self._sio = None
        self._state = ConnectionState.DISCONNECTED
        self._authenticated = False
        self._user_id: Optional[str] = None
        self._token: Optional[str] = None
        self._stopped = True
        self._generation = 0
        self._rooms: Dict[Tuple[str, str], Dict[str, str]] = {}
        self._lock = threading.RLock()
        self.reconnect_attempts = 0

        self._new_message = CallbackRegistry(EventEmitter.NEW_MESSAGE)
        self._message_read = CallbackRegistry(EventEmitter.MESSAGE_READ)
        self._user_typing = CallbackRegistry(EventEmitter.USER_TYPING)
        self._message_notification = CallbackRegistry(EventEmitter.MESSAGE_NOTIFICATION)
        self._connection_change = CallbackRegistry('connection_change')

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def state(self) -> str:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    def start(self, user_id: str, token: str) -> bool:
        """Open the connection for ``user_id``. Returns True if connected now.

        A failed first attempt is retried in the background under the
        reconnect policy.
        """
        with self._lock:
            if not self._stopped and self._user_id == user_id and self._state != ConnectionState.FAILED:
                return self.is_connected
        self.stop()

        with self._lock:
            self._user_id = user_id
            self._token = token
            self._stopped = False
            self._generation += 1
            generation = self._generation
            self.reconnect_attempts = 0
            self._sio = self._client_factory()
            self._bind_handlers(self._sio)
        self._set_state(ConnectionState.CONNECTING)

        if self._connect_once():
            return True
        self._schedule_reconnect(generation)
        return False

    def stop(self):
        """Tear the connection down (sign-out). Subscriptions are kept."""
        with self._lock:
            was_running = not self._stopped
            self._stopped = True
            self._generation += 1
            sio = self._sio
            self._sio = None
            self._rooms.clear()
            self._authenticated = False
        if sio is not None:
            try:
                sio.disconnect()
            except Exception as e:
                logger.debug(f"REALTIME: disconnect failed: {e}")
        if was_running:
            logger.info(f"REALTIME: stopped for user={self._user_id}")
        self._set_state(ConnectionState.DISCONNECTED)

    def _connect_once(self) -> bool:
        sio = self._sio
        if sio is None:
            return False
        try:
            sio.connect(
                self.server_url,
                transports=self.transports,
                socketio_path=self.socketio_path,
                wait_timeout=self.connect_timeout
            )
            return True
        except Exception as e:
            logger.warning(f"REALTIME: connect to {self.server_url} failed: {e}")
            return False

    def _schedule_reconnect(self, generation: int):
        with self._lock:
            if self._stopped or generation != self._generation or self._sio is None:
                return
            sio = self._sio
        self._set_state(ConnectionState.CONNECTING)
        sio.start_background_task(self._reconnect_loop, generation)

    def _reconnect_loop(self, generation: int):
        for attempt in range(1, self.policy.max_attempts + 1):
            self._sleep(self.policy.delay_for(attempt))
            with self._lock:
                if self._stopped or generation != self._generation:
                    return
                self.reconnect_attempts = attempt
            logger.info(f"REALTIME: reconnect attempt {attempt}/{self.policy.max_attempts}")
            if self._connect_once():
                return
        with self._lock:
            if self._stopped or generation != self._generation:
                return
        logger.error(f"REALTIME: giving up after {self.policy.max_attempts} reconnect attempts")
        self._set_state(ConnectionState.FAILED)

    def _set_state(self, state: str):
        with self._lock:
            if state == self._state:
                return
            self._state = state
        logger.debug(f"REALTIME: state={state}")
        self._connection_change.dispatch(state)

    # =========================================================================
    # Transport handlers
    # =========================================================================

    def _bind_handlers(self, sio):
        sio.on('connect', self._on_connect)
        sio.on('disconnect', self._on_disconnect)
        sio.on(EventEmitter.AUTHENTICATED, self._on_authenticated)
        sio.on(EventEmitter.ERROR, self._on_error)
        sio.on(EventEmitter.NEW_MESSAGE, self._on_new_message)
        sio.on(EventEmitter.MESSAGE_READ, self._message_read.dispatch)
        sio.on(EventEmitter.USER_TYPING, self._user_typing.dispatch)
        sio.on(EventEmitter.MESSAGE_NOTIFICATION, self._message_notification.dispatch)

    def _on_connect(self):
        with self._lock:
            self._authenticated = False
            self.reconnect_attempts = 0
            user_id, token = self._user_id, self._token
        self._set_state(ConnectionState.CONNECTED)
        logger.info(f"REALTIME: connected, authenticating user={user_id}")
        self._emit(EventEmitter.AUTHENTICATE, {'userId': user_id, 'token': token})

    def _on_authenticated(self, data=None):
        with self._lock:
            self._authenticated = True
            rooms = list(self._rooms.values())
        for payload in rooms:
            self._emit(EventEmitter.JOIN_CONVERSATION, payload)
        logger.debug(f"REALTIME: authenticated, rejoined {len(rooms)} conversation(s)")

    def _on_disconnect(self, *args):
        with self._lock:
            self._authenticated = False
            stopped = self._stopped
            generation = self._generation
        if stopped:
            return
        logger.warning(f"REALTIME: disconnected {args[0] if args else ''}".rstrip())
        self._set_state(ConnectionState.DISCONNECTED)
        self._schedule_reconnect(generation)

    def _on_error(self, data=None):
        message = data.get('message') if isinstance(data, dict) else data
        logger.warning(f"REALTIME: server error: {message}")

    def _on_new_message(self, data):
        try:
            message = Message.from_wire(data)
        except Exception as e:
            logger.warning(f"REALTIME: malformed new_message payload: {e}")
            return
        self._new_message.dispatch(message)

    def _emit(self, event: str, payload: Dict) -> bool:
        sio = self._sio
        if sio is None or not self.is_connected:
            logger.warning(f"REALTIME: not connected, dropping {event}")
            return False
        try:
            sio.emit(event, payload)
            return True
        except Exception as e:
            logger.warning(f"REALTIME: emit {event} failed: {e}")
            return False

    # =========================================================================
    # Outbound operations (fire-and-forget)
    # =========================================================================

    def join_conversation(self, listing_id: str, other_user_id: str) -> bool:
        if not self.is_connected:
            logger.warning(f"REALTIME: not connected, cannot join {listing_id}/{other_user_id}")
            return False
        payload = {'listingId': listing_id, 'otherUserId': other_user_id}
        with self._lock:
            self._rooms[(listing_id, other_user_id)] = payload
            authenticated = self._authenticated
        # joins requested before the handshake completes are sent by _on_authenticated
        if not authenticated:
            return True
        return self._emit(EventEmitter.JOIN_CONVERSATION, payload)

    def leave_conversation(self, listing_id: str, other_user_id: str) -> bool:
        with self._lock:
            self._rooms.pop((listing_id, other_user_id), None)
        return self._emit(EventEmitter.LEAVE_CONVERSATION, {'listingId': listing_id, 'otherUserId': other_user_id})

    def send_typing_indicator(self, listing_id: str, receiver_id: str, is_typing: bool) -> bool:
        return self._emit(EventEmitter.TYPING, {
            'listingId': listing_id,
            'receiverId': receiver_id,
            'isTyping': bool(is_typing)
        })

    def joined_conversations(self):
        with self._lock:
            return set(self._rooms)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def on_new_message(self, callback: Callable[[Message], None]) -> Callable[[], None]:
        return self._new_message.subscribe(callback)

    def on_message_read(self, callback: Callable[[Dict], None]) -> Callable[[], None]:
        return self._message_read.subscribe(callback)

    def on_user_typing(self, callback: Callable[[Dict], None]) -> Callable[[], None]:
        return self._user_typing.subscribe(callback)

    def on_message_notification(self, callback: Callable[[Dict], None]) -> Callable[[], None]:
        return self._message_notification.subscribe(callback)

    def on_connection_change(self, callback: Callable[[str], None]) -> Callable[[], None]:
        return self._connection_change.subscribe(callback)
