"""Centralized WebSocket Hub.

Sessions connect anonymously and must send ``authenticate`` with a bearer
token before any routed event reaches them. Authenticated sessions join
their personal room ``user:{userId}`` and, on request, conversation rooms.
"""
import logging
import threading
from typing import Dict, Any, Optional, Set

from flask import Flask, request
from flask_socketio import SocketIO, emit, join_room, leave_room

from market_server.exception.UnauthorizedError import UnauthorizedError
from market_server.messaging.models import Message, RealtimeSession
from market_server.notification.dispatcher import build_message_notification
from market_server.security.authentication import AuthSecurity
from market_server.utils.time_utils import utc_now, to_iso
from market_server.websocket.event_emitter import (
    EventEmitter, set_socketio, conversation_room, user_room,
    new_message_payload, message_read_payload, user_typing_payload, error_payload
)

logger = logging.getLogger(__name__)


class WebSocketHub:
    """Centralized WebSocket Hub for real-time chat delivery."""

    def __init__(self, socketio: SocketIO = None, presence=None, users=None, preview_length: int = 100):
        self.socketio = socketio
        self.presence = presence
        self.users = users
        self.preview_length = preview_length
        self.sessions: Dict[str, RealtimeSession] = {}
        self.user_sockets: Dict[str, Set[str]] = {}
        self._lock = threading.RLock()
        self._initialized = False

    def init_app(self, app: Flask, socketio: SocketIO):
        """Initialize the WebSocket hub."""
        logger.debug(f"WS_HUB: init app={app.name}, mode={getattr(socketio, 'async_mode', '?')}")

        self.socketio = socketio
        self.app = app

        set_socketio(socketio)
        self._register_handlers()

        self._initialized = True
        logger.debug("WS_HUB: initialized")

    def _register_handlers(self):
        """Register WebSocket event handlers."""

        @self.socketio.on_error_default
        def default_error_handler(e):
            logger.error(f"WS error: {e}")

        # =====================================================================
        # Connection Events
        # =====================================================================

        @self.socketio.on('connect')
        def handle_connect(auth=None):
            """Accept the transport; identity is bound later by ``authenticate``."""
            sid = request.sid
            with self._lock:
                self.sessions[sid] = RealtimeSession(sid)
            logger.debug(f"WS connect: sid={sid}, ip={request.remote_addr}")
            return True

        @self.socketio.on('disconnect')
        def handle_disconnect(reason=None):
            sid = request.sid
            with self._lock:
                session = self.sessions.pop(sid, None)
                if session and session.is_authenticated:
                    sockets = self.user_sockets.get(session.user_id)
                    if sockets is not None:
                        sockets.discard(sid)
                        if not sockets:
                            del self.user_sockets[session.user_id]
                            logger.debug(f"WS offline: user={session.user_id}")
            logger.debug(f"WS disconnect: sid={sid}, reason={reason}")

        # =====================================================================
        # Handshake
        # =====================================================================

        @self.socketio.on(EventEmitter.AUTHENTICATE)
        def handle_authenticate(data=None):
            sid = request.sid
            data = data if isinstance(data, dict) else {}
            try:
                payload = AuthSecurity.verify_handshake(data.get('token'), data.get('userId'))
            except UnauthorizedError as e:
                logger.warning(f"WS auth failed: sid={sid}, reason={e}")
                emit(EventEmitter.ERROR, error_payload(str(e)))
                return

            user_id = str(payload['user_id'])
            username = payload.get('username') or self._display_name(user_id)
            with self._lock:
                session = self.sessions.get(sid)
                if session is None:
                    session = RealtimeSession(sid)
                    self.sessions[sid] = session
                stale_rooms = []
                if session.is_authenticated and session.user_id != user_id:
                    self.user_sockets.get(session.user_id, set()).discard(sid)
                    if not self.user_sockets.get(session.user_id):
                        self.user_sockets.pop(session.user_id, None)
                    stale_rooms = [user_room(session.user_id)] + sorted(session.rooms)
                    session.rooms.clear()
                session.bind(user_id, username)
                self.user_sockets.setdefault(user_id, set()).add(sid)

            # rooms joined under the previous identity
            for room in stale_rooms:
                leave_room(room)
            join_room(user_room(user_id))
            if self.presence is not None:
                self.presence.heartbeat(user_id)

            logger.info(f"WS authenticated: user={user_id}, sid={sid}")
            emit(EventEmitter.AUTHENTICATED, {'userId': user_id, 'username': username})

        # =====================================================================
        # Conversation Rooms
        # =====================================================================

        @self.socketio.on(EventEmitter.JOIN_CONVERSATION)
        def handle_join_conversation(data=None):
            session = self._require_session()
            if session is None:
                return
            room = self._room_from(session, data, 'otherUserId')
            if room is None:
                return
            with self._lock:
                if room in session.rooms:
                    logger.debug(f"WS join: sid={session.sid} already in {room}")
                    return
                session.rooms.add(room)
            join_room(room)
            logger.debug(f"WS join: user={session.user_id}, room={room}")

        @self.socketio.on(EventEmitter.LEAVE_CONVERSATION)
        def handle_leave_conversation(data=None):
            session = self._require_session()
            if session is None:
                return
            room = self._room_from(session, data, 'otherUserId')
            if room is None:
                return
            with self._lock:
                if room not in session.rooms:
                    return
                session.rooms.discard(room)
            leave_room(room)
            logger.debug(f"WS leave: user={session.user_id}, room={room}")

        # =====================================================================
        # Typing
        # =====================================================================

        @self.socketio.on(EventEmitter.TYPING)
        def handle_typing(data=None):
            session = self._require_session()
            if session is None:
                return
            room = self._room_from(session, data, 'receiverId')
            if room is None:
                return
            payload = user_typing_payload(
                data.get('listingId'), session.user_id, session.username, data.get('isTyping', False)
            )
            with self._lock:
                own_sids = list(self.user_sockets.get(session.user_id, ()))
            EventEmitter.emit_to_room(room, EventEmitter.USER_TYPING, payload, skip_sids=own_sids)

        # =====================================================================
        # Ping/Pong
        # =====================================================================

        @self.socketio.on(EventEmitter.PING)
        def handle_ping(data=None):
            emit(EventEmitter.PONG, {'timestamp': to_iso(utc_now())})

    def _require_session(self) -> Optional[RealtimeSession]:
        """Session for the current request if authenticated, else emit an error."""
        with self._lock:
            session = self.sessions.get(request.sid)
        if session is None or not session.is_authenticated:
            emit(EventEmitter.ERROR, error_payload('Not authenticated'))
            return None
        return session

    def _display_name(self, user_id: str) -> Optional[str]:
        if self.users is None:
            return None
        try:
            return self.users.get_display_name(user_id)
        except Exception as e:
            logger.warning(f"WS display name lookup failed: user={user_id}, error={e}")
            return None

    def _room_from(self, session: RealtimeSession, data, other_key: str) -> Optional[str]:
        if not isinstance(data, dict) or not data.get('listingId') or not data.get(other_key):
            emit(EventEmitter.ERROR, error_payload(f'listingId and {other_key} are required'))
            return None
        return conversation_room(data['listingId'], session.user_id, data[other_key])

    # =========================================================================
    # Public API
    # =========================================================================

    def emit_new_message(self, message: Message) -> bool:
        """Push a persisted message to its conversation room and notify the receiver."""
        room = conversation_room(message.listing_id, message.sender_id, message.receiver_id)
        delivered = EventEmitter.emit_to_room(room, EventEmitter.NEW_MESSAGE, new_message_payload(message))
        EventEmitter.emit_to_user(
            message.receiver_id,
            EventEmitter.MESSAGE_NOTIFICATION,
            build_message_notification(message, self.preview_length)
        )
        return delivered

    def emit_message_read(self, message_id: str, read_by: str, read_at, sender_id: str) -> bool:
        """Tell the original sender that their message was read."""
        read_at = to_iso(read_at) if not isinstance(read_at, str) else read_at
        return EventEmitter.emit_to_user(
            sender_id, EventEmitter.MESSAGE_READ, message_read_payload(message_id, read_by, read_at)
        )

    def is_user_online(self, user_id: str) -> bool:
        """True while the user has at least one authenticated socket."""
        with self._lock:
            return bool(self.user_sockets.get(user_id))

    def online_user_count(self) -> int:
        with self._lock:
            return len(self.user_sockets)


# Singleton instance
_hub_instance: Optional[WebSocketHub] = None


def init_websocket_hub(
    app: Flask,
    socketio: SocketIO,
    presence=None,
    users=None,
    preview_length: int = 100
) -> WebSocketHub:
    """Create the hub for ``app`` and make it the process-wide instance."""
    global _hub_instance
    hub = WebSocketHub(presence=presence, users=users, preview_length=preview_length)
    hub.init_app(app, socketio)
    app.extensions['websocket_hub'] = hub
    _hub_instance = hub
    return hub


def get_websocket_hub() -> WebSocketHub:
    """Get WebSocket hub singleton."""
    global _hub_instance
    if _hub_instance is None:
        _hub_instance = WebSocketHub()
    return _hub_instance
