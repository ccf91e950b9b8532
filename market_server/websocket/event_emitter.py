"""Event names, room naming and emit helpers for the realtime channel.

Usage:
    from market_server.websocket.event_emitter import EventEmitter, conversation_room

    EventEmitter.emit_to_room(conversation_room(listing_id, a, b), EventEmitter.NEW_MESSAGE, data)
    EventEmitter.emit_to_user(user_id, EventEmitter.MESSAGE_READ, data)

Emission is best-effort: errors are logged and reported through the return
value, never raised.
"""
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# Will be set when the WebSocket hub initializes
_socketio = None


def set_socketio(socketio_instance):
    """Set the Socket.IO instance for the event emitter."""
    global _socketio
    _socketio = socketio_instance
    logger.debug("EventEmitter initialized with Socket.IO instance")


def conversation_room(listing_id: str, user_a: str, user_b: str) -> str:
    """Room shared by both participants of a listing conversation.

    Participant ids are sorted so either side computes the same name.
    """
    first, second = sorted([str(user_a), str(user_b)])
    return f"conversation:{listing_id}:{first}:{second}"


def user_room(user_id: str) -> str:
    """Personal room joined by every authenticated session of a user."""
    return f"user:{user_id}"


class EventEmitter:
    """Event constants and room-targeted emit helpers."""

    # Client -> server
    AUTHENTICATE = 'authenticate'
    JOIN_CONVERSATION = 'join_conversation'
    LEAVE_CONVERSATION = 'leave_conversation'
    TYPING = 'typing'
    PING = 'ping'

    # Server -> client
    AUTHENTICATED = 'authenticated'
    NEW_MESSAGE = 'new_message'
    MESSAGE_READ = 'message_read'
    MESSAGE_NOTIFICATION = 'message_notification'
    USER_TYPING = 'user_typing'
    ERROR = 'error'
    PONG = 'pong'

    @staticmethod
    def emit_to_room(
        room_id: str,
        event: str,
        data: Dict[str, Any],
        skip_sids: Optional[List[str]] = None
    ) -> bool:
        """Emit event to every session in a room, optionally skipping some sids."""
        logger.debug(f"EVENT_EMITTER: emit_to_room room={room_id}, event={event}, skip={skip_sids}")

        if not _socketio:
            logger.error(f"EVENT_EMITTER: Socket.IO NOT initialized, cannot emit {event} to room {room_id}")
            return False

        try:
            if skip_sids:
                _socketio.emit(event, data, to=room_id, skip_sid=list(skip_sids))
            else:
                _socketio.emit(event, data, to=room_id)
            return True
        except Exception as e:
            logger.error(f"EVENT_EMITTER: Error emitting {event} to room {room_id}: {e}")
            return False

    @staticmethod
    def emit_to_user(user_id: str, event: str, data: Dict[str, Any]) -> bool:
        """Emit event to all connected sessions of a user via their personal room."""
        return EventEmitter.emit_to_room(user_room(user_id), event, data)


def new_message_payload(message) -> Dict[str, Any]:
    return message.to_dict()


def message_read_payload(message_id: str, read_by: str, read_at: Optional[str]) -> Dict[str, Any]:
    return {'messageId': message_id, 'readBy': read_by, 'readAt': read_at}


def user_typing_payload(listing_id: str, user_id: str, username: Optional[str], is_typing: bool) -> Dict[str, Any]:
    return {
        'listingId': listing_id,
        'userId': user_id,
        'username': username,
        'isTyping': bool(is_typing)
    }


def error_payload(message: str) -> Dict[str, Any]:
    return {'message': message}
