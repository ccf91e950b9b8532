"""Messaging data models for listing-scoped buyer/seller chat.

Collections:
- messages: Individual messages (scoped per listing)
- listings: Listing metadata joined into threads (read only here)

Derived (not persisted):
- ConversationThread: per (listing, counterparty) summary for one viewer
- PresenceRecord: last heartbeat per user, kept in memory
"""
from typing import Optional, Dict, Any, List, Set, Tuple
from datetime import datetime

from market_server.utils.time_utils import utc_now, ensure_utc, to_iso, parse_iso

LISTING_PLACEHOLDER_TITLE = 'Listing'

ThreadKey = Tuple[str, str]


class Message:
    """Message document structure.

    Immutable once created apart from the one-way ``is_read`` transition.
    """

    def __init__(
        self,
        message_id: str,
        listing_id: str,
        sender_id: str,
        receiver_id: str,
        content: str,
        is_read: bool = False,
        created_at: Optional[datetime] = None
    ):
        self.message_id = message_id
        self.listing_id = listing_id
        self.sender_id = sender_id
        self.receiver_id = receiver_id
        self.content = content
        self.is_read = bool(is_read)
        self.created_at = ensure_utc(created_at) or utc_now()

    def counterparty(self, viewer_id: str) -> str:
        """The participant that is not the viewer.

        A self-message (sender == receiver) falls back to the sender.
        """
        if self.sender_id == viewer_id and self.receiver_id != viewer_id:
            return self.receiver_id
        return self.sender_id

    def thread_key(self, viewer_id: str) -> ThreadKey:
        return (self.listing_id, self.counterparty(viewer_id))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.message_id,
            'listingId': self.listing_id,
            'senderId': self.sender_id,
            'receiverId': self.receiver_id,
            'content': self.content,
            'isRead': self.is_read,
            'createdAt': to_iso(self.created_at)
        }

    def to_db_doc(self) -> Dict[str, Any]:
        return {
            '_id': self.message_id,
            'message_id': self.message_id,
            'listing_id': self.listing_id,
            'sender_id': self.sender_id,
            'receiver_id': self.receiver_id,
            'content': self.content,
            'is_read': self.is_read,
            'created_at': self.created_at
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'Message':
        return cls(
            message_id=doc.get('message_id') or str(doc.get('_id')),
            listing_id=doc.get('listing_id'),
            sender_id=doc.get('sender_id'),
            receiver_id=doc.get('receiver_id'),
            content=doc.get('content') or '',
            is_read=doc.get('is_read', False),
            created_at=doc.get('created_at')
        )

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> 'Message':
        """Build from a ``new_message`` payload (camelCase)."""
        return cls(
            message_id=data.get('id'),
            listing_id=data.get('listingId'),
            sender_id=data.get('senderId'),
            receiver_id=data.get('receiverId'),
            content=data.get('content') or '',
            is_read=data.get('isRead', False),
            created_at=parse_iso(data.get('createdAt'))
        )

    def __repr__(self):
        return f"Message({self.message_id!r}, listing={self.listing_id!r}, {self.sender_id!r}->{self.receiver_id!r})"


class Listing:
    """The slice of a listing the chat UI needs."""

    def __init__(self, listing_id: str, title: Optional[str] = None, images: Optional[List[str]] = None):
        self.listing_id = listing_id
        self.title = title
        self.images = images or []

    @property
    def first_image(self) -> Optional[str]:
        return self.images[0] if self.images else None

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'Listing':
        images = doc.get('images')
        if not isinstance(images, list):
            images = []
        return cls(
            listing_id=doc.get('listing_id') or str(doc.get('_id')),
            title=doc.get('title'),
            images=images
        )


class ConversationThread:
    """Derived per-viewer summary of one (listing, counterparty) conversation."""

    def __init__(
        self,
        listing_id: str,
        other_user_id: str,
        last_message: str,
        last_message_time: datetime,
        last_message_id: Optional[str] = None,
        last_message_sender_id: Optional[str] = None,
        unread_count: int = 0,
        message_count: int = 0,
        listing_title: str = LISTING_PLACEHOLDER_TITLE,
        listing_image: Optional[str] = None
    ):
        self.listing_id = listing_id
        self.other_user_id = other_user_id
        self.last_message = last_message
        self.last_message_time = last_message_time
        self.last_message_id = last_message_id
        self.last_message_sender_id = last_message_sender_id
        self.unread_count = unread_count
        self.message_count = message_count
        self.listing_title = listing_title
        self.listing_image = listing_image

    @property
    def key(self) -> ThreadKey:
        return (self.listing_id, self.other_user_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'listingId': self.listing_id,
            'otherUserId': self.other_user_id,
            'listingTitle': self.listing_title,
            'listingImage': self.listing_image,
            'lastMessage': self.last_message,
            'lastMessageId': self.last_message_id,
            'lastMessageSenderId': self.last_message_sender_id,
            'lastMessageTime': to_iso(self.last_message_time),
            'unreadCount': self.unread_count,
            'messageCount': self.message_count
        }

    def __eq__(self, other):
        if not isinstance(other, ConversationThread):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"ConversationThread({self.listing_id!r}, {self.other_user_id!r}, unread={self.unread_count})"


class PresenceRecord:
    """User liveness: last heartbeat seen."""

    def __init__(self, user_id: str, last_heartbeat_at: Optional[datetime] = None):
        self.user_id = user_id
        self.last_heartbeat_at = last_heartbeat_at or utc_now()

    def age_seconds(self, now: datetime) -> float:
        return (now - self.last_heartbeat_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'userId': self.user_id,
            'lastSeen': to_iso(self.last_heartbeat_at)
        }


class RealtimeSession:
    """Runtime-only state for one Socket.IO connection."""

    def __init__(self, sid: str):
        self.sid = sid
        self.user_id: Optional[str] = None
        self.username: Optional[str] = None
        self.authenticated_at: Optional[datetime] = None
        self.rooms: Set[str] = set()
        self.connected_at = utc_now()

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def bind(self, user_id: str, username: Optional[str]):
        self.user_id = user_id
        self.username = username
        self.authenticated_at = utc_now()
