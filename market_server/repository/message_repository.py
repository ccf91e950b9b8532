"""Message repository for listing-scoped chat.

Messages are stored in the ``messages`` collection with snake_case fields.
"""
import logging
from datetime import datetime
from typing import Optional, Dict, Any, List

from market_server.messaging.models import Message
from market_server.repository.base_repository import BaseRepository
from market_server.utils.generator import generate_message_id
from market_server.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


def _conversation_query(user_id: str, listing_id: str, other_user_id: str) -> Dict[str, Any]:
    return {
        'listing_id': listing_id,
        '$or': [
            {'sender_id': user_id, 'receiver_id': other_user_id},
            {'sender_id': other_user_id, 'receiver_id': user_id}
        ]
    }


class MessageRepository(BaseRepository):
    """Repository for chat messages."""

    collection_name = "messages"

    def create_message(self, sender_id: str, receiver_id: str, listing_id: str, content: str) -> Message:
        """Persist a new unread message and return it."""
        message = Message(
            message_id=generate_message_id(),
            listing_id=listing_id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content,
            is_read=False,
            created_at=utc_now()
        )
        self.create(message.to_db_doc())
        logger.debug(f"MESSAGE_REPO: created {message.message_id} listing={listing_id}")
        return message

    def get_message(self, message_id: str) -> Optional[Message]:
        doc = self.find_one({'message_id': message_id})
        return Message.from_doc(doc) if doc else None

    def mark_message_read(self, message_id: str) -> Optional[datetime]:
        """Flip ``is_read`` to true.

        Returns the stored ``read_at`` on the false -> true transition, None if
        the message was already read or does not exist.
        """
        read_at = utc_now()
        result = self.collection.update_one(
            {'message_id': message_id, 'is_read': False},
            {'$set': {'is_read': True, 'read_at': read_at}}
        )
        return read_at if result.modified_count > 0 else None

    def list_messages_for_user(self, user_id: str) -> List[Message]:
        """Every message the user sent or received, newest first."""
        cursor = self.collection.find(
            {'$or': [{'sender_id': user_id}, {'receiver_id': user_id}]}
        ).sort('created_at', -1)
        return [Message.from_doc(doc) for doc in cursor]

    def list_conversation_messages(
        self,
        user_id: str,
        listing_id: str,
        other_user_id: str,
        limit: int = 50,
        skip: int = 0
    ) -> List[Message]:
        """Messages between two users about one listing, oldest first."""
        cursor = self.collection.find(
            _conversation_query(user_id, listing_id, other_user_id)
        ).sort('created_at', 1).skip(skip).limit(limit)
        return [Message.from_doc(doc) for doc in cursor]

    def count_conversation_messages(self, user_id: str, listing_id: str, other_user_id: str) -> int:
        return self.collection.count_documents(_conversation_query(user_id, listing_id, other_user_id))
