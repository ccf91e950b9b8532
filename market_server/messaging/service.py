"""Messaging service: persistence first, realtime push second.

Every state change is written to MongoDB before anything is emitted, so a
client that misses a push still converges on the next refetch.
"""
import logging
from typing import List, Tuple

from flask import current_app

from market_server.exception.ForbiddenError import ForbiddenError
from market_server.exception.NotFoundError import NotFoundError
from market_server.messaging.models import Message, ConversationThread
from market_server.messaging.thread_aggregator import aggregate_threads

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 5000


class MessagingService:

    def __init__(self, messages, listings, hub=None):
        self.messages = messages
        self.listings = listings
        self.hub = hub

    def send_message(self, sender_id: str, receiver_id: str, listing_id: str, content: str) -> Message:
        """Persist a message and push it to the conversation room.

        Raises ValueError for a self-message or bad content and
        NotFoundError when the listing does not exist.
        """
        if not listing_id:
            raise ValueError('listingId is required')
        if not receiver_id:
            raise ValueError('receiverId is required')
        if str(sender_id) == str(receiver_id):
            raise ValueError('Cannot send a message to yourself')
        if not isinstance(content, str) or not content.strip():
            raise ValueError('content must be a non-empty string')
        if len(content) > MAX_CONTENT_LENGTH:
            raise ValueError(f'content must be at most {MAX_CONTENT_LENGTH} characters')
        if self.listings.get_listing(listing_id) is None:
            raise NotFoundError('Listing not found')

        message = self.messages.create_message(sender_id, receiver_id, listing_id, content)
        logger.info(f"MESSAGING: sent {message.message_id} listing={listing_id} {sender_id}->{receiver_id}")
        self._push(lambda hub: hub.emit_new_message(message), 'new_message')
        return message

    def mark_read(self, message_id: str, reader_id: str) -> Tuple[Message, bool]:
        """Mark a message read on behalf of its receiver.

        Returns the message and whether this call performed the transition.
        ``message_read`` is pushed to the sender only on the transition.
        """
        message = self.messages.get_message(message_id)
        if message is None:
            raise NotFoundError('Message not found')
        if message.receiver_id != str(reader_id):
            raise ForbiddenError('Only the receiver can mark a message as read')

        read_at = self.messages.mark_message_read(message_id)
        changed = read_at is not None
        message.is_read = True
        if changed:
            self._push(
                lambda hub: hub.emit_message_read(message.message_id, reader_id, read_at, message.sender_id),
                'message_read'
            )
        return message, changed

    def list_threads(self, user_id: str) -> List[ConversationThread]:
        messages = self.messages.list_messages_for_user(user_id)
        listings = self.listings.get_listings_by_ids({m.listing_id for m in messages})
        return aggregate_threads(messages, listings, user_id)

    def conversation_messages(
        self,
        user_id: str,
        listing_id: str,
        other_user_id: str,
        page: int = 1,
        limit: int = 50
    ) -> Tuple[List[Message], int]:
        skip = (page - 1) * limit
        items = self.messages.list_conversation_messages(user_id, listing_id, other_user_id, limit=limit, skip=skip)
        total = self.messages.count_conversation_messages(user_id, listing_id, other_user_id)
        return items, total

    def _push(self, action, event: str):
        if self.hub is None:
            return
        try:
            action(self.hub)
        except Exception as e:
            logger.error(f"MESSAGING: realtime push of {event} failed: {e}")


def get_messaging_service() -> MessagingService:
    return current_app.extensions['messaging_service']
