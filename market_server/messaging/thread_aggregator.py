"""Thread aggregation: flat message list -> per-counterparty conversation threads.

``aggregate_threads`` recomputes everything from persisted data and is the
source of truth. ``ThreadIndex`` keeps the same summaries up to date as
realtime events arrive; re-aggregating after a refetch must give the same
result.
"""
import logging
from typing import Dict, Iterable, List, Optional

from market_server.messaging.models import (
    Message, Listing, ConversationThread, ThreadKey, LISTING_PLACEHOLDER_TITLE
)

logger = logging.getLogger(__name__)


def _listing_map(listings: Optional[Iterable[Listing]]) -> Dict[str, Listing]:
    return {listing.listing_id: listing for listing in (listings or []) if listing is not None}


def _apply_listing(thread: ConversationThread, listing: Optional[Listing]):
    if listing is None:
        thread.listing_title = LISTING_PLACEHOLDER_TITLE
        thread.listing_image = None
        return
    thread.listing_title = listing.title or LISTING_PLACEHOLDER_TITLE
    thread.listing_image = listing.first_image


def _is_unread_for(message: Message, viewer_id: str) -> bool:
    return message.receiver_id == viewer_id and not message.is_read


def _recency(message: Message):
    return (message.created_at, message.message_id or '')


def _sort_threads(threads: Iterable[ConversationThread]) -> List[ConversationThread]:
    # ties broken by key so the order is stable across recomputations
    return sorted(threads, key=lambda t: (t.last_message_time, t.key), reverse=True)


def aggregate_threads(
    messages: Iterable[Message],
    listings: Optional[Iterable[Listing]],
    viewer_id: str
) -> List[ConversationThread]:
    """Group the viewer's messages into threads sorted newest first.

    Threads whose listing is missing from ``listings`` are kept with a
    placeholder title.
    """
    groups: Dict[ThreadKey, List[Message]] = {}
    for message in messages:
        groups.setdefault(message.thread_key(viewer_id), []).append(message)

    listing_by_id = _listing_map(listings)
    threads = []
    for (listing_id, other_user_id), group in groups.items():
        group.sort(key=_recency, reverse=True)
        head = group[0]
        thread = ConversationThread(
            listing_id=listing_id,
            other_user_id=other_user_id,
            last_message=head.content,
            last_message_time=head.created_at,
            last_message_id=head.message_id,
            last_message_sender_id=head.sender_id,
            unread_count=sum(1 for m in group if _is_unread_for(m, viewer_id)),
            message_count=len(group)
        )
        _apply_listing(thread, listing_by_id.get(listing_id))
        threads.append(thread)

    return _sort_threads(threads)


class ThreadIndex:
    """Incrementally maintained thread summaries for one viewer.

    Keeps the unread message ids per thread so read receipts and duplicate
    pushes are applied exactly once.
    """

    def __init__(self, viewer_id: str, listings: Optional[Iterable[Listing]] = None):
        self.viewer_id = viewer_id
        self._listings = _listing_map(listings)
        self._threads: Dict[ThreadKey, ConversationThread] = {}
        self._seen: Dict[str, ThreadKey] = {}
        self._unread: Dict[ThreadKey, set] = {}

    @classmethod
    def from_messages(
        cls,
        viewer_id: str,
        messages: Iterable[Message],
        listings: Optional[Iterable[Listing]] = None
    ) -> 'ThreadIndex':
        index = cls(viewer_id, listings)
        for message in messages:
            index.apply_message(message)
        return index

    def update_listings(self, listings: Iterable[Listing]):
        self._listings.update(_listing_map(listings))
        for key, thread in self._threads.items():
            _apply_listing(thread, self._listings.get(key[0]))

    def apply_message(self, message: Message) -> bool:
        """Fold a message into its thread. Returns False for a duplicate."""
        if message.message_id in self._seen:
            return False
        key = message.thread_key(self.viewer_id)
        self._seen[message.message_id] = key

        thread = self._threads.get(key)
        if thread is None:
            thread = ConversationThread(
                listing_id=key[0],
                other_user_id=key[1],
                last_message=message.content,
                last_message_time=message.created_at,
                last_message_id=message.message_id,
                last_message_sender_id=message.sender_id
            )
            _apply_listing(thread, self._listings.get(key[0]))
            self._threads[key] = thread
            self._unread[key] = set()
        elif _recency(message) > (thread.last_message_time, thread.last_message_id or ''):
            thread.last_message = message.content
            thread.last_message_time = message.created_at
            thread.last_message_id = message.message_id
            thread.last_message_sender_id = message.sender_id

        thread.message_count += 1
        if _is_unread_for(message, self.viewer_id):
            self._unread[key].add(message.message_id)
            thread.unread_count = len(self._unread[key])
        return True

    def mark_read(self, message_id: str) -> bool:
        """Apply a read transition. Returns True if an unread count changed."""
        key = self._seen.get(message_id)
        if key is None or message_id not in self._unread.get(key, ()):
            return False
        self._unread[key].discard(message_id)
        self._threads[key].unread_count = len(self._unread[key])
        return True

    def get(self, listing_id: str, other_user_id: str) -> Optional[ConversationThread]:
        return self._threads.get((listing_id, other_user_id))

    def total_unread(self) -> int:
        return sum(len(ids) for ids in self._unread.values())

    def threads(self) -> List[ConversationThread]:
        return _sort_threads(self._threads.values())
