"""Read-only access to listing metadata shown in chat threads."""
import logging
from typing import Iterable, List, Optional

from market_server.messaging.models import Listing
from market_server.repository.base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ListingRepository(BaseRepository):

    collection_name = "listings"

    def get_listings_by_ids(self, listing_ids: Iterable[str]) -> List[Listing]:
        """Listings for the given ids. Unknown ids are simply absent."""
        ids = list({lid for lid in listing_ids if lid})
        if not ids:
            return []
        docs = self.collection.find(
            {'$or': [{'listing_id': {'$in': ids}}, {'_id': {'$in': ids}}]},
            {'listing_id': 1, 'title': 1, 'images': 1}
        )
        return [Listing.from_doc(doc) for doc in docs]

    def get_listing(self, listing_id: str) -> Optional[Listing]:
        doc = self.find_one({'$or': [{'listing_id': listing_id}, {'_id': listing_id}]})
        return Listing.from_doc(doc) if doc else None
