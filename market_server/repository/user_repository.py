"""User lookups for display names."""
import logging
from typing import Optional, Dict, Any

from market_server.repository.base_repository import BaseRepository

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository):

    collection_name = "users"

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self.find_one({'$or': [{'user_id': user_id}, {'_id': user_id}]})

    def get_display_name(self, user_id: str) -> str:
        """Best display name for a user, falling back to the id."""
        user = self.get_user(user_id)
        if not user:
            return user_id
        return user.get('username') or user.get('name') or user.get('email') or user_id
