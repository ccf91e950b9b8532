from typing import Any, Dict, List, Optional

from market_server.repository.mongo_helper import MongoRepositorySingleton


class BaseRepository:
    """CRUD over one MongoDB collection; subclasses add the domain queries."""

    collection_name: Optional[str] = None

    def __init__(self, db=None, collection_name=None):
        self.db = db
        self.collection_name = collection_name or self.collection_name
        if not self.collection_name:
            raise ValueError(f"{type(self).__name__} needs a collection name")
        self.collection = MongoRepositorySingleton.get_collection(self.collection_name, db)

    def create(self, data: Dict[str, Any]):
        return self.collection.insert_one(data)

    def find(self, query: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        return list(self.collection.find(query or {}))

    def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self.collection.find_one(query)

    def update(self, query: Dict[str, Any], update_fields: Dict[str, Any]):
        """``$set`` the given fields on the first matching document."""
        return self.collection.update_one(query, {'$set': update_fields})

    def delete(self, query: Dict[str, Any]):
        return self.collection.delete_many(query)
