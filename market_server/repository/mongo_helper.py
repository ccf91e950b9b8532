from pymongo import MongoClient
import logging

from config import config

logger = logging.getLogger(__name__)


class MongoRepositorySingleton:
    _db_instance = None

    @classmethod
    def get_db(cls):
        """Singleton utility to get the MongoDB database object.

        Connection settings come from ``config.MONGO_URI`` and
        ``config.MONGO_DB_NAME`` (env ``MONGO_URI`` / ``MONGO_DB``).
        Datetimes are read back timezone-aware.
        """
        if cls._db_instance is not None:
            return cls._db_instance
        mongo_uri = config.MONGO_URI
        db_name = config.MONGO_DB_NAME
        logger.info(f"[MongoRepositorySingleton] Connecting to MongoDB DB: {db_name}")
        client = MongoClient(mongo_uri, tz_aware=True)
        cls._db_instance = client[db_name]
        return cls._db_instance

    @classmethod
    def get_collection(cls, collection_name, db=None):
        """
        Get a collection from the database, creating it if it does not exist.
        Logs creation and errors. Returns the collection object.
        """
        if db is None:
            db = cls.get_db()
        try:
            if collection_name not in db.list_collection_names():
                db.create_collection(collection_name)
                logger.info(f"Created '{collection_name}' collection in DB.")
        except Exception as e:
            logger.warning(f"Error ensuring '{collection_name}' collection exists: {e}")
        return db[collection_name]


def ensure_indexes(db):
    """Create the indexes used by the message query paths (idempotent)."""
    try:
        messages = db['messages']
        messages.create_index([('sender_id', 1), ('created_at', -1)], name='messages_sender_created_at')
        messages.create_index([('receiver_id', 1), ('created_at', -1)], name='messages_receiver_created_at')
        messages.create_index(
            [('listing_id', 1), ('sender_id', 1), ('receiver_id', 1), ('created_at', 1)],
            name='messages_conversation'
        )
        logger.info('Ensured message indexes')
    except Exception as e:
        logger.exception(f'Error creating indexes: {e}')
