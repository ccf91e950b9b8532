from bson import ObjectId


def generate_message_id() -> str:
    return str(ObjectId())
