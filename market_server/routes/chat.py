"""Conversation and message REST API routes.

Threads are derived on every request from the stored messages; the
realtime channel only accelerates what these endpoints already return.

Endpoints:
- GET  /api/conversations                              - threads for the caller
- GET  /api/conversations/{listing_id}/{other_user_id} - message history (page/limit)
- POST /api/messages                                   - send a message
- POST /api/messages/{message_id}/read                 - mark a message read
"""
import logging

from flask import Blueprint, request

from market_server.messaging.service import get_messaging_service
from market_server.utils.decorators import handle_errors, require_auth, validate_json
from market_server.utils.helpers import respond_success, respond_error, parse_page

logger = logging.getLogger(__name__)

conversations_bp = Blueprint('conversations', __name__, url_prefix='/api/conversations')
messages_bp = Blueprint('messages', __name__, url_prefix='/api/messages')


@conversations_bp.route('', methods=['GET'])
@handle_errors
@require_auth
def list_conversations(current_user_id):
    """List the caller's threads, newest activity first.

    Response:
        {
            "conversations": [...],
            "count": 3,
            "unreadTotal": 5
        }
    """
    threads = get_messaging_service().list_threads(current_user_id)
    logger.debug(f"CHAT_ROUTE: GET /api/conversations user={current_user_id} threads={len(threads)}")
    return respond_success({
        'conversations': [t.to_dict() for t in threads],
        'count': len(threads),
        'unreadTotal': sum(t.unread_count for t in threads)
    })


@conversations_bp.route('/<listing_id>/<other_user_id>', methods=['GET'])
@handle_errors
@require_auth
def get_conversation_messages(listing_id, other_user_id, current_user_id):
    """Messages between the caller and ``other_user_id`` about one listing.

    Query Params:
        page: int - 1-based page (default: 1)
        limit: int - page size (default: 50, max: 200)
    """
    page, limit, errors = parse_page(request.args)
    if errors:
        return respond_error(errors, status=400)

    items, total = get_messaging_service().conversation_messages(
        current_user_id, listing_id, other_user_id, page=page, limit=limit
    )
    return respond_success({
        'messages': [m.to_dict() for m in items],
        'count': len(items),
        'total': total,
        'hasMore': page * limit < total,
        'meta': {'page': page, 'limit': limit}
    })


@messages_bp.route('', methods=['POST'])
@handle_errors
@require_auth
@validate_json('listingId', 'receiverId', 'content')
def send_message(current_user_id):
    data = request.get_json()
    message = get_messaging_service().send_message(
        sender_id=current_user_id,
        receiver_id=str(data['receiverId']),
        listing_id=str(data['listingId']),
        content=data['content']
    )
    return respond_success({'message': message.to_dict()}, status=201)


@messages_bp.route('/<message_id>/read', methods=['POST'])
@handle_errors
@require_auth
def mark_message_read(message_id, current_user_id):
    message, changed = get_messaging_service().mark_read(message_id, current_user_id)
    return respond_success({'message': message.to_dict(), 'updated': changed})
