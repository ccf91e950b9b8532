"""Presence and typing REST API routes.

Endpoints:
- POST   /api/realtime/heartbeat               - record a heartbeat for the caller
- GET    /api/realtime/status/{user_id}        - online flag for one user
- POST   /api/realtime/status/batch            - online flags for many users
- POST   /api/realtime/logout                  - forget the caller's presence
- POST   /api/realtime/typing/{conversation_id} - caller started typing
- DELETE /api/realtime/typing/{conversation_id} - caller stopped typing
- GET    /api/realtime/typing/{conversation_id} - users currently typing
"""
import logging

from flask import Blueprint, request, current_app

from market_server.utils.decorators import handle_errors, require_auth
from market_server.utils.helpers import respond_success, respond_error
from market_server.utils.time_utils import to_iso

logger = logging.getLogger(__name__)

realtime_bp = Blueprint('realtime', __name__, url_prefix='/api/realtime')


def get_presence_store():
    return current_app.extensions['presence_store']


def get_typing_store():
    return current_app.extensions['typing_store']


@realtime_bp.route('/heartbeat', methods=['POST'])
@handle_errors
@require_auth
def heartbeat(current_user_id):
    record = get_presence_store().heartbeat(current_user_id)
    return respond_success({'lastSeen': to_iso(record.last_heartbeat_at)})


@realtime_bp.route('/status/<user_id>', methods=['GET'])
@handle_errors
@require_auth
def status(user_id, current_user_id):
    return respond_success({'userId': user_id, 'online': get_presence_store().is_online(user_id)})


@realtime_bp.route('/status/batch', methods=['POST'])
@handle_errors
@require_auth
def status_batch(current_user_id):
    """Body: {"userIds": [...]} -> {"statuses": {id: bool}}"""
    data = request.get_json(silent=True) or {}
    user_ids = data.get('userIds') if isinstance(data, dict) else None
    if not isinstance(user_ids, list):
        return respond_error('userIds must be an array', status=400)
    statuses = get_presence_store().is_online_batch(str(uid) for uid in user_ids)
    return respond_success({'statuses': statuses})


@realtime_bp.route('/logout', methods=['POST'])
@handle_errors
@require_auth
def logout(current_user_id):
    get_presence_store().remove(current_user_id)
    return respond_success()


@realtime_bp.route('/typing/<conversation_id>', methods=['POST'])
@handle_errors
@require_auth
def start_typing(conversation_id, current_user_id):
    get_typing_store().set_typing(conversation_id, current_user_id)
    return respond_success()


@realtime_bp.route('/typing/<conversation_id>', methods=['DELETE'])
@handle_errors
@require_auth
def stop_typing(conversation_id, current_user_id):
    get_typing_store().clear_typing(conversation_id, current_user_id)
    return respond_success()


@realtime_bp.route('/typing/<conversation_id>', methods=['GET'])
@handle_errors
@require_auth
def typing_users(conversation_id, current_user_id):
    return respond_success({
        'conversationId': conversation_id,
        'typingUsers': get_typing_store().typing_users(conversation_id)
    })
