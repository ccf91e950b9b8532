"""WebSocket module for real-time chat delivery.

This module provides:
- WebSocketHub: Socket.IO handlers for authenticate/join/leave/typing
- EventEmitter: event names and room-targeted emit helpers
"""

from market_server.websocket.event_emitter import EventEmitter, conversation_room, user_room
from market_server.websocket.hub import WebSocketHub, get_websocket_hub, init_websocket_hub

__all__ = [
    'EventEmitter', 'WebSocketHub', 'conversation_room', 'user_room',
    'get_websocket_hub', 'init_websocket_hub'
]
