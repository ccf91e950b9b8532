"""Client-side counterparts of the realtime channel.

- RealtimeClient: one Socket.IO connection per signed-in user
- HeartbeatSender / PresenceClient: HTTP presence heartbeat and polling
"""
from market_server.client.delivery_adapter import RealtimeClient, ConnectionState
from market_server.client.presence import HeartbeatSender, PresenceClient
from market_server.client.reconnect import ReconnectPolicy
from market_server.client.registry import CallbackRegistry

__all__ = [
    'RealtimeClient', 'ConnectionState', 'HeartbeatSender', 'PresenceClient',
    'ReconnectPolicy', 'CallbackRegistry'
]
