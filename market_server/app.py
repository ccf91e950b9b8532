"""Application factory for the marketplace realtime API.

Wires configuration, persistence, the in-memory presence/typing stores,
the Socket.IO hub and the REST blueprints into one Flask app.
"""
import logging

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO

from config import config
from market_server.messaging.presence import PresenceStore
from market_server.messaging.service import MessagingService
from market_server.messaging.typing_indicator import TypingIndicatorStore
from market_server.notification.scheduler import PresenceSweeper
from market_server.repository.listing_repository import ListingRepository
from market_server.repository.message_repository import MessageRepository
from market_server.repository.mongo_helper import MongoRepositorySingleton, ensure_indexes
from market_server.repository.user_repository import UserRepository
from market_server.routes.chat import conversations_bp, messages_bp
from market_server.routes.realtime import realtime_bp
from market_server.security.authentication import AuthSecurity
from market_server.utils.helpers import respond_success
from market_server.websocket.hub import init_websocket_hub

logger = logging.getLogger(__name__)


def configure_auth_from_config():
    """Configure AuthSecurity from ``config`` (env ``JWT_SECRET`` etc.)."""
    secret = config.JWT_SECRET
    if not secret:
        raise RuntimeError('JWT_SECRET environment variable is required')
    AuthSecurity.configure(
        secret_key=secret,
        algorithm=config.JWT_ALGORITHM,
        access_token_expire_minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES,
    )


def create_app(db=None, start_sweeper: bool = False, clock=None) -> Flask:
    """Build the Flask app and its SocketIO server.

    ``db`` defaults to the configured MongoDB database. ``clock`` overrides
    the time source of the presence and typing stores.
    """
    app = Flask(__name__)
    app.config['DEBUG'] = config.DEBUG
    CORS(app, origins=config.CORS_ORIGINS_LIST)

    configure_auth_from_config()

    if db is None:
        db = MongoRepositorySingleton.get_db()
    ensure_indexes(db)

    store_kwargs = {'clock': clock} if clock is not None else {}
    presence = PresenceStore(config.PRESENCE_ONLINE_THRESHOLD_SECONDS, **store_kwargs)
    typing_store = TypingIndicatorStore(config.TYPING_TIMEOUT_SECONDS, **store_kwargs)

    socketio = SocketIO(
        app,
        async_mode=config.SOCKETIO_ASYNC_MODE,
        cors_allowed_origins='*' if config.CORS_ORIGINS == '*' else config.CORS_ORIGINS_LIST,
        path=config.SOCKETIO_PATH,
    )
    hub = init_websocket_hub(
        app,
        socketio,
        presence=presence,
        users=UserRepository(db),
        preview_length=config.NOTIFICATION_PREVIEW_LENGTH
    )

    app.extensions['presence_store'] = presence
    app.extensions['typing_store'] = typing_store
    app.extensions['messaging_service'] = MessagingService(
        messages=MessageRepository(db),
        listings=ListingRepository(db),
        hub=hub,
    )

    app.register_blueprint(realtime_bp)
    app.register_blueprint(conversations_bp)
    app.register_blueprint(messages_bp)

    @app.route('/health')
    def health():
        return respond_success({
            'status': 'ok',
            'version': config.APP_VERSION,
            'connectedUsers': hub.online_user_count()
        })

    if start_sweeper:
        sweeper = PresenceSweeper(presence, typing_store, interval_seconds=config.PRESENCE_CLEANUP_INTERVAL_SECONDS)
        sweeper.start()
        app.extensions['presence_sweeper'] = sweeper

    logger.debug(f"create_app: env={config.CURRENT_ENV}, async_mode={socketio.async_mode}")
    return app
