"""Settings for the realtime messaging server.

Environment is picked from FLASK_ENV or APP_ENV (development, testing,
production) and layered over config.base.yaml.

    from config import config

    window = config.PRESENCE_ONLINE_THRESHOLD_SECONDS
"""
from .settings import config, Config

__all__ = ['config', 'Config']
