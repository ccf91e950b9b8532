"""Application configuration settings.

This module centralizes all configuration values loaded from:
1. config.base.yaml (shared defaults)
2. config.{env}.yaml (environment-specific: dev, staging, prod)
3. config.local.yaml (local overrides, git-ignored)
4. Environment variables (highest priority)

Default environment is 'development' (DEV).

Usage:
    from config.settings import config

    secret = config.JWT_SECRET
    window = config.PRESENCE_ONLINE_THRESHOLD_SECONDS
"""
import os
from pathlib import Path
from typing import Optional, Any, Dict
import yaml


# Environment name mappings
ENV_ALIASES = {
    'dev': 'development',
    'development': 'development',
    'staging': 'staging',
    'stage': 'staging',
    'prod': 'production',
    'production': 'production',
    'test': 'testing',
    'testing': 'testing',
}

DEFAULT_ENV = 'development'


def _env_bool(name: str) -> Optional[bool]:
    val = os.getenv(name, '').lower()
    if not val:
        return None
    return val in ('1', 'true', 'yes')


def _env_int(name: str) -> Optional[int]:
    val = os.getenv(name)
    if val:
        return int(val)
    return None


def _env_float(name: str) -> Optional[float]:
    val = os.getenv(name)
    if val:
        return float(val)
    return None


class Config:
    """Centralized application configuration.

    Priority (highest to lowest):
    1. Environment variables
    2. config.local.yaml
    3. config.{env}.yaml
    4. config.base.yaml

    Environment is determined by FLASK_ENV, then APP_ENV, then 'development'.
    """

    _config_data: Dict[str, Any] = {}
    _loaded: bool = False
    _current_env: str = DEFAULT_ENV

    def __init__(self):
        if not Config._loaded:
            self._load_config()

    @classmethod
    def _get_environment(cls) -> str:
        env = os.getenv('FLASK_ENV') or os.getenv('APP_ENV') or DEFAULT_ENV
        env = env.lower().strip()
        return ENV_ALIASES.get(env, DEFAULT_ENV)

    def _load_config(self):
        """Load configuration from YAML files based on environment."""
        config_dir = Path(__file__).parent
        Config._current_env = self._get_environment()
        Config._config_data = {}

        base_config_path = config_dir / 'config.base.yaml'
        if base_config_path.exists():
            with open(base_config_path, 'r') as f:
                Config._config_data = yaml.safe_load(f) or {}

        env_config_map = {
            'development': 'config.dev.yaml',
            'staging': 'config.staging.yaml',
            'production': 'config.prod.yaml',
            'testing': 'config.test.yaml',
        }
        env_config_path = config_dir / env_config_map.get(Config._current_env, 'config.dev.yaml')
        if env_config_path.exists():
            with open(env_config_path, 'r') as f:
                env_data = yaml.safe_load(f) or {}
                Config._config_data = self._deep_merge(Config._config_data, env_data)

        local_config_path = config_dir / 'config.local.yaml'
        if local_config_path.exists():
            with open(local_config_path, 'r') as f:
                local_data = yaml.safe_load(f) or {}
                Config._config_data = self._deep_merge(Config._config_data, local_data)

        Config._loaded = True

    def _deep_merge(self, base: dict, override: dict) -> dict:
        """Deep merge two dictionaries."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _get_yaml_value(self, *keys, default=None) -> Any:
        """Get a nested value from YAML config."""
        value = Config._config_data
        for key in keys:
            if isinstance(value, dict):
                value = value.get(key)
            else:
                return default
            if value is None:
                return default
        return value

    @classmethod
    def reload(cls):
        """Reload configuration (useful for testing)."""
        cls._loaded = False
        cls._config_data = {}
        return cls()

    # ==========================================================================
    # Environment Info
    # ==========================================================================

    @property
    def CURRENT_ENV(self) -> str:
        return Config._current_env

    @property
    def IS_DEV(self) -> bool:
        return Config._current_env == 'development'

    @property
    def IS_TESTING(self) -> bool:
        return Config._current_env == 'testing'

    @property
    def IS_PROD(self) -> bool:
        return Config._current_env == 'production'

    # ==========================================================================
    # Application Settings
    # ==========================================================================

    @property
    def DEBUG(self) -> bool:
        """Flask debug mode."""
        env_val = _env_bool('FLASK_DEBUG')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('app', 'debug', default=False)

    @property
    def PORT(self) -> int:
        return _env_int('PORT') or self._get_yaml_value('app', 'port', default=5000)

    @property
    def APP_NAME(self) -> str:
        return os.getenv('APP_NAME') or self._get_yaml_value('app', 'name', default='Marketplace Realtime API')

    @property
    def APP_VERSION(self) -> str:
        return self._get_yaml_value('app', 'version', default='1.0.0')

    # ==========================================================================
    # Security Settings
    # ==========================================================================

    @property
    def JWT_SECRET(self) -> Optional[str]:
        """JWT secret shared with the identity provider. Required in production."""
        return os.getenv('JWT_SECRET') or self._get_yaml_value('security', 'jwt', 'secret')

    @property
    def JWT_ALGORITHM(self) -> str:
        return os.getenv('JWT_ALGORITHM') or self._get_yaml_value('security', 'jwt', 'algorithm', default='HS256')

    @property
    def ACCESS_TOKEN_EXPIRE_MINUTES(self) -> int:
        env_val = _env_int('ACCESS_TOKEN_MINUTES')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('security', 'jwt', 'access_token_expire_minutes', default=10080)

    # ==========================================================================
    # Database Settings
    # ==========================================================================

    @property
    def MONGO_URI(self) -> str:
        return os.getenv('MONGO_URI') or self._get_yaml_value('database', 'mongo_uri', default='mongodb://localhost:27017')

    @property
    def MONGO_DB_NAME(self) -> str:
        return os.getenv('MONGO_DB') or self._get_yaml_value('database', 'name', default='marketplace')

    # ==========================================================================
    # CORS Settings
    # ==========================================================================

    @property
    def CORS_ORIGINS(self) -> str:
        return os.getenv('CORS_ORIGINS') or self._get_yaml_value('cors', 'origins', default='*')

    @property
    def CORS_ORIGINS_LIST(self) -> list:
        origins = self.CORS_ORIGINS
        if origins == '*':
            return ['*']
        return [o.strip() for o in origins.split(',') if o.strip()]

    # ==========================================================================
    # Logging Settings
    # ==========================================================================

    @property
    def LOG_LEVEL(self) -> str:
        env_val = os.getenv('LOG_LEVEL')
        if env_val:
            return env_val.upper()
        if self.LOG_DEBUG:
            return 'DEBUG'
        return self._get_yaml_value('logging', 'level', default='INFO')

    @property
    def LOG_DEBUG(self) -> bool:
        env_val = _env_bool('LOG_DEBUG')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('logging', 'debug', default=False)

    @property
    def LOG_PATTERN(self) -> str:
        return os.getenv('LOG_PATTERN') or self._get_yaml_value('logging', 'pattern', default='%(message)s')

    @property
    def LOG_INCLUDE_DATETIME(self) -> bool:
        env_val = _env_bool('LOG_INCLUDE_DATETIME')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('logging', 'include_datetime', default=False)

    @property
    def LOG_INCLUDE_NAME(self) -> bool:
        env_val = _env_bool('LOG_INCLUDE_NAME')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('logging', 'include_name', default=False)

    @property
    def LOG_INCLUDE_LEVEL(self) -> bool:
        env_val = _env_bool('LOG_INCLUDE_LEVEL')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('logging', 'include_level', default=True)

    @property
    def LOG_DATE_FORMAT(self) -> str:
        return self._get_yaml_value('logging', 'date_format', default='%H:%M:%S')

    @property
    def LOG_FORMAT(self) -> str:
        """Build log format string based on config options."""
        pattern = self.LOG_PATTERN
        if pattern and pattern != '%(message)s':
            return pattern

        parts = []
        if self.LOG_INCLUDE_DATETIME:
            parts.append('%(asctime)s')
        if self.LOG_INCLUDE_NAME:
            parts.append('%(name)s')
        if self.LOG_INCLUDE_LEVEL:
            parts.append('%(levelname)s')
        parts.append('%(message)s')

        return ' - '.join(parts) if len(parts) > 1 else parts[0]

    # ==========================================================================
    # Presence / Typing Settings
    # ==========================================================================

    @property
    def PRESENCE_ONLINE_THRESHOLD_SECONDS(self) -> float:
        """Freshness window: heartbeat interval plus one missed beat."""
        env_val = _env_float('PRESENCE_ONLINE_THRESHOLD_SECONDS')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('presence', 'online_threshold_seconds', default=60)

    @property
    def PRESENCE_HEARTBEAT_INTERVAL_SECONDS(self) -> float:
        env_val = _env_float('PRESENCE_HEARTBEAT_INTERVAL_SECONDS')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('presence', 'heartbeat_interval_seconds', default=30)

    @property
    def PRESENCE_CLEANUP_INTERVAL_SECONDS(self) -> float:
        env_val = _env_float('PRESENCE_CLEANUP_INTERVAL_SECONDS')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('presence', 'cleanup_interval_seconds', default=30)

    @property
    def TYPING_TIMEOUT_SECONDS(self) -> float:
        env_val = _env_float('TYPING_TIMEOUT_SECONDS')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('typing', 'timeout_seconds', default=3)

    # ==========================================================================
    # Realtime Settings
    # ==========================================================================

    @property
    def SOCKETIO_PATH(self) -> str:
        return os.getenv('SOCKETIO_PATH') or self._get_yaml_value('realtime', 'path', default='socket.io')

    @property
    def SOCKETIO_ASYNC_MODE(self) -> str:
        return os.getenv('SOCKETIO_ASYNC_MODE') or self._get_yaml_value('realtime', 'async_mode', default='threading')

    @property
    def NOTIFICATION_PREVIEW_LENGTH(self) -> int:
        env_val = _env_int('NOTIFICATION_PREVIEW_LENGTH')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('notification', 'preview_length', default=100)

    @property
    def PRESENCE_SWEEPER_ENABLED(self) -> bool:
        env_val = _env_bool('PRESENCE_SWEEPER_ENABLED')
        if env_val is not None:
            return env_val
        return self._get_yaml_value('presence', 'sweeper_enabled', default=True)

    # ==========================================================================
    # Validation Methods
    # ==========================================================================

    def validate_required(self) -> None:
        """Validate that required configuration values are set.

        Raises RuntimeError if required values are missing in production.
        """
        errors = []

        if self.IS_PROD:
            if not self.JWT_SECRET:
                errors.append('JWT_SECRET environment variable is required in production')
            if not self.MONGO_URI or self.MONGO_URI == 'mongodb://localhost:27017':
                errors.append('MONGO_URI should be set to production database in production')
            if self.CORS_ORIGINS == '*':
                errors.append('CORS_ORIGINS should not be "*" in production')

        if errors:
            raise RuntimeError('Configuration errors:\n' + '\n'.join(f'  - {e}' for e in errors))

    def to_dict(self) -> Dict[str, Any]:
        """Export current configuration as dictionary (for debugging)."""
        return {
            'environment': {
                'current': self.CURRENT_ENV,
                'is_dev': self.IS_DEV,
                'is_prod': self.IS_PROD,
            },
            'app': {
                'debug': self.DEBUG,
                'port': self.PORT,
                'name': self.APP_NAME,
                'version': self.APP_VERSION,
            },
            'security': {
                'jwt_algorithm': self.JWT_ALGORITHM,
                'access_token_expire_minutes': self.ACCESS_TOKEN_EXPIRE_MINUTES,
                'jwt_secret_set': bool(self.JWT_SECRET),
            },
            'database': {
                'mongo_uri': '***' if self.MONGO_URI else None,
                'name': self.MONGO_DB_NAME,
            },
            'cors': {
                'origins': self.CORS_ORIGINS,
            },
            'logging': {
                'level': self.LOG_LEVEL,
            },
            'presence': {
                'online_threshold_seconds': self.PRESENCE_ONLINE_THRESHOLD_SECONDS,
                'heartbeat_interval_seconds': self.PRESENCE_HEARTBEAT_INTERVAL_SECONDS,
                'cleanup_interval_seconds': self.PRESENCE_CLEANUP_INTERVAL_SECONDS,
                'sweeper_enabled': self.PRESENCE_SWEEPER_ENABLED,
            },
            'typing': {
                'timeout_seconds': self.TYPING_TIMEOUT_SECONDS,
            },
            'realtime': {
                'path': self.SOCKETIO_PATH,
                'async_mode': self.SOCKETIO_ASYNC_MODE,
            },
        }


# Singleton config instance
config = Config()
