"""Route decorators shared by the chat and realtime blueprints."""
import functools
import logging
from typing import Callable

from flask import request

from market_server.exception.ForbiddenError import ForbiddenError
from market_server.exception.NotFoundError import NotFoundError
from market_server.exception.UnauthorizedError import UnauthorizedError
from market_server.utils.helpers import respond_error
from market_server.security.authentication import get_auth_payload

logger = logging.getLogger(__name__)


def handle_errors(func: Callable) -> Callable:
    """Map domain exceptions to JSON error responses.

    UnauthorizedError -> 401, ForbiddenError -> 403, NotFoundError -> 404,
    ValueError -> 400, anything else -> 500 (logged with traceback).
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except UnauthorizedError as e:
            logger.warning(f"AUTH: {request.method} {request.path} rejected: {e}")
            return respond_error(str(e), status=401)
        except ForbiddenError as e:
            logger.warning(f"AUTH: {request.method} {request.path} forbidden: {e}")
            return respond_error(str(e), status=403)
        except NotFoundError as e:
            return respond_error(str(e), status=404)
        except ValueError as e:
            logger.info(f"VALIDATION: {request.path}: {e}")
            return respond_error(str(e), status=400)
        except Exception:
            logger.exception(f"Unhandled error in {func.__name__}")
            return respond_error('Server error', status=500)
    return wrapper


def require_auth(func: Callable) -> Callable:
    """Resolve the caller from the Bearer token and pass it as ``current_user_id``."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        payload = get_auth_payload(request)
        kwargs['current_user_id'] = str(payload['user_id'])
        return func(*args, **kwargs)
    return wrapper


def validate_json(*required_fields: str) -> Callable:
    """Reject requests whose JSON body is missing any of ``required_fields``."""
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            data = request.get_json(silent=True)
            if not isinstance(data, dict):
                return respond_error('Request body must be JSON', status=400)
            missing = [f for f in required_fields if data.get(f) is None]
            if missing:
                return respond_error(f'Missing required fields: {", ".join(missing)}', status=400)
            return func(*args, **kwargs)
        return wrapper
    return decorator
