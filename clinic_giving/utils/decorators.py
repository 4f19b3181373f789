"""
Custom Decorators
Rate limiting, callback authentication and admin guards
"""

import hmac
import time
from functools import wraps

from flask import request, jsonify, current_app
from flask_jwt_extended import verify_jwt_in_request, get_jwt

from clinic_giving.extensions import redis_client
from clinic_giving.utils.logger import get_logger

logger = get_logger(__name__)

CALLBACK_SECRET_HEADER = 'X-Mpesa-Callback-Secret'


def client_ip() -> str:
    if request.headers.get('X-Forwarded-For'):
        return request.headers.get('X-Forwarded-For').split(',')[0].strip()
    return request.remote_addr or 'unknown'


def rate_limit(max_requests=None, window_seconds=None, key_prefix='rate_limit'):
    """
    Rate limiting decorator, keyed on client IP

    Args:
        max_requests: Maximum number of requests allowed (default DONATION_RATE_LIMIT)
        window_seconds: Time window in seconds (default DONATION_RATE_WINDOW)
        key_prefix: Redis key prefix

    Usage:
        @rate_limit(key_prefix='donation_initiate')
        def initiate_donation():
            ...
    """

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            limit = max_requests or current_app.config.get('DONATION_RATE_LIMIT', 10)
            window = window_seconds or current_app.config.get('DONATION_RATE_WINDOW', 60)

            current_window = int(time.time() / window)
            key = f'{key_prefix}:{client_ip()}:{current_window}'

            try:
                count = redis_client.get(key)
                count = 0 if count is None else int(count)

                if count >= limit:
                    return jsonify({
                        'error': 'rate-limited',
                        'message': f'Maximum {limit} requests per {window} seconds',
                        'retry_after': window
                    }), 429

                redis_client.set(key, count + 1, ex=window)

            except Exception as e:
                # If Redis fails, allow the request (fail open)
                logger.warning(f'Rate limit check failed: {str(e)}')

            return f(*args, **kwargs)

        return decorated_function

    return decorator


def require_callback_secret(f):
    """
    Reject partner callbacks that do not carry the configured shared secret.

    When MPESA_CALLBACK_SECRET is empty every callback is accepted.
    """

    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = (current_app.config.get('MPESA_CALLBACK_SECRET') or '').strip()
        if expected:
            provided = request.headers.get(CALLBACK_SECRET_HEADER, '')
            if not provided or not hmac.compare_digest(provided.encode('utf-8'), expected.encode('utf-8')):
                logger.warning('M-Pesa callback rejected: missing or invalid shared secret')
                return jsonify({'error': 'forbidden'}), 403

        return f(*args, **kwargs)

    return decorated_function


def admin_required(f):
    """Operator endpoints: a valid JWT carrying is_admin=True"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        verify_jwt_in_request()
        claims = get_jwt()

        if not claims.get('is_admin', False):
            return jsonify({'error': 'forbidden', 'message': 'Operator access required'}), 403

        return f(*args, **kwargs)

    return decorated_function
