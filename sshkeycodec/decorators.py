import hmac
from functools import wraps
from flask import request, jsonify
import config
from .audit_logger import log_unauthorized_request


def api_token_required(f):
    """
    Decorator to require the API bearer token on HTTP routes.

    This decorator:
    1. Refuses every request when no API_TOKEN is configured (unless DEBUG)
    2. Compares the Authorization: Bearer token in constant time
    3. Logs and rejects with 401 on mismatch

    Usage:
        @app.route('/api/something')
        @api_token_required
        def handler():
            ...
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = config.API_TOKEN
        if not expected:
            if config.DEBUG:
                return f(*args, **kwargs)
            return jsonify({'error': 'API token not configured'}), 503

        header = request.headers.get('Authorization', '')
        scheme, _, token = header.partition(' ')
        if scheme.lower() != 'bearer' or not hmac.compare_digest(token.strip().encode(), expected.encode()):
            log_unauthorized_request(request.path, request.remote_addr)
            return jsonify({'error': 'Unauthorized'}), 401
        return f(*args, **kwargs)

    return decorated_function
