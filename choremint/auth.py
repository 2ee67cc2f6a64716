"""Authentication utilities for the ChoreMint points API.

User login lives in the external backend. Callers of this API (the approval
workflow, the parent settings UI, the change-feed consumer) authenticate with
a shared bearer token.
"""

import logging
import secrets
from functools import wraps
from flask import current_app, g, jsonify, request

logger = logging.getLogger(__name__)


def verify_api_token(token: str) -> bool:
    """Verify a bearer token against the configured API token."""
    expected = current_app.config.get('API_TOKEN')
    if not expected or not token:
        return False
    return secrets.compare_digest(token, expected)


def api_token_required(f):
    """Decorator to ensure the request carries the configured API token.

    When no API_TOKEN is configured the API is open (development/testing).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_app.config.get('API_TOKEN'):
            g.api_authenticated = False
            return f(*args, **kwargs)

        auth_header = request.headers.get('Authorization', '')
        if not auth_header.startswith('Bearer ') or not verify_api_token(auth_header[7:]):
            logger.warning(f"Rejected unauthenticated request to {request.path}")
            return jsonify({
                'error': 'Unauthorized',
                'message': 'Authentication required'
            }), 401

        g.api_authenticated = True
        return f(*args, **kwargs)
    return decorated_function
