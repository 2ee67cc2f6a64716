"""Shared helpers for ChoreMint blueprints."""

from flask import jsonify

from choremint.services.errors import LedgerServiceError


def error_response(e: LedgerServiceError):
    """Translate a service error into the standard JSON error response."""
    body = {
        'error': e.__class__.__name__.replace('Error', ' Error').strip(),
        'message': e.message
    }
    if e.details:
        body['details'] = e.details
    return jsonify(body), e.status_code


def bad_request(message: str):
    return jsonify({
        'error': 'Bad Request',
        'message': message
    }), 400
