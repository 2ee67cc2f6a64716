"""Points ledger API endpoints for ChoreMint."""

import logging
from flask import Blueprint, jsonify, request

from choremint.auth import api_token_required
from choremint.models import db, LedgerEntry, REASON_GOAL_ACHIEVED_RESET
from choremint.routes.utils import bad_request, error_response
from choremint.services.errors import AchievementError, LedgerServiceError
from choremint.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

points_bp = Blueprint('points', __name__, url_prefix='/api/points')


@points_bp.route('/append', methods=['POST'])
@api_token_required
def append_points():
    """Append a point delta to a child's ledger.

    Called by the approval workflow once per approved submission (retries
    with the same submission_id are safe) and by parents for manual
    adjustments.

    Request body:
        {
            "child_id": int,
            "delta": int (nonzero),
            "reason": "chore_approved" | "manual_adjustment",
            "submission_id": str (optional),
            "note": str (optional),
            "created_by": str (optional)
        }

    Returns:
        JSON: {data: {entry, balance, achievement}, message: str}
    """
    data = request.get_json(silent=True)

    if not data or 'child_id' not in data or 'delta' not in data or 'reason' not in data:
        return bad_request('Missing required fields: child_id, delta, reason')

    try:
        child_id = int(data['child_id'])
    except (ValueError, TypeError):
        return bad_request('child_id must be a valid integer')

    if data['reason'] == REASON_GOAL_ACHIEVED_RESET:
        return bad_request('goal_achieved_reset entries are written by goal processing only')

    submission_id = data.get('submission_id')
    if submission_id is not None:
        submission_id = str(submission_id)

    try:
        entry = LedgerService.append(
            child_id,
            data['delta'],
            data['reason'],
            submission_id=submission_id,
            note=data.get('note'),
            created_by=data.get('created_by')
        )
    except AchievementError as e:
        return achievement_pending(child_id, e)
    except LedgerServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to append points for child {child_id}: {e}", exc_info=True)
        db.session.rollback()
        return jsonify({
            'error': 'Internal Server Error',
            'message': 'An unexpected error occurred'
        }), 500

    achievement = entry.achievement
    return jsonify({
        'data': {
            'entry': entry.to_dict(),
            'balance': LedgerService.sum_for(child_id),
            'achievement': achievement.to_dict() if achievement is not None else None
        },
        'message': 'Goal achieved!' if achievement is not None and achievement.achieved else 'Points recorded'
    }), 201


def achievement_pending(child_id, error: AchievementError):
    """202 for an append whose entry is stored but whose goal processing failed.

    The client must not resend the append. Goal processing is completed by
    POST /api/goals/<child_id>/evaluate or the reconcile job.
    """
    entry_id = error.details['entry_id'] if error.details else None
    entry = db.session.get(LedgerEntry, entry_id) if entry_id is not None else None
    logger.warning(f"Points recorded for child {child_id} but goal processing is pending: {error.message}")
    return jsonify({
        'data': {
            'entry': entry.to_dict() if entry is not None else None,
            'balance': LedgerService.sum_for(child_id),
            'achievement': None,
            'achievement_pending': True,
            'evaluate_url': f'/api/goals/{child_id}/evaluate'
        },
        'message': 'Points recorded, goal processing pending'
    }), 202


@points_bp.route('/balances', methods=['GET'])
@api_token_required
def list_balances():
    """Projected balance of every child."""
    balances = LedgerService.balances()
    return jsonify({
        'data': balances,
        'message': f'Found {len(balances)} children'
    })


@points_bp.route('/<int:child_id>', methods=['GET'])
@api_token_required
def get_balance(child_id):
    """Get a child's balance.

    Query parameters:
        cached: "true" to allow a display value up to the cache TTL old
    """
    try:
        LedgerService.get_child(child_id)
    except LedgerServiceError as e:
        return error_response(e)

    cached = request.args.get('cached', 'false').lower() in ('true', '1', 'yes')
    balance = LedgerService.cached_sum_for(child_id) if cached else LedgerService.sum_for(child_id)

    return jsonify({
        'data': {
            'child_id': child_id,
            'balance': balance,
            'cached': cached
        }
    })


@points_bp.route('/<int:child_id>/history', methods=['GET'])
@api_token_required
def get_points_history(child_id):
    """Get paginated ledger entries for a child, newest first."""
    try:
        LedgerService.get_child(child_id)
    except LedgerServiceError as e:
        return error_response(e)

    # Pagination
    try:
        limit = int(request.args.get('limit', 50))
        offset = int(request.args.get('offset', 0))
    except (ValueError, TypeError):
        return bad_request('limit and offset must be valid integers')

    if limit < 1 or limit > 1000:
        return bad_request('limit must be between 1 and 1000')

    if offset < 0:
        return bad_request('offset must be non-negative')

    entries = LedgerService.entries_for(child_id, limit=limit, offset=offset)

    return jsonify({
        'data': [entry.to_dict() for entry in entries],
        'total': LedgerService.count_for(child_id),
        'limit': limit,
        'offset': offset,
        'current_balance': LedgerService.sum_for(child_id),
        'message': f'Retrieved {len(entries)} ledger entries'
    })
