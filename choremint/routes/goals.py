"""Goal configuration and goal history API endpoints for ChoreMint."""

import logging
from flask import Blueprint, jsonify, request

from choremint.auth import api_token_required
from choremint.models import db
from choremint.routes.utils import bad_request, error_response
from choremint.services.errors import LedgerServiceError
from choremint.services.goal_service import GoalService
from choremint.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

goals_bp = Blueprint('goals', __name__, url_prefix='/api/goals')


@goals_bp.route('/<int:child_id>', methods=['GET'])
@api_token_required
def get_goal(child_id):
    """Get a child's goal config with current progress."""
    try:
        config = GoalService.get_config(child_id)
    except LedgerServiceError as e:
        return error_response(e)

    data = config.to_dict()
    data['balance'] = LedgerService.sum_for(child_id)
    return jsonify({'data': data})


@goals_bp.route('/<int:child_id>', methods=['PUT'])
@api_token_required
def update_goal(child_id):
    """Set a child's goal threshold and/or reward description.

    Request body:
        {
            "goal_threshold": int > 0 (optional),
            "reward_description": str | null (optional)
        }
    """
    data = request.get_json(silent=True)
    if not data or ('goal_threshold' not in data and 'reward_description' not in data):
        return bad_request('Provide goal_threshold and/or reward_description')

    kwargs = {}
    if 'goal_threshold' in data:
        kwargs['goal_threshold'] = data['goal_threshold']
    if 'reward_description' in data:
        kwargs['reward_description'] = data['reward_description']

    try:
        config = GoalService.update_config(child_id, **kwargs)
    except LedgerServiceError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Failed to update goal for child {child_id}: {e}", exc_info=True)
        db.session.rollback()
        return jsonify({
            'error': 'Internal Server Error',
            'message': 'Failed to update goal'
        }), 500

    return jsonify({
        'data': config.to_dict(),
        'message': 'Goal updated successfully'
    })


@goals_bp.route('/<int:child_id>/history', methods=['GET'])
@api_token_required
def get_goal_history(child_id):
    """List a child's achieved goals, oldest first."""
    try:
        history = GoalService.history_for(child_id)
    except LedgerServiceError as e:
        return error_response(e)

    return jsonify({
        'data': [entry.to_dict(ordinal) for ordinal, entry in history],
        'total': len(history),
        'message': f'Retrieved {len(history)} achieved goals'
    })


@goals_bp.route('/<int:child_id>/evaluate', methods=['POST'])
@api_token_required
def evaluate_goal(child_id):
    """Re-run goal processing for a child.

    For change-feed consumers and retries after a failed append response.
    Safe to call any number of times.
    """
    try:
        LedgerService.get_child(child_id)
        result = GoalService.process(child_id)
    except LedgerServiceError as e:
        return error_response(e)

    return jsonify({
        'data': result.to_dict(),
        'message': 'Goal achieved!' if result.achieved else 'Goal processing complete'
    })
