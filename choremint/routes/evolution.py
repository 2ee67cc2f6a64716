"""Character evolution API endpoints for ChoreMint."""

from flask import Blueprint, jsonify

from choremint.auth import api_token_required
from choremint.routes.utils import error_response
from choremint.services.errors import LedgerServiceError
from choremint.services.evolution_service import EvolutionService

evolution_bp = Blueprint('evolution', __name__, url_prefix='/api/evolution')


@evolution_bp.route('/<int:child_id>', methods=['GET'])
@api_token_required
def get_evolution(child_id):
    """Get a child's evolution slots and progress toward the current goal."""
    try:
        progress = EvolutionService.progress_for(child_id)
    except LedgerServiceError as e:
        return error_response(e)

    return jsonify({'data': progress})
