"""Business logic for the points ledger, goals and evolution slots.

Routes should delegate to these services and handle HTTP responses.
"""

from choremint.services.errors import (
    LedgerServiceError,
    ValidationError,
    NotFoundError,
    LedgerWriteError,
    AchievementError,
)
from choremint.services.ledger_service import LedgerService
from choremint.services.evolution_service import EvolutionService
from choremint.services.goal_service import GoalService, AchievementResult

__all__ = [
    'LedgerServiceError',
    'ValidationError',
    'NotFoundError',
    'LedgerWriteError',
    'AchievementError',
    'LedgerService',
    'EvolutionService',
    'GoalService',
    'AchievementResult',
]
