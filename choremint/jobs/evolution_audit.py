"""
Evolution slot audit job.
"""

import logging

logger = logging.getLogger(__name__)


def audit_evolution_slots():
    """
    Audit goal history and evolution slots against each other.

    Runs nightly at 02:00. Reports achieved goals without a rollover entry,
    children with more than three slots, and completed-goal slots that are
    not at the maximum level.

    Returns:
        list: Discrepancy dicts (empty when everything is consistent)
    """
    logger.info("Starting evolution slot audit")

    # Import inside function to avoid circular imports and to get app context
    from choremint.models import Child, EvolutionSlot, EVOLUTION_SLOT_COUNT, MAX_LEVEL
    from choremint.services.evolution_service import EvolutionService
    from choremint.services.goal_service import GoalService

    try:
        children = Child.query.order_by(Child.id).all()
        discrepancies = []

        for child in children:
            incomplete = GoalService.find_incomplete_achievement(child.id)
            if incomplete is not None:
                discrepancies.append({
                    'child_id': child.id,
                    'issue': 'missing_rollover',
                    'goal_history_id': incomplete.id
                })

            slots = EvolutionSlot.query.filter_by(child_id=child.id).all()
            if len(slots) > EVOLUTION_SLOT_COUNT:
                discrepancies.append({
                    'child_id': child.id,
                    'issue': 'too_many_slots',
                    'slots': len(slots)
                })

            completed = EvolutionService.completed_goal_count(child.id)
            for slot in slots:
                if slot.slot_number <= completed and slot.level != MAX_LEVEL:
                    discrepancies.append({
                        'child_id': child.id,
                        'issue': 'completed_slot_below_max',
                        'slot_number': slot.slot_number,
                        'level': slot.level
                    })

        if discrepancies:
            logger.error(f"Evolution discrepancies found: {discrepancies}")
        else:
            logger.info(f"Evolution audit complete: all {len(children)} children verified")

        return discrepancies

    except Exception as e:
        logger.error(f"Error in evolution slot audit: {e}")
        raise
