"""Character evolution slot service.

A child has exactly three evolution slots. Slot N is current while the child
has completed N-1 goals; once more than three goals are completed no slot is
current and levels stop changing, while the ledger and goals carry on.

Levels come from progress toward the current goal:

    progress <= 0        -> 1
    0 < progress <= 33   -> 2
    33 < progress < 67   -> 3
    67 <= progress < 100 -> 4
    progress >= 100      -> 5

Routine updates only ever raise a slot's level. Completing a goal forces
the completed slot to level 5.

Methods here flush but never commit; the caller owns the transaction.
"""

import logging
from typing import Dict, List, Optional

from choremint.models import (
    db, Child, EvolutionSlot, GoalConfig, GoalHistory,
    EVOLUTION_SLOT_COUNT, MIN_LEVEL, MAX_LEVEL
)
from choremint.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)


def progress_percent(balance: int, goal_threshold: Optional[int]) -> float:
    """Progress toward a goal in percent; 0 when no goal is active."""
    if goal_threshold is None or goal_threshold <= 0:
        return 0.0
    return 100.0 * balance / goal_threshold


def compute_level(percent: float) -> int:
    """Map a progress percentage to an evolution level 1-5."""
    if percent <= 0:
        return 1
    if percent <= 33:
        return 2
    if percent < 67:
        return 3
    if percent < 100:
        return 4
    return MAX_LEVEL


class EvolutionService:
    """Service for the per-child evolution slot state machine."""

    @staticmethod
    def completed_goal_count(child_id: int) -> int:
        return GoalHistory.query.filter_by(child_id=child_id).count()

    @staticmethod
    def current_slot_number(child_id: int) -> int:
        """1-based current slot. Values above EVOLUTION_SLOT_COUNT mean no slot is current."""
        return EvolutionService.completed_goal_count(child_id) + 1

    @staticmethod
    def get_slots(child_id: int) -> List[EvolutionSlot]:
        return EvolutionSlot.query.filter_by(child_id=child_id).order_by(EvolutionSlot.slot_number).all()

    @staticmethod
    def get_slot(child_id: int, slot_number: int) -> Optional[EvolutionSlot]:
        return EvolutionSlot.query.filter_by(child_id=child_id, slot_number=slot_number).first()

    @staticmethod
    def ensure_slots(child_id: int) -> List[EvolutionSlot]:
        """Create any missing slots 1..3 at level 1."""
        existing = {slot.slot_number: slot for slot in EvolutionService.get_slots(child_id)}
        created = False
        for slot_number in range(1, EVOLUTION_SLOT_COUNT + 1):
            if slot_number not in existing:
                slot = EvolutionSlot(child_id=child_id, slot_number=slot_number, level=MIN_LEVEL)
                db.session.add(slot)
                existing[slot_number] = slot
                created = True
        if created:
            db.session.flush()
            logger.debug(f"Created evolution slots for child {child_id}")
        return [existing[n] for n in sorted(existing)]

    @staticmethod
    def refresh_current_slot(child_id: int) -> Optional[EvolutionSlot]:
        """
        Raise the current slot's level from the child's progress.

        The level is set to max(stored, computed) and never lowered.

        Returns:
            EvolutionSlot: The current slot, or None once all three slots
            are complete
        """
        slots = EvolutionService.ensure_slots(child_id)
        current = EvolutionService.current_slot_number(child_id)
        if current > EVOLUTION_SLOT_COUNT:
            return None

        config = GoalConfig.query.filter_by(child_id=child_id).first()
        threshold = config.goal_threshold if config else None
        balance = LedgerService.sum_for(child_id)
        level = compute_level(progress_percent(balance, threshold))

        slot = slots[current - 1]
        if slot.raise_level(level):
            logger.info(f"Child {child_id} slot {current} evolved to level {level}")
        return slot

    @staticmethod
    def complete_slot(child_id: int, slot_number: int) -> Optional[EvolutionSlot]:
        """Force a just-completed slot to level 5. No-op beyond slot 3."""
        if slot_number < 1 or slot_number > EVOLUTION_SLOT_COUNT:
            logger.debug(f"Child {child_id} goal {slot_number} has no evolution slot")
            return None

        slot = EvolutionService.ensure_slots(child_id)[slot_number - 1]
        slot.raise_level(MAX_LEVEL)
        logger.info(f"Child {child_id} slot {slot_number} completed at level {MAX_LEVEL}")
        return slot

    @staticmethod
    def backfill(child_id: int) -> bool:
        """
        Seed slots for a child who has none yet.

        Slots for completed goals start at level 5, the current slot at its
        computed level and later slots at level 1.

        Returns:
            bool: True if slots were created, False if the child already had any
        """
        if EvolutionSlot.query.filter_by(child_id=child_id).first() is not None:
            return False

        goal_count = EvolutionService.completed_goal_count(child_id)
        current = goal_count + 1

        current_level = MIN_LEVEL
        if current <= EVOLUTION_SLOT_COUNT:
            config = GoalConfig.query.filter_by(child_id=child_id).first()
            threshold = config.goal_threshold if config else None
            current_level = compute_level(progress_percent(LedgerService.sum_for(child_id), threshold))

        for slot_number in range(1, EVOLUTION_SLOT_COUNT + 1):
            if slot_number <= goal_count:
                level = MAX_LEVEL
            elif slot_number == current:
                level = current_level
            else:
                level = MIN_LEVEL
            db.session.add(EvolutionSlot(child_id=child_id, slot_number=slot_number, level=level))

        db.session.flush()
        logger.info(f"Backfilled evolution slots for child {child_id} (goals completed: {goal_count})")
        return True

    @staticmethod
    def backfill_all() -> int:
        """Backfill every child without slots and commit. Returns the number seeded."""
        seeded = 0
        for child in Child.query.order_by(Child.id).all():
            if EvolutionService.backfill(child.id):
                seeded += 1
        db.session.commit()
        return seeded

    @staticmethod
    def progress_for(child_id: int) -> Dict:
        """
        Read model for a child's evolution screen. Does not write.

        Returns:
            dict: balance, goal, progress percent, current slot and the three
            slots with their levels and mission names
        """
        LedgerService.get_child(child_id)

        config = GoalConfig.query.filter_by(child_id=child_id).first()
        threshold = config.goal_threshold if config else None
        balance = LedgerService.sum_for(child_id)
        percent = progress_percent(balance, threshold)

        history = GoalHistory.query.filter_by(child_id=child_id).order_by(
            GoalHistory.achieved_at, GoalHistory.id
        ).all()
        current = len(history) + 1
        stored = {slot.slot_number: slot for slot in EvolutionService.get_slots(child_id)}

        slots = []
        for slot_number in range(1, EVOLUTION_SLOT_COUNT + 1):
            slot = stored.get(slot_number)
            if slot is not None:
                slot_data = slot.to_dict()
            else:
                slot_data = {
                    'slot_number': slot_number,
                    'level': MIN_LEVEL,
                    'is_max_level': False,
                    'level_reached_at': None,
                    'updated_at': None
                }

            if slot_number <= len(history):
                goal = history[slot_number - 1]
                slot_data['mission_name'] = goal.reward_description_at_achievement
                slot_data['completed_at'] = goal.achieved_at.isoformat()
            elif slot_number == current and config is not None:
                slot_data['mission_name'] = config.reward_description
                slot_data['completed_at'] = None
            else:
                slot_data['mission_name'] = None
                slot_data['completed_at'] = None

            slot_data['is_current'] = slot_number == current
            slots.append(slot_data)

        return {
            'child_id': child_id,
            'balance': balance,
            'goal_threshold': threshold,
            'reward_description': config.reward_description if config else None,
            'progress_percent': round(percent, 2),
            'current_level': compute_level(percent) if current <= EVOLUTION_SLOT_COUNT else None,
            'completed_goals': len(history),
            'current_slot_number': current,
            'max_reached': current > EVOLUTION_SLOT_COUNT,
            'slots': slots
        }
