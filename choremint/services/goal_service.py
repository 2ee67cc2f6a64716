"""Goal service.

This module contains the goal progression logic that runs after every
ledger append:
- Goal configuration (threshold and reward text per child)
- Goal-achievement detection, exactly once per crossing
- Recording achieved goals and rolling the balance over
- Completing achievements that were recorded without their rollover

The post-append sequence runs under a per-child lock and commits as a single
transaction, so a goal history row and its rollover entry are always written
together. Each history row names the ledger entry that triggered it, so a
re-delivered entry never achieves twice. A 60 second dedup on
(child, balance) covers runs with no triggering entry.
"""

import logging
from typing import List, Optional, Tuple

from flask import current_app
from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError

from choremint.models import (
    db, Child, GoalConfig, GoalHistory, LedgerEntry, REASON_GOAL_ACHIEVED_RESET
)
from choremint.services.errors import AchievementError, NotFoundError, ValidationError
from choremint.services.evolution_service import EvolutionService
from choremint.services.ledger_service import LedgerService
from choremint.services.locking import child_lock
from choremint.utils.balance_cache import get_balance_cache
from choremint.utils.timezone import seconds_ago, utc_now

logger = logging.getLogger(__name__)

_UNSET = object()


class AchievementResult:
    """Outcome of one detector invocation."""

    def __init__(self, child_id: int, balance_before: int = 0):
        self.child_id = child_id
        self.achieved = False
        self.completed_incomplete = False
        self.deduplicated = False
        self.history: Optional[GoalHistory] = None
        self.rollover_entry: Optional[LedgerEntry] = None
        self.balance_before = balance_before
        self.balance_after = balance_before

    def __repr__(self):
        return (f'<AchievementResult child_id={self.child_id} achieved={self.achieved} '
                f'completed_incomplete={self.completed_incomplete} deduplicated={self.deduplicated}>')

    def to_dict(self) -> dict:
        return {
            'achieved': self.achieved,
            'completed_incomplete': self.completed_incomplete,
            'deduplicated': self.deduplicated,
            'goal_history': self.history.to_dict() if self.history else None,
            'rollover_entry': self.rollover_entry.to_dict() if self.rollover_entry else None,
            'balance_before': self.balance_before,
            'balance_after': self.balance_after
        }


class GoalService:
    """Service for goal configuration and goal-achievement handling."""

    # ------------------------------------------------------------------
    # Goal configuration
    # ------------------------------------------------------------------

    @staticmethod
    def validate_threshold(value) -> int:
        """Threshold must be a positive integer."""
        if isinstance(value, bool):
            raise ValidationError('goal_threshold must be a positive integer')
        try:
            threshold = int(value)
        except (ValueError, TypeError):
            raise ValidationError('goal_threshold must be a positive integer')
        if isinstance(value, float) and threshold != value:
            raise ValidationError('goal_threshold must be a positive integer')
        if threshold <= 0:
            raise ValidationError('goal_threshold must be a positive integer')
        return threshold

    @staticmethod
    def get_config(child_id: int) -> GoalConfig:
        """Get a child's goal config or raise NotFoundError."""
        LedgerService.get_child(child_id)
        config = GoalConfig.query.filter_by(child_id=child_id).first()
        if not config:
            raise NotFoundError(f'No goal configured for child {child_id}')
        return config

    @staticmethod
    def ensure_config(child_id: int, goal_threshold: Optional[int] = None,
                      reward_description: Optional[str] = None) -> GoalConfig:
        """Create the child's goal config with defaults if it does not exist. Commits."""
        LedgerService.get_child(child_id)
        config = GoalConfig.query.filter_by(child_id=child_id).first()
        if config:
            return config

        if goal_threshold is None:
            goal_threshold = current_app.config.get('DEFAULT_GOAL_THRESHOLD', 100)
        config = GoalConfig(
            child_id=child_id,
            goal_threshold=GoalService.validate_threshold(goal_threshold),
            reward_description=reward_description
        )
        db.session.add(config)
        db.session.commit()
        logger.info(f"Created goal config for child {child_id}: threshold={config.goal_threshold}")
        return config

    @staticmethod
    def update_config(child_id: int, goal_threshold=_UNSET, reward_description=_UNSET) -> GoalConfig:
        """
        Update (or create) a child's goal config.

        Past achievements are not affected. A lowered threshold that the
        current balance already meets is picked up by the next append or
        by the reconcile job.

        Raises:
            NotFoundError: Child not found
            ValidationError: Threshold is not a positive integer
        """
        LedgerService.get_child(child_id)

        threshold = None
        if goal_threshold is not _UNSET:
            threshold = GoalService.validate_threshold(goal_threshold)

        config = GoalConfig.query.filter_by(child_id=child_id).first()
        if config is None:
            config = GoalConfig(
                child_id=child_id,
                goal_threshold=threshold or current_app.config.get('DEFAULT_GOAL_THRESHOLD', 100)
            )
            db.session.add(config)
        elif threshold is not None:
            config.goal_threshold = threshold

        if reward_description is not _UNSET:
            config.reward_description = reward_description

        db.session.commit()
        logger.info(f"Goal config updated for child {child_id}: threshold={config.goal_threshold}")
        return config

    # ------------------------------------------------------------------
    # Goal history
    # ------------------------------------------------------------------

    @staticmethod
    def history_for(child_id: int) -> List[Tuple[int, GoalHistory]]:
        """Achieved goals in order, paired with their 1-based goal number."""
        LedgerService.get_child(child_id)
        entries = GoalHistory.query.filter_by(child_id=child_id).order_by(
            GoalHistory.achieved_at, GoalHistory.id
        ).all()
        return list(enumerate(entries, start=1))

    @staticmethod
    def goal_number_of(history: GoalHistory) -> int:
        """1-based position of a history row among the child's achievements."""
        return GoalHistory.query.filter(
            GoalHistory.child_id == history.child_id,
            or_(
                GoalHistory.achieved_at < history.achieved_at,
                and_(GoalHistory.achieved_at == history.achieved_at, GoalHistory.id <= history.id)
            )
        ).count()

    @staticmethod
    def find_incomplete_achievement(child_id: int) -> Optional[GoalHistory]:
        """Oldest history row for the child with no rollover entry."""
        return GoalHistory.query.outerjoin(
            LedgerEntry, LedgerEntry.goal_history_id == GoalHistory.id
        ).filter(
            GoalHistory.child_id == child_id,
            LedgerEntry.id.is_(None)
        ).order_by(GoalHistory.achieved_at, GoalHistory.id).first()

    @staticmethod
    def find_achievement_for_entry(entry_id: int) -> Optional[GoalHistory]:
        """History row already produced by processing this ledger entry, if any."""
        return GoalHistory.query.filter_by(trigger_entry_id=entry_id).first()

    @staticmethod
    def find_recent_achievement(child_id: int, balance: int) -> Optional[GoalHistory]:
        """History row at the same balance inside the dedup window, if any."""
        window = current_app.config.get('GOAL_DEDUP_WINDOW_SECONDS', 60)
        return GoalHistory.query.filter(
            GoalHistory.child_id == child_id,
            GoalHistory.balance_at_achievement == balance,
            GoalHistory.achieved_at >= seconds_ago(window)
        ).first()

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    @staticmethod
    def _lock_config(child_id: int) -> Optional[GoalConfig]:
        """Load the config with a row lock where the database supports it."""
        return GoalConfig.query.filter_by(child_id=child_id).with_for_update().first()

    @staticmethod
    def _evaluate(child_id: int, trigger: Optional[LedgerEntry] = None) -> AchievementResult:
        """
        Run the goal-achievement detector once for a child.

        Handles at most one crossing, and none when ``trigger`` has already
        produced an achievement. Flushes but does not commit; only ``process``
        calls this, inside the per-child lock.

        Returns:
            AchievementResult describing what happened
        """
        config = GoalService._lock_config(child_id)

        incomplete = GoalService.find_incomplete_achievement(child_id)
        if incomplete is not None:
            return GoalService._complete_achievement(incomplete)

        balance = LedgerService.sum_for(child_id)
        result = AchievementResult(child_id, balance)

        if config is None or not config.is_active:
            logger.debug(f"No active goal for child {child_id}, skipping detection")
            return result

        if balance < config.goal_threshold:
            return result

        if trigger is not None and GoalService.find_achievement_for_entry(trigger.id) is not None:
            logger.info(f"Entry {trigger.id} already produced an achievement for child {child_id}, skipping detection")
            result.deduplicated = True
            return result

        if GoalService.find_recent_achievement(child_id, balance) is not None:
            logger.debug(f"Goal crossing at balance {balance} for child {child_id} already handled")
            result.deduplicated = True
            return result

        return GoalService._achieve(config, balance, trigger)

    @staticmethod
    def _achieve(config: GoalConfig, balance: int, trigger: Optional[LedgerEntry] = None) -> AchievementResult:
        """Write history, rollover and slot completion for one crossing."""
        child_id = config.child_id
        goal_number = EvolutionService.completed_goal_count(child_id) + 1
        result = AchievementResult(child_id, balance)

        history = GoalHistory(
            child_id=child_id,
            goal_threshold_at_achievement=config.goal_threshold,
            reward_description_at_achievement=config.reward_description,
            balance_at_achievement=balance,
            achieved_at=utc_now(),
            trigger_entry_id=trigger.id if trigger is not None else None
        )
        db.session.add(history)
        db.session.flush()

        rollover = LedgerService.insert(
            child_id,
            -config.goal_threshold,
            REASON_GOAL_ACHIEVED_RESET,
            goal_history_id=history.id
        )

        EvolutionService.complete_slot(child_id, goal_number)
        EvolutionService.refresh_current_slot(child_id)

        result.achieved = True
        result.history = history
        result.rollover_entry = rollover
        result.balance_after = balance - config.goal_threshold

        logger.info(
            f"Goal {goal_number} achieved by child {child_id}: balance={balance} "
            f"threshold={config.goal_threshold} reward={config.reward_description!r}"
        )
        return result

    @staticmethod
    def _complete_achievement(history: GoalHistory) -> AchievementResult:
        """Finish an achievement whose rollover entry is missing."""
        child_id = history.child_id
        balance = LedgerService.sum_for(child_id)
        result = AchievementResult(child_id, balance)

        rollover = LedgerService.insert(
            child_id,
            -history.goal_threshold_at_achievement,
            REASON_GOAL_ACHIEVED_RESET,
            goal_history_id=history.id
        )

        EvolutionService.complete_slot(child_id, GoalService.goal_number_of(history))
        EvolutionService.refresh_current_slot(child_id)

        result.completed_incomplete = True
        result.history = history
        result.rollover_entry = rollover
        result.balance_after = balance - history.goal_threshold_at_achievement

        logger.warning(
            f"Completed achievement {history.id} for child {child_id} that was missing its rollover"
        )
        return result

    @staticmethod
    def process(child_id: int, entry: Optional[LedgerEntry] = None) -> AchievementResult:
        """
        Post-append sequence for a child, serialized per child and committed atomically.

        Runs the detector unless ``entry`` is itself a rollover, then
        refreshes the current evolution slot from the resulting balance.

        Args:
            child_id: ID of the child
            entry: The ledger entry that triggered this run, if any

        Returns:
            AchievementResult

        Raises:
            AchievementError: The sequence failed and was rolled back
        """
        with child_lock(child_id):
            try:
                if entry is not None and entry.reason == REASON_GOAL_ACHIEVED_RESET:
                    result = AchievementResult(child_id, LedgerService.sum_for(child_id))
                else:
                    result = GoalService._evaluate(child_id, entry)
                EvolutionService.refresh_current_slot(child_id)
                db.session.commit()
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error(f"Goal processing failed for child {child_id}: {e}", exc_info=True)
                raise AchievementError(
                    'Goal processing failed, the ledger entry is recorded',
                    entry.id if entry is not None else None
                ) from e
            except Exception:
                db.session.rollback()
                raise

        if result.rollover_entry is not None:
            get_balance_cache().invalidate(child_id)
        return result

    @staticmethod
    def handle_ledger_append(entry: LedgerEntry) -> AchievementResult:
        """Post-append hook registered on the app by the factory."""
        return GoalService.process(entry.child_id, entry)

    @staticmethod
    def reconcile_all() -> dict:
        """
        Run the post-append sequence for every child.

        Completes achievements left incomplete and catches crossings whose
        hook failed. A failure for one child is logged and does not stop
        the others.

        Returns:
            dict: counts of children checked, achievements, completions, failures
        """
        summary = {'checked': 0, 'achieved': 0, 'completed': 0, 'failed': 0}
        child_ids = [child_id for (child_id,) in db.session.query(Child.id).order_by(Child.id).all()]

        for child_id in child_ids:
            summary['checked'] += 1
            try:
                result = GoalService.process(child_id)
            except AchievementError as e:
                summary['failed'] += 1
                logger.error(f"Reconcile failed for child {child_id}: {e.message}")
                continue
            if result.achieved:
                summary['achieved'] += 1
            if result.completed_incomplete:
                summary['completed'] += 1

        return summary
