"""Points ledger service.

This module contains the Ledger Store and the Balance Projector:
- Appending immutable point deltas
- Projecting a child's balance as the sum of their entries
- Running the post-append hooks registered on the app

The ledger sum is the only balance. Nothing in this package stores a
running total.
"""

import logging
from typing import Callable, List, Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from choremint.models import db, Child, LedgerEntry, LEDGER_REASONS, REASON_CHORE_APPROVED
from choremint.services.errors import ConflictError, LedgerWriteError, NotFoundError, ValidationError
from choremint.utils.balance_cache import get_balance_cache

logger = logging.getLogger(__name__)

HOOKS_EXTENSION = 'ledger_post_append_hooks'


def register_post_append_hook(app, hook: Callable[[LedgerEntry], object]) -> None:
    """Register ``hook`` to run after every committed append on ``app``."""
    app.extensions.setdefault(HOOKS_EXTENSION, []).append(hook)


def get_post_append_hooks() -> List[Callable[[LedgerEntry], object]]:
    return current_app.extensions.get(HOOKS_EXTENSION, [])


class LedgerService:
    """Service for the append-only points ledger."""

    @staticmethod
    def validate_delta(delta) -> int:
        """Coerce and validate a point delta. Booleans and zero are rejected."""
        if isinstance(delta, bool):
            raise ValidationError('delta must be a valid integer')
        try:
            value = int(delta)
        except (ValueError, TypeError):
            raise ValidationError('delta must be a valid integer')
        if isinstance(delta, float) and value != delta:
            raise ValidationError('delta must be a valid integer')
        if value == 0:
            raise ValidationError('delta cannot be zero')
        return value

    @staticmethod
    def validate_reason(reason: str) -> str:
        if reason not in LEDGER_REASONS:
            raise ValidationError(
                f"reason must be one of: {', '.join(LEDGER_REASONS)}",
                {'reason': reason}
            )
        return reason

    @staticmethod
    def get_child(child_id: int) -> Child:
        """Get a child by ID or raise NotFoundError."""
        child = db.session.get(Child, child_id)
        if not child:
            raise NotFoundError(f'Child {child_id} not found')
        return child

    @staticmethod
    def insert(child_id: int, delta: int, reason: str, submission_id: Optional[str] = None,
               goal_history_id: Optional[int] = None, note: Optional[str] = None,
               created_by: Optional[str] = None) -> LedgerEntry:
        """Add and flush an entry inside the caller's transaction.

        Does not commit and does not run hooks. The achievement sequence uses
        this so the rollover commits together with its history record.
        """
        entry = LedgerEntry(
            child_id=child_id,
            delta=LedgerService.validate_delta(delta),
            reason=LedgerService.validate_reason(reason),
            submission_id=submission_id,
            goal_history_id=goal_history_id,
            note=note,
            created_by=created_by
        )
        db.session.add(entry)
        db.session.flush()
        return entry

    @staticmethod
    def find_by_submission(child_id: int, submission_id: str) -> Optional[LedgerEntry]:
        """Entry already credited for this child's submission.

        Raises:
            ConflictError: The submission id is credited to another child
        """
        entry = LedgerEntry.query.filter_by(submission_id=submission_id).first()
        if entry is not None and entry.child_id != child_id:
            raise ConflictError(
                f'Submission {submission_id} is already credited to another child',
                {'submission_id': submission_id, 'entry_id': entry.id}
            )
        return entry

    @staticmethod
    def append(child_id: int, delta: int, reason: str, submission_id: Optional[str] = None,
               note: Optional[str] = None, created_by: Optional[str] = None) -> LedgerEntry:
        """Append a point delta for a child and run the post-append hooks.

        A repeated ``chore_approved`` append for a submission that is already
        credited returns the existing entry instead of crediting twice; the
        hooks still run so an interrupted sequence gets completed.

        Args:
            child_id: ID of the child
            delta: Signed, nonzero number of points
            reason: One of LEDGER_REASONS
            submission_id: Optional reference to the approved submission
            note: Optional free text (manual adjustments)
            created_by: Optional id of the external actor

        Returns:
            The committed LedgerEntry, with ``achievement`` set to the goal
            hook's result

        Raises:
            ValidationError: Invalid delta or reason
            NotFoundError: Child not found
            ConflictError: submission_id is already credited to another child
            LedgerWriteError: The entry could not be stored
            AchievementError: The entry is stored but the post-append
                sequence failed
        """
        delta = LedgerService.validate_delta(delta)
        LedgerService.validate_reason(reason)
        LedgerService.get_child(child_id)

        entry = None
        if submission_id is not None and reason == REASON_CHORE_APPROVED:
            entry = LedgerService.find_by_submission(child_id, submission_id)
            if entry is not None:
                logger.info(f"Submission {submission_id} already credited as entry {entry.id}, skipping append")

        if entry is None:
            try:
                entry = LedgerService.insert(
                    child_id, delta, reason,
                    submission_id=submission_id,
                    note=note,
                    created_by=created_by
                )
                db.session.commit()
            except IntegrityError as e:
                db.session.rollback()
                entry = LedgerService.find_by_submission(child_id, submission_id) if submission_id else None
                if entry is None:
                    logger.error(f"Failed to append ledger entry for child {child_id}: {e}", exc_info=True)
                    raise LedgerWriteError('Balance not yet updated, try again') from e
                logger.info(f"Submission {submission_id} was credited concurrently as entry {entry.id}")
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error(f"Failed to append ledger entry for child {child_id}: {e}", exc_info=True)
                raise LedgerWriteError('Balance not yet updated, try again') from e
            else:
                logger.info(f"Ledger append: child={child_id} delta={delta} reason={reason} entry={entry.id}")

        get_balance_cache().invalidate(child_id)

        for hook in get_post_append_hooks():
            result = hook(entry)
            if result is not None:
                entry.achievement = result

        return entry

    @staticmethod
    def sum_for(child_id: int) -> int:
        """
        Project a child's balance from the ledger.

        Returns:
            int: Sum of all deltas, 0 when the child has no entries
        """
        total = db.session.query(func.sum(LedgerEntry.delta)).filter(
            LedgerEntry.child_id == child_id
        ).scalar()
        return int(total) if total is not None else 0

    @staticmethod
    def cached_sum_for(child_id: int) -> int:
        """Display-only balance, possibly stale by up to the cache TTL."""
        return get_balance_cache().get(child_id, LedgerService.sum_for)

    @staticmethod
    def count_for(child_id: int) -> int:
        return LedgerEntry.query.filter_by(child_id=child_id).count()

    @staticmethod
    def entries_for(child_id: int, limit: int = 50, offset: int = 0) -> List[LedgerEntry]:
        """Entries for a child, newest first in (created_at, id) order."""
        return LedgerEntry.query.filter_by(child_id=child_id).order_by(
            LedgerEntry.created_at.desc(), LedgerEntry.id.desc()
        ).limit(limit).offset(offset).all()

    @staticmethod
    def balances() -> List[dict]:
        """Balance of every child in one grouped query, including children with no entries."""
        rows = db.session.query(
            Child.id,
            Child.nickname,
            func.coalesce(func.sum(LedgerEntry.delta), 0)
        ).outerjoin(LedgerEntry, LedgerEntry.child_id == Child.id).group_by(
            Child.id, Child.nickname
        ).order_by(Child.id).all()

        return [
            {'child_id': child_id, 'nickname': nickname, 'total_points': int(total)}
            for child_id, nickname, total in rows
        ]
