"""
SQLAlchemy models for ChoreMint.

This module defines the database models for the points ledger and the goal
progression state machine. Uses Flask-SQLAlchemy for ORM integration with
Flask.

``points_ledger`` and ``goal_history`` are append-only: mapper events refuse
updates and deletes of persisted rows. ``goal_configs`` and
``evolution_slots`` are mutable in place.
"""

from typing import Optional

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import CheckConstraint, UniqueConstraint, Index, event
from sqlalchemy.orm import relationship, object_session

from choremint.utils.timezone import utc_now

db = SQLAlchemy()

# Ledger reasons
REASON_CHORE_APPROVED = 'chore_approved'
REASON_GOAL_ACHIEVED_RESET = 'goal_achieved_reset'
REASON_MANUAL_ADJUSTMENT = 'manual_adjustment'
LEDGER_REASONS = (REASON_CHORE_APPROVED, REASON_GOAL_ACHIEVED_RESET, REASON_MANUAL_ADJUSTMENT)

# Evolution
EVOLUTION_SLOT_COUNT = 3
MIN_LEVEL = 1
MAX_LEVEL = 5


class ImmutableRecordError(Exception):
    """Raised when code tries to modify or delete an append-only record."""


class Child(db.Model):
    """A child whose points are tracked. Account management lives elsewhere."""

    __tablename__ = 'children'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    nickname = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)

    # Relationships (no delete cascade: ledger and history are append-only)
    ledger_entries = relationship('LedgerEntry', back_populates='child', passive_deletes='all')
    goal_config = relationship('GoalConfig', back_populates='child', uselist=False)
    goal_history = relationship('GoalHistory', back_populates='child', passive_deletes='all',
                                order_by='GoalHistory.achieved_at, GoalHistory.id')
    evolution_slots = relationship('EvolutionSlot', back_populates='child',
                                   order_by='EvolutionSlot.slot_number')

    def __repr__(self):
        return f'<Child {self.nickname}>'

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'nickname': self.nickname,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }


class LedgerEntry(db.Model):
    """Immutable signed point delta. The sum per child is the balance."""

    __tablename__ = 'points_ledger'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    child_id = db.Column(db.Integer, db.ForeignKey('children.id'), nullable=False)
    delta = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(32), nullable=False)

    # Reference to what caused this change
    submission_id = db.Column(db.String(64), nullable=True)  # Approved submission (external)
    goal_history_id = db.Column(db.Integer, db.ForeignKey('goal_history.id'), nullable=True)

    note = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(64), nullable=True)  # External actor id
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)

    # Relationships
    child = relationship('Child', back_populates='ledger_entries')
    goal_history = relationship('GoalHistory', back_populates='rollover_entry')

    # Set by LedgerService.append from the post-append hooks (not persisted)
    achievement = None

    __table_args__ = (
        CheckConstraint('delta <> 0', name='check_ledger_delta_nonzero'),
        CheckConstraint(
            "reason IN ('chore_approved', 'goal_achieved_reset', 'manual_adjustment')",
            name='check_ledger_reason'
        ),
        UniqueConstraint('goal_history_id', name='unique_ledger_goal_history'),
        Index('idx_points_ledger_child_order', 'child_id', 'created_at', 'id'),
        UniqueConstraint('submission_id', name='unique_ledger_submission'),
    )

    def __repr__(self):
        return f'<LedgerEntry child_id={self.child_id} delta={self.delta} reason={self.reason}>'

    def to_dict(self) -> dict:
        """Serialize LedgerEntry to dictionary for JSON responses."""
        return {
            'id': self.id,
            'child_id': self.child_id,
            'delta': self.delta,
            'reason': self.reason,
            'submission_id': self.submission_id,
            'goal_history_id': self.goal_history_id,
            'note': self.note,
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }


class GoalConfig(db.Model):
    """Live goal settings for a child, edited by a parent."""

    __tablename__ = 'goal_configs'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    child_id = db.Column(db.Integer, db.ForeignKey('children.id'), unique=True, nullable=False)
    goal_threshold = db.Column(db.Integer, nullable=False)
    reward_description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    child = relationship('Child', back_populates='goal_config')

    def __repr__(self):
        return f'<GoalConfig child_id={self.child_id} threshold={self.goal_threshold}>'

    @property
    def is_active(self) -> bool:
        """A goal is active only with a positive threshold."""
        return self.goal_threshold is not None and self.goal_threshold > 0

    def to_dict(self) -> dict:
        return {
            'child_id': self.child_id,
            'goal_threshold': self.goal_threshold,
            'reward_description': self.reward_description,
            'is_active': self.is_active,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }


class GoalHistory(db.Model):
    """Append-only record of an achieved goal."""

    __tablename__ = 'goal_history'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    child_id = db.Column(db.Integer, db.ForeignKey('children.id'), nullable=False)
    goal_threshold_at_achievement = db.Column(db.Integer, nullable=False)
    reward_description_at_achievement = db.Column(db.Text, nullable=True)
    balance_at_achievement = db.Column(db.Integer, nullable=False)
    achieved_at = db.Column(db.DateTime, default=utc_now, nullable=False)

    # Ledger entry whose append was processed into this achievement, when known
    trigger_entry_id = db.Column(db.Integer, nullable=True)

    # Relationships
    child = relationship('Child', back_populates='goal_history')
    rollover_entry = relationship('LedgerEntry', back_populates='goal_history', uselist=False)

    __table_args__ = (
        Index('idx_goal_history_child_achieved', 'child_id', 'achieved_at', 'id'),
        UniqueConstraint('trigger_entry_id', name='unique_goal_history_trigger_entry'),
    )

    def __repr__(self):
        return f'<GoalHistory child_id={self.child_id} balance={self.balance_at_achievement}>'

    def to_dict(self, ordinal: Optional[int] = None) -> dict:
        """Serialize GoalHistory; ``ordinal`` is the 1-based goal number if known."""
        result = {
            'id': self.id,
            'child_id': self.child_id,
            'goal_threshold_at_achievement': self.goal_threshold_at_achievement,
            'reward_description_at_achievement': self.reward_description_at_achievement,
            'balance_at_achievement': self.balance_at_achievement,
            'trigger_entry_id': self.trigger_entry_id,
            'achieved_at': self.achieved_at.isoformat() if self.achieved_at else None,
        }
        if ordinal is not None:
            result['goal_number'] = ordinal
            result['slot_number'] = ordinal if ordinal <= EVOLUTION_SLOT_COUNT else None
        return result


class EvolutionSlot(db.Model):
    """Cached evolution level for one of a child's three character slots."""

    __tablename__ = 'evolution_slots'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    child_id = db.Column(db.Integer, db.ForeignKey('children.id'), nullable=False)
    slot_number = db.Column(db.Integer, nullable=False)
    level = db.Column(db.Integer, default=MIN_LEVEL, nullable=False)
    level_reached_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    child = relationship('Child', back_populates='evolution_slots')

    __table_args__ = (
        UniqueConstraint('child_id', 'slot_number', name='unique_child_slot'),
        CheckConstraint('slot_number BETWEEN 1 AND 3', name='check_slot_number'),
        CheckConstraint('level BETWEEN 1 AND 5', name='check_slot_level'),
    )

    def __repr__(self):
        return f'<EvolutionSlot child_id={self.child_id} slot={self.slot_number} level={self.level}>'

    def raise_level(self, level: int) -> bool:
        """Raise the stored level to ``level`` if higher. Returns True if changed."""
        if level <= self.level:
            return False
        self.level = level
        self.level_reached_at = utc_now()
        return True

    def to_dict(self) -> dict:
        return {
            'slot_number': self.slot_number,
            'level': self.level,
            'is_max_level': self.level == MAX_LEVEL,
            'level_reached_at': self.level_reached_at.isoformat() if self.level_reached_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }


def _refuse_update(mapper, connection, target):
    session = object_session(target)
    if session is not None and session.is_modified(target, include_collections=False):
        raise ImmutableRecordError(f'{target.__class__.__name__} {target.id} is append-only')


def _refuse_delete(mapper, connection, target):
    raise ImmutableRecordError(f'{target.__class__.__name__} {target.id} is append-only')


for _model in (LedgerEntry, GoalHistory):
    event.listen(_model, 'before_update', _refuse_update)
    event.listen(_model, 'before_delete', _refuse_delete)
