"""
Background jobs for ChoreMint.

This package contains scheduled jobs that run in the background:
- goal_reconcile: Re-run goal processing for every child
- evolution_audit: Audit goal history and evolution slot consistency
"""

from choremint.jobs.goal_reconcile import reconcile_goals
from choremint.jobs.evolution_audit import audit_evolution_slots

__all__ = [
    'reconcile_goals',
    'audit_evolution_slots'
]
