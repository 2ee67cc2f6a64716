"""
Goal reconciliation job.
"""

import logging

logger = logging.getLogger(__name__)


def reconcile_goals():
    """
    Re-run goal processing for every child.

    Runs every few minutes. Completes achievements that are missing their
    rollover and catches crossings whose post-append hook failed after the
    ledger entry was stored.

    Returns:
        dict: Summary counts from GoalService.reconcile_all
    """
    logger.info("Starting goal reconciliation")

    # Import inside function to avoid circular imports and to get app context
    from choremint.services.goal_service import GoalService

    summary = GoalService.reconcile_all()

    if summary['failed']:
        logger.error(f"Goal reconciliation finished with failures: {summary}")
    elif summary['achieved'] or summary['completed']:
        logger.info(f"Goal reconciliation applied changes: {summary}")
    else:
        logger.info(f"Goal reconciliation complete: all {summary['checked']} children up to date")

    return summary
