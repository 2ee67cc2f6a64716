"""
APScheduler setup for ChoreMint.

Two jobs keep the derived goal and evolution state in line with the ledger:
goal reconciliation on a short interval and the evolution slot audit once a
night.
"""

import atexit
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

# One scheduler per process, shared by every app created in it
scheduler = BackgroundScheduler()


def _job_definitions(app):
    """(job id, display name, callable, trigger) for every scheduled job."""
    from choremint.jobs.goal_reconcile import reconcile_goals
    from choremint.jobs.evolution_audit import audit_evolution_slots

    timezone = app.config.get('SCHEDULER_TIMEZONE', 'UTC')
    interval = app.config.get('RECONCILE_INTERVAL_MINUTES', 5)

    return [
        ('reconcile_goals', 'Reconcile goal achievements',
         reconcile_goals, IntervalTrigger(minutes=interval)),
        ('audit_evolution_slots', 'Audit evolution slots',
         audit_evolution_slots, CronTrigger(hour=2, minute=0, timezone=timezone)),
    ]


def _in_app_context(app, func):
    """Run ``func`` inside an app context so it can reach the database."""
    def run_job():
        with app.app_context():
            return func()
    run_job.__name__ = func.__name__
    return run_job


def init_scheduler(app):
    """
    Register the ChoreMint jobs and start the scheduler.

    Skipped when SCHEDULER_ENABLED is false or the app is in testing mode.

    Args:
        app: Flask application instance
    """
    if not app.config.get('SCHEDULER_ENABLED', True):
        logger.info("Background scheduler disabled via configuration")
        return

    if app.config.get('TESTING', False):
        logger.info("Background scheduler disabled in testing mode")
        return

    for job_id, name, func, trigger in _job_definitions(app):
        scheduler.add_job(
            _in_app_context(app, func),
            trigger=trigger,
            id=job_id,
            name=name,
            replace_existing=True
        )
        logger.debug(f"Scheduled job {job_id}: {trigger}")

    if not scheduler.running:
        scheduler.start()
        atexit.register(shutdown_scheduler)
    logger.info("Background scheduler running with %d jobs", len(scheduler.get_jobs()))


def shutdown_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")


def get_job_status():
    """
    Describe the scheduled jobs for the health endpoint.

    Returns:
        list: One dict per job with its id, name, next run and trigger
    """
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
            'trigger': str(job.trigger)
        }
        for job in scheduler.get_jobs()
    ]
