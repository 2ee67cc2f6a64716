"""Flask CLI commands for ChoreMint administration.

Usage:
    flask --app choremint.app evolution-backfill
    flask --app choremint.app reconcile-goals
    flask --app choremint.app audit-evolution
"""

import click


def register_commands(app):
    """Register CLI commands on the app."""

    @app.cli.command('evolution-backfill')
    def evolution_backfill():
        """Seed evolution slots for children created before slots existed."""
        from choremint.services.evolution_service import EvolutionService
        seeded = EvolutionService.backfill_all()
        click.echo(f'Seeded evolution slots for {seeded} children')

    @app.cli.command('reconcile-goals')
    def reconcile_goals_command():
        """Re-run goal processing for every child."""
        from choremint.jobs.goal_reconcile import reconcile_goals
        summary = reconcile_goals()
        click.echo(
            f"Checked {summary['checked']} children: {summary['achieved']} achieved, "
            f"{summary['completed']} completed, {summary['failed']} failed"
        )

    @app.cli.command('audit-evolution')
    def audit_evolution_command():
        """Report goal history and evolution slot discrepancies."""
        from choremint.jobs.evolution_audit import audit_evolution_slots
        discrepancies = audit_evolution_slots()
        if not discrepancies:
            click.echo('No discrepancies found')
            return
        for item in discrepancies:
            click.echo(str(item))
        raise SystemExit(1)
