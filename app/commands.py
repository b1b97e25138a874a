"""
Maintenance commands registered on the flask CLI.

    flask standings process [--season-id ID]
    flask standings recompute SEASON_ID
    flask create-league OWNER_EMAIL NAME
"""

import click
from flask.cli import AppGroup, with_appcontext
import sqlalchemy as sa

from app import db
from app.audit import audit_log_system_event
from app.admin.utils import create_league
from app.models import Season, User
from app.standings.utils import enqueue_recompute, process_recompute, process_pending_recomputes


standings_cli = AppGroup('standings', help='Standings recompute queue.')


@standings_cli.command('process')
@click.option('--season-id', type=int, default=None, help='Only process tasks for this season.')
def process_command(season_id):
    """Retry every pending standings recompute."""
    completed, failed = process_pending_recomputes(season_id)
    audit_log_system_event('RECOMPUTE', f'Processed recompute queue: {completed} completed, {failed} failed')
    click.echo(f'{completed} completed, {failed} failed')
    if failed:
        raise SystemExit(1)


@standings_cli.command('recompute')
@click.argument('season_id', type=int)
def recompute_command(season_id):
    """Queue and run a rebuild of one season's standings."""
    if db.session.get(Season, season_id) is None:
        raise click.ClickException(f'Season {season_id} does not exist')

    task = enqueue_recompute(season_id, 'cli')
    db.session.commit()
    if not process_recompute(task.id):
        audit_log_system_event('RECOMPUTE', f'Recompute of season {season_id} failed (task {task.id})')
        raise click.ClickException(f'Recompute failed; task {task.id} left pending')

    audit_log_system_event('RECOMPUTE', f'Recomputed standings of season {season_id}')
    click.echo(f'Standings of season {season_id} recomputed')


@click.command('create-league')
@click.argument('owner_email')
@click.argument('name')
@with_appcontext
def create_league_command(owner_email, name):
    """Create a league owned by an existing account."""
    owner = db.session.scalar(sa.select(User).where(User.email == owner_email.strip().lower()))
    if owner is None:
        raise click.ClickException(f'No account with email {owner_email}')

    result = create_league(owner, name)
    if not result.success:
        raise click.ClickException(result.error)

    audit_log_system_event('CLI', f"League '{name}' created for {owner.email}")
    click.echo(f"Created league {result.data['league_id']}")
    for warning in result.warnings:
        click.echo(f'Warning: {warning}', err=True)
