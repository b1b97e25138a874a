"""
Match result lifecycle.

    scheduled -> submitted -> approved -> locked

Locking a submitted match approves it in the same step. Every operation checks
all of its preconditions before writing. The status change itself is a
conditional UPDATE on the status and version the caller read, so two requests
racing on the same match cannot both win.

After the status change commits, standings are recomputed from the queue row
written in the same transaction and an audit entry is appended. Either of
those failing leaves the primary change in place and is reported as a
warning on an otherwise successful result.
"""

from typing import Optional

from flask import current_app
import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.actions import ActionResult, league_action
from app.audit import record_audit_entry
from app.authz import check_match_submitter, check_league_owner, enforce
from app.errors import NotFoundError, InvalidStateError, ValidationError, UnauthenticatedError
from app.models import Match, MatchResult, utcnow
from app.standings.utils import enqueue_recompute, process_recompute


def _load_match(match_id) -> Match:
    match = db.session.get(Match, match_id) if match_id is not None else None
    if match is None:
        raise NotFoundError('Match not found.')
    return match


def _transition(match: Match, expected_statuses, new_status, stale_message):
    """
    Move a match to new_status if it is still in one of expected_statuses at
    the version that was read. Nothing is committed here.
    """
    outcome = db.session.execute(
        sa.update(Match)
        .where(
            Match.id == match.id,
            Match.status.in_(expected_statuses),
            Match.version == match.version,
        )
        .values(status=new_status, version=Match.version + 1)
        .execution_options(synchronize_session=False)
    )
    if outcome.rowcount != 1:
        raise InvalidStateError(stale_message)


def _commit_primary(description):
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.error(f"Failed to {description}")
        raise


def _follow_up(actor, match_id, season_id, league_id, task_id, action, payload, done_message):
    """
    Run the recompute and append the audit entry for a committed change.

    Returns:
        List of warnings for the steps that failed
    """
    warnings = []

    if not process_recompute(task_id):
        warnings.append(f'{done_message} but failed to recompute standings; standings may be stale.')

    try:
        record_audit_entry(actor, league_id, 'match', match_id, action, payload)
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to append audit entry {action} for match {match_id}: {str(e)}")
        warnings.append(f'{done_message} but the audit log entry could not be written.')

    return warnings


def _optional_int(value, label):
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{label} must be a whole number.')
    return value


def validate_submission(season, points_a, points_b, innings=None, high_run_a=None, high_run_b=None):
    """
    Check submitted numbers against the season's scoring rules.

    Returns:
        Tuple of (innings, high_run_a, high_run_b) as they should be stored

    Raises:
        ValidationError: describing the first rule broken
    """
    if points_a is None or points_b is None:
        raise ValidationError('Points are required for both players.')
    points_a = _optional_int(points_a, 'Points')
    points_b = _optional_int(points_b, 'Points')
    innings = _optional_int(innings, 'Innings')
    high_run_a = _optional_int(high_run_a, 'High run')
    high_run_b = _optional_int(high_run_b, 'High run')

    if points_a < 0 or points_b < 0:
        raise ValidationError('Points cannot be negative.')

    if season.innings_required and (innings is None or innings <= 0):
        raise ValidationError('Innings are required and must be greater than zero.')
    if innings is not None and innings < 0:
        raise ValidationError('Innings cannot be negative.')

    if (high_run_a is not None and high_run_a < 0) or (high_run_b is not None and high_run_b < 0):
        raise ValidationError('High runs cannot be negative.')
    if high_run_a is not None and high_run_a > points_a:
        raise ValidationError('Player A high run cannot exceed their points scored.')
    if high_run_b is not None and high_run_b > points_b:
        raise ValidationError('Player B high run cannot exceed their points scored.')

    # Checked above either way, only stored when the season tracks them
    if not season.high_run_enabled:
        return innings, None, None

    return innings, high_run_a, high_run_b


@league_action
def submit_result(actor, match_id, points_a, points_b, innings=None,
                  high_run_a=None, high_run_b=None, notes: Optional[str] = None) -> ActionResult:
    """
    Record the result of a scheduled match.

    Allowed for either participant and the league owner (owner only when the
    season uses scorekeeper submissions).
    """
    if actor is None:
        raise UnauthenticatedError('You must be signed in to submit a result.')

    match = _load_match(match_id)
    season = match.season
    league_id = season.league_id

    enforce(
        check_match_submitter(actor, match),
        'You are not authorized to submit results for this match.',
        f'Attempted to submit a result for match {match.id} without being a participant or owner',
        actor,
    )

    if match.status != 'scheduled' or match.result is not None:
        raise InvalidStateError('This match has already had a result submitted.')

    innings, high_run_a, high_run_b = validate_submission(
        season, points_a, points_b, innings, high_run_a, high_run_b
    )

    notes = (notes or '').strip() or None
    max_notes = current_app.config.get('MAX_NOTES_LENGTH', 1000)
    if notes is not None and len(notes) > max_notes:
        raise ValidationError(f'Notes cannot be longer than {max_notes} characters.')

    # All checks passed; nothing has been written before this point
    _transition(match, ['scheduled'], 'submitted', 'This match has already had a result submitted.')
    result = MatchResult(
        match_id=match.id,
        points_a=points_a,
        points_b=points_b,
        innings=innings,
        high_run_a=high_run_a,
        high_run_b=high_run_b,
        submitted_by_user_id=actor.id,
        submitted_at=utcnow(),
        notes=notes,
    )
    db.session.add(result)
    task = enqueue_recompute(season.id, 'submitted_result')
    _commit_primary(f"submit result for match {match.id}")

    current_app.logger.info(f"Result {points_a}-{points_b} submitted for match {match.id} by user {actor.id}")

    warnings = _follow_up(
        actor, match.id, season.id, league_id, task.id, 'submitted_result',
        {
            'points_a': points_a,
            'points_b': points_b,
            'innings': innings,
            'high_run_a': high_run_a,
            'high_run_b': high_run_b,
        },
        'Result submitted',
    )
    return ActionResult.ok(warnings=warnings, match_id=match.id, status='submitted')


@league_action
def approve_result(actor, match_id) -> ActionResult:
    """Approve a submitted result. League owner only."""
    if actor is None:
        raise UnauthenticatedError('You must be signed in.')

    match = _load_match(match_id)
    season = match.season
    league_id = season.league_id

    enforce(
        check_league_owner(actor, season.league),
        'Only the league owner can approve results.',
        f'Non-owner attempted to approve match {match.id}',
        actor,
    )

    if match.status != 'submitted':
        raise InvalidStateError('Match must be in submitted status to approve.')
    result = match.result
    if result is None:
        raise InvalidStateError('Match has no submitted result to approve.')

    _transition(match, ['submitted'], 'approved', 'Match must be in submitted status to approve.')
    result.approved_by_user_id = actor.id
    result.approved_at = utcnow()
    task = enqueue_recompute(season.id, 'approved_result')
    _commit_primary(f"approve result for match {match.id}")

    current_app.logger.info(f"Result for match {match.id} approved by user {actor.id}")

    warnings = _follow_up(
        actor, match.id, season.id, league_id, task.id, 'approved_result',
        {'previous_status': 'submitted'},
        'Result approved',
    )
    return ActionResult.ok(warnings=warnings, match_id=match.id, status='approved')


@league_action
def lock_result(actor, match_id) -> ActionResult:
    """
    Lock a submitted or approved result. League owner only.

    Locking straight from submitted stamps the approval too, with the same
    timestamp as the lock.
    """
    if actor is None:
        raise UnauthenticatedError('You must be signed in.')

    match = _load_match(match_id)
    season = match.season
    league_id = season.league_id

    enforce(
        check_league_owner(actor, season.league),
        'Only the league owner can lock results.',
        f'Non-owner attempted to lock match {match.id}',
        actor,
    )

    previous_status = match.status
    if previous_status not in ('submitted', 'approved'):
        raise InvalidStateError('Match must be in submitted or approved status to lock.')
    result = match.result
    if result is None:
        raise InvalidStateError('Match has no submitted result to lock.')

    _transition(match, [previous_status], 'locked',
                'Match must be in submitted or approved status to lock.')
    now = utcnow()
    if previous_status == 'submitted':
        result.approved_by_user_id = actor.id
        result.approved_at = now
    result.locked_by_user_id = actor.id
    result.locked_at = now
    task = enqueue_recompute(season.id, 'locked_result')
    _commit_primary(f"lock result for match {match.id}")

    current_app.logger.info(f"Result for match {match.id} locked by user {actor.id} (was {previous_status})")

    warnings = _follow_up(
        actor, match.id, season.id, league_id, task.id, 'locked_result',
        {'previous_status': previous_status, 'implicit_approval': previous_status == 'submitted'},
        'Result locked',
    )
    return ActionResult.ok(warnings=warnings, match_id=match.id, status='locked')
