"""
League administration actions.

Every action here takes the acting user explicitly, is restricted to the
league owner (except creating a league), and appends an audit entry once its
write has committed.
"""

from datetime import date, datetime, timedelta
from typing import Optional

from flask import current_app
import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.actions import ActionResult, league_action
from app.audit import record_audit_entry
from app.authz import require_league_owner
from app.errors import NotFoundError, ValidationError, InvalidStateError, UnauthenticatedError
from app.models import League, Season, Week, Player, SeasonPlayer, Venue, Match, User
from app.standings.utils import enqueue_recompute, process_recompute


def _get_or_404(model, object_id, message):
    obj = db.session.get(model, object_id) if object_id is not None else None
    if obj is None:
        raise NotFoundError(message)
    return obj


def _clean(value: Optional[str]):
    value = (value or '').strip()
    return value or None


def _audit(actor, league_id, entity_type, entity_id, action, payload, done_message):
    """Append the audit entry, returning warnings if it could not be written."""
    try:
        record_audit_entry(actor, league_id, entity_type, entity_id, action, payload)
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Failed to append audit entry {action} for {entity_type} {entity_id}: {str(e)}")
        return [f'{done_message} but the audit log entry could not be written.']
    return []


def build_weeks(start_date: date, count: int):
    """
    Consecutive week-long periods starting on start_date.

    Returns:
        List of (week_number, start_date, end_date) tuples
    """
    weeks = []
    for index in range(count):
        week_start = start_date + timedelta(days=7 * index)
        weeks.append((index + 1, week_start, week_start + timedelta(days=6)))
    return weeks


@league_action
def create_league(actor, name) -> ActionResult:
    """Create a league owned by the caller."""
    if actor is None:
        raise UnauthenticatedError('You must be signed in.')
    name = _clean(name)
    if not name:
        raise ValidationError('League name is required.')

    league = League(name=name, owner_user_id=actor.id)
    db.session.add(league)
    db.session.commit()

    current_app.logger.info(f"League '{name}' created by user {actor.id}")
    warnings = _audit(actor, league.id, 'league', league.id, 'created_league', {'name': name}, 'League created')
    return ActionResult.ok(warnings=warnings, league_id=league.id)


@league_action
def create_season(actor, league_id, name, start_date, end_date, race_to_default=None,
                  innings_required=False, high_run_enabled=False,
                  submission_rule='player_submits', handicap_method='adjusted_race_to') -> ActionResult:
    """
    Create a season and its weeks.

    SEASON_WEEK_COUNT weeks are created, the first starting on start_date and
    each following one seven days later.
    """
    league = _get_or_404(League, league_id, 'League not found.')
    require_league_owner(actor, league, 'Only the league owner can create seasons.')

    name = _clean(name)
    if not name:
        raise ValidationError('Season name is required.')
    if not isinstance(start_date, date) or not isinstance(end_date, date):
        raise ValidationError('Season start and end dates are required.')
    if end_date < start_date:
        raise ValidationError('Season end date must be on or after its start date.')
    if race_to_default is None:
        race_to_default = current_app.config.get('DEFAULT_RACE_TO', 7)
    if race_to_default <= 0:
        raise ValidationError('Race-to must be greater than zero.')
    if submission_rule not in current_app.config.get('SUBMISSION_RULES', {}):
        raise ValidationError('Unknown submission rule.')
    if handicap_method not in current_app.config.get('HANDICAP_METHODS', {}):
        raise ValidationError('Unknown handicap method.')

    season = Season(
        league_id=league.id,
        name=name,
        start_date=start_date,
        end_date=end_date,
        race_to_default=race_to_default,
        innings_required=bool(innings_required),
        high_run_enabled=bool(high_run_enabled),
        submission_rule=submission_rule,
        handicap_method=handicap_method,
    )
    db.session.add(season)
    for week_number, week_start, week_end in build_weeks(start_date, current_app.config.get('SEASON_WEEK_COUNT', 12)):
        season.weeks.append(Week(week_number=week_number, start_date=week_start, end_date=week_end))
    db.session.commit()

    current_app.logger.info(f"Season '{name}' created in league {league.id} with {len(season.weeks)} weeks")
    warnings = _audit(actor, league.id, 'season', season.id, 'created_season', {'name': name}, 'Season created')
    return ActionResult.ok(warnings=warnings, season_id=season.id)


@league_action
def add_player(actor, league_id, display_name, email=None, phone=None) -> ActionResult:
    """
    Add a player to a league.

    A player whose email matches an existing account is linked to it, which
    lets that user submit their own results.
    """
    league = _get_or_404(League, league_id, 'League not found.')
    require_league_owner(actor, league, 'Only the league owner can add players.')

    display_name = _clean(display_name)
    if not display_name:
        raise ValidationError('Player name is required.')
    email = _clean(email)
    email = email.lower() if email else None

    user = None
    if email:
        user = db.session.scalar(sa.select(User).where(sa.func.lower(User.email) == email))
        if user is not None and db.session.scalar(
            sa.select(Player).where(Player.league_id == league.id, Player.user_id == user.id)
        ):
            raise ValidationError('That account is already linked to a player in this league.')

    player = Player(
        league_id=league.id,
        display_name=display_name,
        email=email,
        phone=_clean(phone),
        user_id=user.id if user else None,
    )
    db.session.add(player)
    db.session.commit()

    current_app.logger.info(f"Player '{display_name}' added to league {league.id}")
    warnings = _audit(actor, league.id, 'player', player.id, 'added_player',
                      {'display_name': display_name}, 'Player added')
    return ActionResult.ok(warnings=warnings, player_id=player.id)


@league_action
def add_venue(actor, league_id, name, address=None, notes=None) -> ActionResult:
    league = _get_or_404(League, league_id, 'League not found.')
    require_league_owner(actor, league, 'Only the league owner can add venues.')

    name = _clean(name)
    if not name:
        raise ValidationError('Venue name is required.')

    venue = Venue(league_id=league.id, name=name, address=_clean(address), notes=_clean(notes))
    db.session.add(venue)
    db.session.commit()

    warnings = _audit(actor, league.id, 'venue', venue.id, 'added_venue', {'name': name}, 'Venue added')
    return ActionResult.ok(warnings=warnings, venue_id=venue.id)


@league_action
def enroll_player(actor, season_id, player_id, handicap_points=0) -> ActionResult:
    """Enroll a league player in a season with a starting handicap."""
    season = _get_or_404(Season, season_id, 'Season not found.')
    require_league_owner(actor, season.league, 'Only the league owner can enroll players.')

    player = db.session.get(Player, player_id) if player_id is not None else None
    if player is None or player.league_id != season.league_id:
        raise NotFoundError('Player not found in this league.')
    if season.get_enrollment(player.id) is not None:
        raise InvalidStateError('Player is already enrolled in this season.')

    enrollment = SeasonPlayer(season_id=season.id, player_id=player.id, handicap_points=handicap_points or 0)
    db.session.add(enrollment)
    db.session.commit()

    warnings = _audit(actor, season.league_id, 'season_player', enrollment.id, 'enrolled_player',
                      {'player_id': player.id, 'season_id': season.id, 'handicap_points': enrollment.handicap_points},
                      'Player enrolled')
    return ActionResult.ok(warnings=warnings, season_player_id=enrollment.id)


@league_action
def update_handicap(actor, season_player_id, handicap_points) -> ActionResult:
    """Change a season player's handicap."""
    if actor is None:
        raise UnauthenticatedError('You must be signed in.')
    enrollment = _get_or_404(SeasonPlayer, season_player_id, 'Season player not found.')
    require_league_owner(actor, enrollment.season.league, 'Only the league owner can update handicaps.')

    if handicap_points is None or isinstance(handicap_points, bool) or not isinstance(handicap_points, int):
        raise ValidationError('Handicap must be a whole number.')

    previous = enrollment.handicap_points
    enrollment.handicap_points = handicap_points
    league_id = enrollment.season.league_id
    db.session.commit()

    warnings = _audit(actor, league_id, 'season_player', season_player_id, 'updated_handicap',
                      {'handicap_points': handicap_points, 'previous_handicap_points': previous},
                      'Handicap updated')
    return ActionResult.ok(warnings=warnings, season_player_id=season_player_id)


@league_action
def schedule_match(actor, season_id, week_number, player_a_id, player_b_id,
                   venue_id=None, scheduled_at: Optional[datetime] = None,
                   race_to_points=None) -> ActionResult:
    """
    Schedule a match between two enrolled players in a season week.

    One match per pairing per week; the pairing is checked in both orders.
    """
    season = _get_or_404(Season, season_id, 'Season not found.')
    require_league_owner(actor, season.league, 'Only the league owner can schedule matches.')

    week = season.get_week(week_number)
    if week is None:
        raise ValidationError('Week not found in this season.')
    if player_a_id == player_b_id:
        raise ValidationError('A player cannot play themselves.')
    for player_id in (player_a_id, player_b_id):
        enrollment = season.get_enrollment(player_id)
        if enrollment is None or not enrollment.is_active:
            raise ValidationError('Both players must be enrolled in the season.')

    venue = None
    if venue_id is not None:
        venue = db.session.get(Venue, venue_id)
        if venue is None or venue.league_id != season.league_id:
            raise ValidationError('Venue not found in this league.')

    if race_to_points is None:
        race_to_points = season.race_to_default
    if race_to_points <= 0:
        raise ValidationError('Race-to must be greater than zero.')

    existing = db.session.scalar(
        sa.select(Match).where(
            Match.week_id == week.id,
            sa.or_(
                sa.and_(Match.player_a_id == player_a_id, Match.player_b_id == player_b_id),
                sa.and_(Match.player_a_id == player_b_id, Match.player_b_id == player_a_id),
            )
        )
    )
    if existing is not None:
        raise InvalidStateError('These players already have a match scheduled this week.')

    match = Match(
        season_id=season.id,
        week_id=week.id,
        player_a_id=player_a_id,
        player_b_id=player_b_id,
        venue_id=venue.id if venue else None,
        scheduled_at=scheduled_at,
        race_to_points=race_to_points,
        status='scheduled',
    )
    db.session.add(match)
    db.session.commit()

    warnings = _audit(actor, season.league_id, 'match', match.id, 'scheduled_match',
                      {'week_number': week_number, 'player_a_id': player_a_id,
                       'player_b_id': player_b_id, 'race_to_points': race_to_points},
                      'Match scheduled')
    return ActionResult.ok(warnings=warnings, match_id=match.id)


@league_action
def request_standings_recompute(actor, season_id) -> ActionResult:
    """Queue and run a standings rebuild for a season on the owner's request."""
    season = _get_or_404(Season, season_id, 'Season not found.')
    require_league_owner(actor, season.league, 'Only the league owner can recompute standings.')

    league_id = season.league_id
    task = enqueue_recompute(season.id, 'manual')
    db.session.commit()

    warnings = []
    if not process_recompute(task.id):
        warnings.append('Recompute queued but failed to run; standings may be stale.')
    warnings += _audit(actor, league_id, 'season', season_id, 'recomputed_standings',
                       {'task_id': task.id}, 'Standings recomputed')
    return ActionResult.ok(warnings=warnings, season_id=season_id)
