# Admin routes for league owners
from flask import jsonify, current_app, abort
from flask_login import login_required, current_user
from flask_wtf import FlaskForm
import sqlalchemy as sa

from app import db
from app.admin import bp
from app.admin.forms import (
    LeagueForm, SeasonForm, PlayerForm, VenueForm, EnrollPlayerForm,
    HandicapForm, ScheduleMatchForm
)
from app.admin import utils as admin_actions
from app.audit import audit_log_security_event
from app.authz import get_actor, check_league_owner, Access
from app.matches.lifecycle import approve_result, lock_result
from app.models import League, Match, Season, StandingsRecompute
from app.utils import (
    action_response, form_error_response, serialize_league, serialize_season,
    serialize_player_details, serialize_match
)


def _run(action_name, action, *args, **kwargs):
    """Call an admin action, answering 500 for anything it did not anticipate."""
    try:
        return action_response(action(*args, **kwargs))
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error in {action_name}: {str(e)}")
        return jsonify({
            'success': False,
            'error': f'An error occurred while trying to {action_name.replace("_", " ")}'
        }), 500


# =============================================================================
# LEAGUE OVERVIEW
# =============================================================================

@bp.route('/leagues/<int:league_id>')
@login_required
def league_overview(league_id):
    """
    Owner's league page: seasons, players, venues and results awaiting approval.
    """
    league = db.session.get(League, league_id)
    if not league:
        abort(404)
    if check_league_owner(current_user, league) is not Access.AUTHORIZED:
        audit_log_security_event('ACCESS_DENIED',
                                 f'Non-owner attempted to open admin page of league {league_id}', current_user)
        abort(403)

    try:
        pending = db.session.scalars(
            sa.select(Match)
            .join(Match.season)
            .where(Match.status == 'submitted', Season.league_id == league.id)
            .order_by(Match.created_at.desc())
        ).all()
        stale = db.session.scalar(
            sa.select(sa.func.count(StandingsRecompute.id))
            .where(StandingsRecompute.status == 'pending',
                   StandingsRecompute.season.has(league_id=league.id))
        )

        return jsonify({
            'success': True,
            'league': serialize_league(league),
            'seasons': [serialize_season(season) for season in league.seasons],
            'players': [serialize_player_details(player, show_private_data=True) for player in league.players],
            'venues': [{'id': venue.id, 'name': venue.name, 'address': venue.address} for venue in league.venues],
            'pending_approvals': [serialize_match(match) for match in pending],
            'pending_recomputes': stale,
        })

    except Exception as e:
        current_app.logger.error(f"Error loading league overview {league_id}: {str(e)}")
        return jsonify({
            'success': False,
            'error': 'An error occurred while loading the league'
        }), 500


# =============================================================================
# RESULT APPROVAL
# =============================================================================

@bp.route('/matches/<int:match_id>/approve', methods=['POST'])
@login_required
def approve_match_result(match_id):
    form = FlaskForm()
    if not form.validate_on_submit():
        return form_error_response(form)
    return _run('approve_result', approve_result, get_actor(), match_id)


@bp.route('/matches/<int:match_id>/lock', methods=['POST'])
@login_required
def lock_match_result(match_id):
    form = FlaskForm()
    if not form.validate_on_submit():
        return form_error_response(form)
    return _run('lock_result', lock_result, get_actor(), match_id)


# =============================================================================
# LEAGUE ADMINISTRATION
# =============================================================================

@bp.route('/leagues', methods=['POST'])
@login_required
def create_league():
    form = LeagueForm()
    if not form.validate_on_submit():
        return form_error_response(form)
    return _run('create_league', admin_actions.create_league, get_actor(), form.name.data)


@bp.route('/leagues/<int:league_id>/seasons', methods=['POST'])
@login_required
def create_season(league_id):
    form = SeasonForm()
    if not form.validate_on_submit():
        return form_error_response(form)
    return _run(
        'create_season', admin_actions.create_season, get_actor(), league_id,
        name=form.name.data,
        start_date=form.start_date.data,
        end_date=form.end_date.data,
        race_to_default=form.race_to_default.data,
        innings_required=form.innings_required.data,
        high_run_enabled=form.high_run_enabled.data,
        submission_rule=form.submission_rule.data,
    )


@bp.route('/leagues/<int:league_id>/players', methods=['POST'])
@login_required
def add_player(league_id):
    form = PlayerForm()
    if not form.validate_on_submit():
        return form_error_response(form)
    return _run(
        'add_player', admin_actions.add_player, get_actor(), league_id,
        display_name=form.display_name.data,
        email=form.email.data,
        phone=form.phone.data,
    )


@bp.route('/leagues/<int:league_id>/venues', methods=['POST'])
@login_required
def add_venue(league_id):
    form = VenueForm()
    if not form.validate_on_submit():
        return form_error_response(form)
    return _run(
        'add_venue', admin_actions.add_venue, get_actor(), league_id,
        name=form.name.data,
        address=form.address.data,
        notes=form.notes.data,
    )


@bp.route('/seasons/<int:season_id>/players', methods=['POST'])
@login_required
def enroll_player(season_id):
    form = EnrollPlayerForm()
    if not form.validate_on_submit():
        return form_error_response(form)
    return _run(
        'enroll_player', admin_actions.enroll_player, get_actor(), season_id,
        player_id=form.player_id.data,
        handicap_points=form.handicap_points.data or 0,
    )


@bp.route('/season-players/<int:season_player_id>/handicap', methods=['POST'])
@login_required
def update_handicap(season_player_id):
    form = HandicapForm()
    if not form.validate_on_submit():
        return form_error_response(form)
    return _run(
        'update_handicap', admin_actions.update_handicap, get_actor(), season_player_id,
        form.handicap_points.data,
    )


@bp.route('/seasons/<int:season_id>/matches', methods=['POST'])
@login_required
def schedule_match(season_id):
    form = ScheduleMatchForm()
    if not form.validate_on_submit():
        return form_error_response(form)
    return _run(
        'schedule_match', admin_actions.schedule_match, get_actor(), season_id,
        week_number=form.week_number.data,
        player_a_id=form.player_a_id.data,
        player_b_id=form.player_b_id.data,
        venue_id=form.venue_id.data,
        scheduled_at=form.scheduled_at.data,
        race_to_points=form.race_to_points.data,
    )


@bp.route('/seasons/<int:season_id>/standings/recompute', methods=['POST'])
@login_required
def recompute_standings(season_id):
    form = FlaskForm()
    if not form.validate_on_submit():
        return form_error_response(form)
    return _run('recompute_standings', admin_actions.request_standings_recompute, get_actor(), season_id)
