# Main read-only routes for the CueBook application
from flask import request, abort, jsonify, current_app
from flask_login import current_user, login_required
import sqlalchemy as sa

from app.main import bp
from app import db
from app.audit import audit_log_security_event
from app.authz import check_league_member, check_league_owner, Access
from app.models import League, Season, Player, Match, SeasonStanding
from app.utils import (
    serialize_league, serialize_season, serialize_week, serialize_match,
    serialize_player, serialize_player_details, serialize_standing
)


def member_leagues(user):
    """Leagues the user owns or plays in, by name."""
    leagues = {league.id: league for league in user.owned_leagues}
    for player in user.player_profiles:
        leagues.setdefault(player.league_id, player.league)
    return sorted(leagues.values(), key=lambda league: league.name)


def require_member(league):
    if check_league_member(current_user, league) is not Access.AUTHORIZED:
        audit_log_security_event('ACCESS_DENIED',
                                 f'Non-member attempted to view league {league.id}', current_user)
        abort(403)


def resolve_season(season_id):
    """
    The requested season, or the newest season of any of the caller's leagues.
    """
    if season_id is not None:
        season = db.session.get(Season, season_id)
        if not season:
            abort(404)
        require_member(season.league)
        return season

    league_ids = [league.id for league in member_leagues(current_user)]
    if not league_ids:
        return None
    return db.session.scalar(
        sa.select(Season)
        .where(Season.league_id.in_(league_ids))
        .order_by(Season.start_date.desc(), Season.id.desc())
        .limit(1)
    )


def player_matches_query(player_ids):
    return (
        sa.select(Match)
        .where(sa.or_(Match.player_a_id.in_(player_ids), Match.player_b_id.in_(player_ids)))
    )


@bp.route("/")
@bp.route("/index")
def index():
    """
    Application info and who is signed in
    """
    return jsonify({
        'name': 'CueBook',
        'authenticated': current_user.is_authenticated,
        'user_id': current_user.id if current_user.is_authenticated else None,
    })


@bp.route("/dashboard")
@login_required
def dashboard():
    """
    Leagues the user owns, their player profiles and their matches
    """
    try:
        profiles = current_user.player_profiles
        player_ids = [player.id for player in profiles]

        upcoming = []
        recent = []
        if player_ids:
            upcoming = db.session.scalars(
                player_matches_query(player_ids)
                .where(Match.status == 'scheduled')
                .order_by(Match.scheduled_at.asc(), Match.id.asc())
                .limit(10)
            ).all()
            recent = db.session.scalars(
                player_matches_query(player_ids)
                .where(Match.status != 'scheduled')
                .order_by(Match.id.desc())
                .limit(10)
            ).all()

        return jsonify({
            'success': True,
            'owned_leagues': [serialize_league(league) for league in current_user.owned_leagues],
            'player_profiles': [
                dict(serialize_player(player), league_name=player.league.name) for player in profiles
            ],
            'upcoming_matches': [serialize_match(match, include_result=False) for match in upcoming],
            'recent_matches': [serialize_match(match) for match in recent],
        })

    except Exception as e:
        current_app.logger.error(f"Error loading dashboard for user {current_user.id}: {str(e)}")
        return jsonify({
            'success': False,
            'error': 'An error occurred while loading the dashboard'
        }), 500


@bp.route("/schedule")
@login_required
def schedule():
    """
    Weeks of a season with their matches
    """
    season = resolve_season(request.args.get('season_id', type=int))
    if season is None:
        return jsonify({'success': True, 'season': None, 'weeks': []})

    try:
        return jsonify({
            'success': True,
            'season': serialize_season(season),
            'weeks': [serialize_week(week, include_matches=True) for week in season.weeks],
        })

    except Exception as e:
        current_app.logger.error(f"Error loading schedule for season {season.id}: {str(e)}")
        return jsonify({
            'success': False,
            'error': 'An error occurred while loading the schedule'
        }), 500


@bp.route("/players")
@login_required
def players():
    """
    Players of a league
    """
    league_id = request.args.get('league_id', type=int)
    if league_id is None:
        leagues = member_leagues(current_user)
        if not leagues:
            return jsonify({'success': True, 'league': None, 'players': []})
        league = leagues[0]
    else:
        league = db.session.get(League, league_id)
        if not league:
            abort(404)
        require_member(league)

    return jsonify({
        'success': True,
        'league': serialize_league(league),
        'players': [serialize_player(player) for player in league.players],
    })


@bp.route("/players/<int:player_id>")
@login_required
def player_detail(player_id):
    """
    Player profile with current standing and recent matches.

    Contact details are shown to the league owner and the player themselves.
    """
    player = db.session.get(Player, player_id)
    if not player:
        abort(404)
    league = player.league
    require_member(league)

    try:
        show_private_data = (
            player.user_id == current_user.id
            or check_league_owner(current_user, league) is Access.AUTHORIZED
        )

        season = league.current_season()
        standing = None
        enrollment = None
        if season is not None:
            standing = db.session.scalar(
                sa.select(SeasonStanding).where(
                    SeasonStanding.season_id == season.id,
                    SeasonStanding.player_id == player.id,
                )
            )
            enrollment = season.get_enrollment(player.id)

        matches = db.session.scalars(
            player_matches_query([player.id]).order_by(Match.id.desc()).limit(10)
        ).all()

        return jsonify({
            'success': True,
            'player': serialize_player_details(player, show_private_data=show_private_data),
            'season': serialize_season(season) if season else None,
            'handicap_points': enrollment.handicap_points if enrollment else None,
            'standing': serialize_standing(standing) if standing else None,
            'recent_matches': [serialize_match(match) for match in matches],
        })

    except Exception as e:
        current_app.logger.error(f"Error loading player {player_id}: {str(e)}")
        return jsonify({
            'success': False,
            'error': 'An error occurred while loading the player'
        }), 500
