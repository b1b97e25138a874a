# Standard library imports
from datetime import date, datetime

# Third-party imports
from flask import jsonify


def _iso(value):
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def action_response(result):
    """
    Turn an ActionResult into the JSON response every action route returns.

    Args:
        result (ActionResult): Outcome of the action

    Returns:
        tuple: (response, status code)
    """
    return jsonify(result.to_dict()), result.status_code


def form_error_response(form):
    """
    JSON response for a form that failed to validate.

    The first field error becomes the message, the rest are listed per field.
    """
    field_errors = {name: errors for name, errors in form.errors.items() if errors}
    first = next((errors[0] for errors in field_errors.values()), 'Invalid form submission.')
    return jsonify({
        'success': False,
        'error': first,
        'error_kind': 'validation',
        'field_errors': field_errors,
    }), 422


def serialize_player(player):
    if player is None:
        return None
    return {
        'id': player.id,
        'league_id': player.league_id,
        'display_name': player.display_name,
        'linked': player.user_id is not None,
    }


def serialize_player_details(player, show_private_data=False):
    """
    Player data with contact details.

    Contact details are only included for the league owner or the player
    themselves.
    """
    data = serialize_player(player)
    if show_private_data:
        data.update({
            'email': player.email,
            'phone': player.phone,
            'user_id': player.user_id,
        })
    return data


def serialize_result(result):
    if result is None:
        return None
    return {
        'points_a': result.points_a,
        'points_b': result.points_b,
        'innings': result.innings,
        'high_run_a': result.high_run_a,
        'high_run_b': result.high_run_b,
        'notes': result.notes,
        'submitted_by_user_id': result.submitted_by_user_id,
        'submitted_at': _iso(result.submitted_at),
        'approved_by_user_id': result.approved_by_user_id,
        'approved_at': _iso(result.approved_at),
        'locked_by_user_id': result.locked_by_user_id,
        'locked_at': _iso(result.locked_at),
    }


def serialize_match(match, include_result=True):
    data = {
        'id': match.id,
        'season_id': match.season_id,
        'week_number': match.week.week_number if match.week else None,
        'player_a': serialize_player(match.player_a),
        'player_b': serialize_player(match.player_b),
        'venue': {'id': match.venue.id, 'name': match.venue.name} if match.venue else None,
        'scheduled_at': _iso(match.scheduled_at),
        'race_to_points': match.race_to_points,
        'status': match.status,
    }
    if include_result:
        data['result'] = serialize_result(match.result)
    return data


def serialize_season(season):
    return {
        'id': season.id,
        'league_id': season.league_id,
        'name': season.name,
        'start_date': _iso(season.start_date),
        'end_date': _iso(season.end_date),
        'race_to_default': season.race_to_default,
        'innings_required': season.innings_required,
        'high_run_enabled': season.high_run_enabled,
        'handicap_method': season.handicap_method,
        'submission_rule': season.submission_rule,
    }


def serialize_week(week, include_matches=False):
    data = {
        'id': week.id,
        'week_number': week.week_number,
        'start_date': _iso(week.start_date),
        'end_date': _iso(week.end_date),
    }
    if include_matches:
        data['matches'] = [serialize_match(match, include_result=False) for match in week.matches]
    return data


def serialize_standing(standing, rank=None):
    data = {
        'player': serialize_player(standing.player),
        'matches_played': standing.matches_played,
        'wins': standing.wins,
        'losses': standing.losses,
        'points_for': standing.points_for,
        'points_against': standing.points_against,
        'point_differential': standing.point_differential,
        'total_innings': standing.total_innings,
        'ppi': standing.ppi,
        'high_run': standing.high_run,
        'updated_at': _iso(standing.updated_at),
    }
    if rank is not None:
        data['rank'] = rank
    return data


def serialize_league(league):
    return {
        'id': league.id,
        'name': league.name,
        'owner_user_id': league.owner_user_id,
    }
