# Match routes: viewing a match and submitting its result
from flask import jsonify, current_app
from flask_login import login_required, current_user

from app import db
from app.matches import bp
from app.matches.forms import SubmitResultForm
from app.matches.lifecycle import submit_result
from app.authz import get_actor, check_match_submitter, Access
from app.main.routes import require_member
from app.models import Match
from app.utils import action_response, form_error_response, serialize_match, serialize_season


@bp.route('/<int:match_id>')
@login_required
def view_match(match_id):
    """
    Match details with its result and what the caller may do next.
    """
    match = db.session.get(Match, match_id)
    if not match:
        return jsonify({'success': False, 'error': 'Match not found.'}), 404
    require_member(match.season.league)

    try:
        is_owner = match.season.league.owner_user_id == current_user.id
        can_submit = (
            match.status == 'scheduled'
            and check_match_submitter(current_user, match) is Access.AUTHORIZED
        )

        return jsonify({
            'success': True,
            'match': serialize_match(match),
            'season': serialize_season(match.season),
            'permissions': {
                'can_submit': can_submit,
                'can_approve': is_owner and match.status == 'submitted',
                'can_lock': is_owner and match.status in ('submitted', 'approved'),
            },
        })

    except Exception as e:
        current_app.logger.error(f"Error loading match {match_id}: {str(e)}")
        return jsonify({
            'success': False,
            'error': 'An error occurred while loading the match'
        }), 500


@bp.route('/<int:match_id>/submit', methods=['POST'])
@login_required
def submit_match_result(match_id):
    """
    Submit a result for a scheduled match.
    """
    form = SubmitResultForm()
    if not form.validate_on_submit():
        return form_error_response(form)

    try:
        result = submit_result(
            get_actor(),
            match_id,
            points_a=form.points_a.data,
            points_b=form.points_b.data,
            innings=form.innings.data,
            high_run_a=form.high_run_a.data,
            high_run_b=form.high_run_b.data,
            notes=form.notes.data,
        )
        return action_response(result)

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error submitting result for match {match_id}: {str(e)}")
        return jsonify({
            'success': False,
            'error': 'An error occurred while submitting the result'
        }), 500
