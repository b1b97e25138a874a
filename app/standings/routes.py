# Season standings routes
from flask import request, jsonify, current_app
from flask_login import login_required
import sqlalchemy as sa

from app import db
from app.standings import bp
from app.standings.utils import get_season_standings
from app.main.routes import resolve_season
from app.models import StandingsRecompute
from app.utils import serialize_season, serialize_standing


@bp.route('/')
@login_required
def season_standings():
    """
    Standings table for a season, ranked by wins then points per inning.

    Query Parameters:
        season_id: Season to show; defaults to the newest season of the
            caller's leagues
    """
    season = resolve_season(request.args.get('season_id', type=int))
    if season is None:
        return jsonify({'success': True, 'season': None, 'standings': []})

    try:
        standings = get_season_standings(season.id)
        pending = db.session.scalar(
            sa.select(sa.func.count(StandingsRecompute.id)).where(
                StandingsRecompute.season_id == season.id,
                StandingsRecompute.status == 'pending',
            )
        )

        return jsonify({
            'success': True,
            'season': serialize_season(season),
            'standings': [
                serialize_standing(standing, rank=position)
                for position, standing in enumerate(standings, start=1)
            ],
            'stale': bool(pending),
        })

    except Exception as e:
        current_app.logger.error(f"Error loading standings for season {season.id}: {str(e)}")
        return jsonify({
            'success': False,
            'error': 'An error occurred while loading standings'
        }), 500
