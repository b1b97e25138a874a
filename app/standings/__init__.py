"""
Standings blueprint.

Season standings are derived data: they are rebuilt from approved and locked
results by recompute_season_standings() and only ever read by the routes.
"""

from flask import Blueprint

bp = Blueprint('standings', __name__)

from app.standings import routes
