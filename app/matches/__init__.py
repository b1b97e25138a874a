"""
Matches blueprint.

Holds the match result lifecycle (scheduled -> submitted -> approved -> locked)
and the participant-facing routes for viewing a match and submitting its
result. Approval and locking are owner actions exposed by the admin blueprint.
"""

from flask import Blueprint

bp = Blueprint('matches', __name__)

from app.matches import routes
