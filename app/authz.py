"""
Authorization guard for league resources.

Checks are pure: they read the resource's owner and participants and compare
them with the caller passed in. Nothing here looks up the request's session;
routes resolve the caller with get_actor() and hand it to the actions.
"""

import enum

from flask_login import current_user

from app.audit import audit_log_security_event
from app.errors import UnauthenticatedError, ForbiddenError


class Access(enum.Enum):
    UNAUTHENTICATED = 'unauthenticated'
    FORBIDDEN = 'forbidden'
    AUTHORIZED = 'authorized'


def get_actor():
    """The signed-in user for this request, or None."""
    if current_user.is_authenticated:
        return current_user._get_current_object()
    return None


def _is_owner(actor, league):
    return league is not None and league.owner_user_id == actor.id


def check_league_owner(actor, league) -> Access:
    """Owner-only check used by every administrative action."""
    if actor is None:
        return Access.UNAUTHENTICATED
    if not _is_owner(actor, league):
        return Access.FORBIDDEN
    return Access.AUTHORIZED


def check_match_submitter(actor, match) -> Access:
    """
    Check whether the caller may submit a result for a match.

    The league owner always may. Participants may unless the season is run
    with scorekeeper submissions.
    """
    if actor is None:
        return Access.UNAUTHENTICATED
    league = match.season.league
    if _is_owner(actor, league):
        return Access.AUTHORIZED
    if match.season.submission_rule == 'scorekeeper_submits':
        return Access.FORBIDDEN
    if actor.id in match.participant_user_ids():
        return Access.AUTHORIZED
    return Access.FORBIDDEN


def enforce(access: Access, forbidden_message: str, description: str = '', actor=None,
            unauthenticated_message: str = 'You must be signed in.'):
    """Raise the action error matching a denied access decision."""
    if access is Access.UNAUTHENTICATED:
        raise UnauthenticatedError(unauthenticated_message)
    if access is Access.FORBIDDEN:
        audit_log_security_event('ACCESS_DENIED', description or forbidden_message, actor)
        raise ForbiddenError(forbidden_message)


def require_league_owner(actor, league, forbidden_message='You are not authorized to perform this action.'):
    enforce(
        check_league_owner(actor, league),
        forbidden_message,
        f'Non-owner attempted an owner action on league {league.id if league else None}',
        actor,
    )


def check_league_member(actor, league) -> Access:
    """Read access: the owner and players linked to the caller's account."""
    if actor is None:
        return Access.UNAUTHENTICATED
    if _is_owner(actor, league):
        return Access.AUTHORIZED
    if any(player.league_id == league.id for player in actor.player_profiles):
        return Access.AUTHORIZED
    return Access.FORBIDDEN
