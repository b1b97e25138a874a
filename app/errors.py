from flask import jsonify
from app import db


class ActionError(Exception):
    """
    A user-presentable failure raised by an action before it writes anything.

    Each subclass carries the error kind reported to callers and the HTTP
    status the routes answer with.
    """
    kind = 'error'
    status_code = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class UnauthenticatedError(ActionError):
    kind = 'unauthenticated'
    status_code = 401


class ForbiddenError(ActionError):
    kind = 'forbidden'
    status_code = 403


class NotFoundError(ActionError):
    kind = 'not_found'
    status_code = 404


class InvalidStateError(ActionError):
    kind = 'invalid_state'
    status_code = 409


class ValidationError(ActionError):
    kind = 'validation'
    status_code = 422


class DependencyError(ActionError):
    kind = 'dependency_failure'
    status_code = 503


def register_error_handlers(app):
    """Register error handlers with the Flask application"""

    @app.errorhandler(401)
    def unauthorized_error(error):
        return jsonify({'success': False, 'error': 'You must be signed in.'}), 401

    @app.errorhandler(403)
    def forbidden_error(error):
        return jsonify({'success': False, 'error': 'You do not have permission to access this resource.'}), 403

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'success': False, 'error': 'Not found.'}), 404

    @app.errorhandler(429)
    def rate_limited_error(error):
        return jsonify({'success': False, 'error': 'Too many requests. Please try again later.'}), 429

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({'success': False, 'error': 'An internal error occurred.'}), 500
