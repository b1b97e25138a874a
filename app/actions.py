"""
Result type and wrapper shared by every state-changing action.

Actions take the caller identity explicitly, raise an ActionError for any
precondition failure, and return an ActionResult. A result with warnings is a
degraded success: the primary write was kept but a follow-up step failed.
"""

from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.errors import ActionError, DependencyError


@dataclass
class ActionResult:
    success: bool
    error: Optional[str] = None
    error_kind: Optional[str] = None
    status_code: int = 200
    warnings: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, warnings=None, **data):
        return cls(success=True, warnings=list(warnings or []), data=data)

    @classmethod
    def failure(cls, error: ActionError):
        return cls(success=False, error=error.message, error_kind=error.kind,
                   status_code=error.status_code)

    @property
    def degraded(self):
        return self.success and bool(self.warnings)

    def to_dict(self):
        body = {'success': self.success}
        if self.error is not None:
            body['error'] = self.error
            body['error_kind'] = self.error_kind
        if self.warnings:
            body['warnings'] = self.warnings
        body.update(self.data)
        return body


def league_action(f):
    """
    Decorator turning raised ActionErrors into failed ActionResults.

    The session is rolled back on every failure so a rejected action leaves
    nothing behind. A database error escaping the action counts as a
    dependency failure.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except ActionError as e:
            db.session.rollback()
            return ActionResult.failure(e)
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f"Database error in {f.__name__}: {str(e)}")
            return ActionResult.failure(
                DependencyError('The league database is unavailable. Please try again.')
            )
    return decorated_function
