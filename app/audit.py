"""
Audit Logging System

Every state-changing league action appends an immutable AuditLogEntry row and
mirrors a line to instance/logs/audit.log. Authentication and security events
only go to the log file.

Usage:
    from app.audit import record_audit_entry, audit_log_security_event

    # After a successful action
    record_audit_entry(actor, league.id, 'match', match.id, 'approved_result')

    # When access is refused
    audit_log_security_event('ACCESS_DENIED', 'Non-owner attempted to lock match 12', actor)
"""

import logging
import os
from typing import Optional, Dict, Any
from flask import current_app

from app import db
from app.models import AuditLogEntry


def setup_audit_logger():
    """Setup and configure the audit logger with proper formatting and file handling."""
    audit_logger = logging.getLogger('audit')
    audit_logger.setLevel(logging.INFO)

    # Prevent duplicate log entries
    if audit_logger.hasHandlers():
        return audit_logger

    log_dir = os.path.join(current_app.instance_path, 'logs')
    os.makedirs(log_dir, exist_ok=True)

    log_file = os.path.join(log_dir, 'audit.log')
    file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
    file_handler.setLevel(logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    file_handler.setFormatter(formatter)
    audit_logger.addHandler(file_handler)

    # Prevent propagation to root logger
    audit_logger.propagate = False

    return audit_logger


def describe_actor(actor) -> str:
    """Format the acting user for audit lines."""
    if actor is not None and getattr(actor, 'id', None) is not None:
        return f"{actor.email} (ID: {actor.id})"
    return "ANONYMOUS"


def record_audit_entry(actor, league_id: Optional[int], entity_type: str, entity_id: int,
                       action: str, payload: Optional[Dict[str, Any]] = None) -> AuditLogEntry:
    """
    Append an audit entry for a completed action and commit it.

    Args:
        actor: The user who performed the action
        league_id: League the entity belongs to
        entity_type: Kind of entity ('match', 'season', 'player', ...)
        entity_id: ID of the entity acted upon
        action: Action tag, e.g. 'submitted_result'
        payload: Free-form details stored as JSON

    Raises:
        SQLAlchemyError: if the row could not be written. The caller decides
        whether that degrades the action or fails it.
    """
    entry = AuditLogEntry(
        league_id=league_id,
        actor_user_id=actor.id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        payload=payload or {},
    )
    db.session.add(entry)
    db.session.commit()

    try:
        logger = setup_audit_logger()
        logger.info(f"{action.upper()} | {entity_type} | ID: {entity_id} | "
                    f"User: {describe_actor(actor)} | League: {league_id}")
    except Exception as e:
        # The row is the record of truth; a file logging problem must not undo it
        current_app.logger.error(f"AUDIT_FAILURE | Failed to log {action} for {entity_type} {entity_id}: {str(e)}")

    return entry


def audit_log_authentication(event_type: str, email: str, success: bool):
    """
    Log authentication events.

    Args:
        event_type: Type of authentication event ('LOGIN', 'LOGOUT', 'SIGNIN_LINK', 'REGISTER')
        email: Email address involved in the event
        success: Whether the operation was successful
    """
    logger = setup_audit_logger()

    status = "SUCCESS" if success else "FAILURE"
    logger.info(f"AUTH | {event_type} | {status} | User: {email}")


def audit_log_security_event(event_type: str, description: str, actor=None):
    """
    Log security-related events.

    Args:
        event_type: Type of security event ('ACCESS_DENIED', 'INVALID_TOKEN')
        description: Human-readable description of the event
        actor: The user involved, if any
    """
    logger = setup_audit_logger()
    logger.warning(f"SECURITY | {event_type} | User: {describe_actor(actor)} | {description}")


def audit_log_system_event(event_type: str, description: str):
    """
    Log system-level events.

    Args:
        event_type: Type of system event ('RECOMPUTE', 'CLI')
        description: Human-readable description of the event
    """
    logger = setup_audit_logger()
    logger.info(f"SYSTEM | {event_type} | {description}")
