"""
Audit logging service for tracking changes made through the API.
"""
from mrp.models import AuditLog
from flask import g, has_request_context
import logging

logger = logging.getLogger(__name__)


def current_username() -> str:
    """Acting user from the request context, 'system' outside a request."""
    if has_request_context():
        return g.get('username') or 'system'
    return 'system'


def log_action(
    session,
    action: str,
    module: str,
    record_id: str = None,
    summary: str = None,
    username: str = None
):
    """
    Log an auditable action to the database and commit it.

    Called after the business transaction has committed. Failures are logged
    and rolled back; they never reach the caller.

    Args:
        session: Database session
        action: What happened (e.g., 'created', 'kit', 'completed')
        module: Affected area (e.g., 'workorder', 'inventory', 'serial')
        record_id: Key of the affected record
        summary: Human readable description
        username: Acting user (defaults to the request's X-Username)
    """
    try:
        entry = AuditLog(
            username=username or current_username(),
            action=action,
            module=module,
            record_id=str(record_id) if record_id is not None else None,
            summary=summary,
        )
        session.add(entry)
        session.commit()
        logger.info(f"Audit log created: {action} {module} {record_id} by {entry.username}")

    except Exception as e:
        session.rollback()
        logger.error(f"Failed to create audit log: {e}")
        # Don't raise exception - audit failures should not break business logic
