"""Service health endpoint."""
from flask import Blueprint, jsonify, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from mrp.database import get_session
from mrp.services.notify_service import get_notifier

main_bp = Blueprint('main', __name__)


def _database_ok():
    """Run a trivial query; returns (ok, error message)."""
    try:
        value = get_session().execute(text("SELECT 1")).scalar()
    except SQLAlchemyError as e:
        return False, str(e)
    return value == 1, None if value == 1 else f'unexpected SELECT 1 result {value!r}'


@main_bp.route('/health')
def health():
    """
    Liveness and dependency status.

    The database decides the HTTP status (200 healthy, 500 otherwise).
    Notifications and mail are optional and only reported.
    """
    db_ok, db_error = _database_ok()
    body = {
        'status': 'healthy' if db_ok else 'unhealthy',
        'database': 'connected' if db_ok else 'disconnected',
        'notifications': 'enabled' if get_notifier().enabled else 'disabled',
        'mail': 'suppressed' if current_app.config.get('MAIL_SUPPRESS_SEND') else 'enabled',
    }
    if db_error:
        current_app.logger.error(f"[HEALTH] Database check failed: {db_error}")
        body['error'] = db_error
    return jsonify(body), 200 if db_ok else 500
