"""
Change notification publisher.
Publishes {table, record_id, action} events on a Redis pub/sub channel so
connected clients can refresh. Degrades to a no-op when Redis is disabled or
unreachable.
"""

import logging
import json
from typing import Any, Optional, Dict
from datetime import datetime, date, timezone
from decimal import Decimal

import redis
from redis.exceptions import RedisError, ConnectionError, TimeoutError
from flask import Flask

logger = logging.getLogger(__name__)


class ChangeNotifier:
    """
    Redis pub/sub publisher for record changes.

    Message pattern: {"table": ..., "record_id": ..., "action": ..., "at": ...}
    """

    def __init__(self, app: Optional[Flask] = None):
        """Initialize notifier."""
        self.client: Optional[redis.Redis] = None
        self._enabled: bool = False
        self._channel: str = "mrp:changes"

        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Initialize Redis client from Flask app config."""
        self._enabled = app.config.get('CHANGE_NOTIFY_ENABLED', True)
        self._channel = app.config.get('CHANGE_NOTIFY_CHANNEL', 'mrp:changes')
        redis_url = app.config.get('REDIS_URL', 'redis://redis:6379/0')

        if not self._enabled:
            logger.info("[NOTIFY] Change notifications are DISABLED via config")
            return

        try:
            self.client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
                socket_keepalive=True,
                retry_on_timeout=True,
                health_check_interval=30
            )
            self.client.ping()
            logger.info(f"[NOTIFY] Redis connected: {redis_url}")
        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.warning(f"[NOTIFY] Redis connection failed: {e}. Notifications DISABLED.")
            self._enabled = False
            self.client = None

    @property
    def enabled(self) -> bool:
        return self._enabled and self.client is not None

    def _serialize(self, value: Any) -> str:
        """Serialize event payload to JSON."""
        def default_handler(obj: Any) -> Any:
            if isinstance(obj, (datetime, date)):
                return obj.isoformat()
            elif isinstance(obj, Decimal):
                return str(obj)
            raise TypeError(f"Object of type {type(obj)} is not JSON serializable")
        return json.dumps(value, default=default_handler)

    def publish(self, table: str, record_id: Any, action: str, data: Optional[Dict[str, Any]] = None) -> bool:
        """Publish one change event. Returns False when nothing was sent."""
        if not self.enabled:
            return False
        try:
            event = {
                'table': table,
                'record_id': record_id,
                'action': action,
                'at': datetime.now(timezone.utc),
            }
            if data:
                event['data'] = data
            self.client.publish(self._channel, self._serialize(event))
            return True
        except (RedisError, TypeError) as e:
            logger.warning(f"[NOTIFY] Publish error: {e}")
            return False


_notifier: Optional[ChangeNotifier] = None


def init_notifier(app: Flask) -> None:
    """Initialize notifier singleton."""
    global _notifier
    _notifier = ChangeNotifier(app)
    if not hasattr(app, 'extensions'):
        app.extensions = {}
    app.extensions['change_notifier'] = _notifier


def get_notifier() -> ChangeNotifier:
    """Get notifier instance."""
    if _notifier is None:
        raise RuntimeError("Change notifier not initialized.")
    return _notifier


def notify_change(table: str, record_id: Any, action: str, data: Optional[Dict[str, Any]] = None) -> bool:
    """Fire-and-forget helper used by the blueprints."""
    if _notifier is None:
        return False
    return _notifier.publish(table, record_id, action, data)
