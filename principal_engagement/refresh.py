"""
Principal Engagement - Refresh Coordination.

============================================================
PURPOSE
============================================================
Keeps the principal_activity_summary view fresh.

Statement triggers on organizations, opportunities,
interactions and product_principals call pg_notify on the
principal_activity_refresh_needed channel with a JSON
payload:

    {"trigger_table": "...", "trigger_op": "...", "timestamp": "..."}

A worker LISTENs on that channel, turns notifications into
refresh requests and refreshes the view at most once per
min_interval_seconds, however many rows changed.

============================================================
"""

import json
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class RefreshCoordinator:
    """
    Debounces refresh requests.

    ============================================================
    BEHAVIOR
    ============================================================
    - request() only marks a refresh as pending
    - run_pending() refreshes when something is pending and the
      minimum interval since the last refresh has elapsed
    - A failed refresh leaves the request pending for the next
      cycle and re-raises the error

    ============================================================
    """

    def __init__(
        self,
        refresh_fn: Callable[[], Any],
        min_interval_seconds: float = 60.0,
    ):
        """
        Args:
            refresh_fn: Performs the actual refresh
            min_interval_seconds: Minimum spacing between refreshes
        """
        self._refresh_fn = refresh_fn
        self._min_interval = timedelta(seconds=min_interval_seconds)
        self._pending_sources: Set[str] = set()
        self._last_refresh_at: Optional[datetime] = None
        self.refresh_count = 0

    @property
    def pending(self) -> bool:
        return bool(self._pending_sources)

    @property
    def pending_sources(self) -> Set[str]:
        return set(self._pending_sources)

    @property
    def last_refresh_at(self) -> Optional[datetime]:
        return self._last_refresh_at

    def request(self, source: str = "manual") -> None:
        """Mark a refresh as needed because of a change in source."""
        if source not in self._pending_sources:
            logger.debug(f"Refresh requested by {source}")
        self._pending_sources.add(source)

    def is_due(self, now: datetime) -> bool:
        if not self._pending_sources:
            return False
        if self._last_refresh_at is None:
            return True
        return now - self._last_refresh_at >= self._min_interval

    def run_pending(self, now: datetime) -> bool:
        """
        Refresh if a request is pending and the interval has passed.

        Returns:
            True if a refresh ran
        """
        if not self.is_due(now):
            return False

        sources = sorted(self._pending_sources)
        try:
            self._refresh_fn()
        except Exception as e:
            logger.error(f"Refresh for {', '.join(sources)} failed, will retry: {e}")
            raise

        self._pending_sources.clear()
        self._last_refresh_at = now
        self.refresh_count += 1
        logger.info(f"Refreshed activity summary after changes in {', '.join(sources)}")
        return True


# ============================================================
# POSTGRES NOTIFICATIONS
# ============================================================


def _check_channel(channel: str) -> str:
    if not _IDENTIFIER.match(channel):
        raise ValueError(f"Invalid notification channel: {channel!r}")
    return channel


def listen(dbapi_connection: Any, channel: str) -> None:
    """
    Subscribe a psycopg2 connection to a notification channel.

    The connection must be in autocommit mode for notifications
    to be delivered.
    """
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute(f"LISTEN {_check_channel(channel)}")
    finally:
        cursor.close()
    logger.info(f"Listening on channel {channel}")


def drain_notifications(dbapi_connection: Any, channel: str) -> List[Dict[str, Any]]:
    """
    Collect pending notifications for a channel.

    Payloads that are not JSON objects are returned as
    {"raw": payload}. Notifications for other channels are
    dropped.
    """
    dbapi_connection.poll()

    payloads: List[Dict[str, Any]] = []
    while dbapi_connection.notifies:
        notification = dbapi_connection.notifies.pop(0)
        if notification.channel != channel:
            continue

        try:
            payload = json.loads(notification.payload) if notification.payload else {}
        except json.JSONDecodeError:
            logger.warning(f"Non-JSON payload on {channel}: {notification.payload!r}")
            payload = {"raw": notification.payload}

        if not isinstance(payload, dict):
            payload = {"raw": payload}
        payloads.append(payload)

    return payloads


def process_notifications(
    coordinator: RefreshCoordinator,
    dbapi_connection: Any,
    channel: str,
    now: datetime,
) -> bool:
    """
    Run one worker cycle: drain notifications, then refresh if due.

    Returns:
        True if a refresh ran
    """
    for payload in drain_notifications(dbapi_connection, channel):
        coordinator.request(str(payload.get("trigger_table", "unknown")))
    return coordinator.run_pending(now)
