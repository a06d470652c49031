"""
Tests for Refresh Coordination.

============================================================
PURPOSE
============================================================
1. Debouncing of refresh requests
2. Retry after failed refreshes
3. Decoding of pg_notify payloads
4. One full worker cycle

============================================================
"""

import json
import pytest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

from principal_engagement.refresh import (
    RefreshCoordinator,
    drain_notifications,
    listen,
    process_notifications,
)
from principal_engagement.types import RollupSourceError


CHANNEL = "principal_activity_refresh_needed"


# ============================================================
# FIXTURES
# ============================================================

class FakeConnection:
    """Minimal stand-in for a psycopg2 connection."""

    def __init__(self, notifications=None):
        self.notifies = list(notifications or [])
        self.poll_count = 0
        self.executed = []

    def poll(self):
        self.poll_count += 1

    def cursor(self):
        cursor = MagicMock()
        cursor.execute.side_effect = self.executed.append
        return cursor


def notification(payload, channel=CHANNEL):
    return SimpleNamespace(channel=channel, payload=payload, pid=4242)


def change(table, op="INSERT"):
    return notification(json.dumps({
        "trigger_table": table,
        "trigger_op": op,
        "timestamp": "2025-06-01T12:00:00+00:00",
    }))


@pytest.fixture
def now():
    return datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


# ============================================================
# COORDINATOR
# ============================================================

class TestRefreshCoordinator:

    def test_nothing_pending(self, now):
        refresh = MagicMock()
        coordinator = RefreshCoordinator(refresh, min_interval_seconds=60)

        assert coordinator.run_pending(now) is False
        refresh.assert_not_called()

    def test_first_request_runs_immediately(self, now):
        refresh = MagicMock()
        coordinator = RefreshCoordinator(refresh, min_interval_seconds=60)

        coordinator.request("interactions")
        assert coordinator.run_pending(now) is True

        refresh.assert_called_once_with()
        assert coordinator.pending is False
        assert coordinator.last_refresh_at == now
        assert coordinator.refresh_count == 1

    def test_requests_within_interval_are_debounced(self, now):
        refresh = MagicMock()
        coordinator = RefreshCoordinator(refresh, min_interval_seconds=60)

        coordinator.request("interactions")
        coordinator.run_pending(now)

        coordinator.request("opportunities")
        coordinator.request("opportunities")
        coordinator.request("organizations")
        assert coordinator.run_pending(now + timedelta(seconds=30)) is False
        assert coordinator.pending_sources == {"opportunities", "organizations"}

        assert coordinator.run_pending(now + timedelta(seconds=60)) is True
        assert refresh.call_count == 2

    def test_failure_keeps_request_pending(self, now):
        refresh = MagicMock(side_effect=[RollupSourceError("lock timeout"), None])
        coordinator = RefreshCoordinator(refresh, min_interval_seconds=60)

        coordinator.request("product_principals")
        with pytest.raises(RollupSourceError):
            coordinator.run_pending(now)

        assert coordinator.pending is True
        assert coordinator.last_refresh_at is None

        assert coordinator.run_pending(now + timedelta(seconds=1)) is True
        assert coordinator.pending is False

    def test_zero_interval(self, now):
        refresh = MagicMock()
        coordinator = RefreshCoordinator(refresh, min_interval_seconds=0)

        for _ in range(3):
            coordinator.request()
            assert coordinator.run_pending(now) is True
        assert refresh.call_count == 3


# ============================================================
# NOTIFICATIONS
# ============================================================

class TestNotifications:

    def test_drain_decodes_payloads(self):
        conn = FakeConnection([change("interactions"), change("opportunities", "UPDATE")])
        payloads = drain_notifications(conn, CHANNEL)

        assert conn.poll_count == 1
        assert [p["trigger_table"] for p in payloads] == ["interactions", "opportunities"]
        assert payloads[1]["trigger_op"] == "UPDATE"
        assert conn.notifies == []

    def test_drain_skips_other_channels(self):
        conn = FakeConnection([change("interactions"), notification("{}", channel="other")])

        assert len(drain_notifications(conn, CHANNEL)) == 1

    def test_drain_keeps_non_json_payloads(self):
        conn = FakeConnection([notification("refresh please"), notification("[1, 2]"), notification("")])
        payloads = drain_notifications(conn, CHANNEL)

        assert payloads == [{"raw": "refresh please"}, {"raw": [1, 2]}, {}]

    def test_listen(self):
        conn = FakeConnection()
        listen(conn, CHANNEL)

        assert conn.executed == [f"LISTEN {CHANNEL}"]

    def test_listen_rejects_bad_channel(self):
        with pytest.raises(ValueError):
            listen(FakeConnection(), "x; DROP TABLE organizations")


class TestWorkerCycle:

    def test_notifications_trigger_one_refresh(self, now):
        refresh = MagicMock()
        coordinator = RefreshCoordinator(refresh, min_interval_seconds=60)
        conn = FakeConnection([change("interactions"), change("organizations"), change("interactions")])

        assert process_notifications(coordinator, conn, CHANNEL, now) is True
        refresh.assert_called_once_with()

    def test_quiet_cycle(self, now):
        refresh = MagicMock()
        coordinator = RefreshCoordinator(refresh, min_interval_seconds=60)

        assert process_notifications(coordinator, FakeConnection(), CHANNEL, now) is False
        refresh.assert_not_called()

    def test_payload_without_table(self, now):
        refresh = MagicMock()
        coordinator = RefreshCoordinator(refresh, min_interval_seconds=60)
        conn = FakeConnection([notification("not json")])

        assert process_notifications(coordinator, conn, CHANNEL, now) is True
