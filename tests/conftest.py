"""
Shared fixtures: per-test database, frozen clock, engine
"""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from order_lifecycle.engine import OrderLifecycle
from order_lifecycle.kernel.audit import InMemoryAuditSink
from order_lifecycle.kernel.event_store import SQLiteEventStore
from order_lifecycle.kernel.policy import LifecyclePolicy
from order_lifecycle.kernel.time import TestTimeProvider


@pytest.fixture
def temp_db(tmp_path: Path) -> Path:
    """Database path inside pytest's per-test directory (WAL side files go there too)"""
    return tmp_path / "orders.db"


@pytest.fixture
def event_store(temp_db: Path) -> SQLiteEventStore:
    """Empty event log on the per-test database"""
    return SQLiteEventStore(temp_db)


@pytest.fixture
def test_time() -> TestTimeProvider:
    """
    Frozen clock at 2025-01-15 12:00 UTC

    Mid-month, so a month rollover is always an explicit step in a test.
    """
    return TestTimeProvider(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def policy() -> LifecyclePolicy:
    """Stock policy values"""
    return LifecyclePolicy()


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def engine(
    temp_db: Path,
    test_time: TestTimeProvider,
    policy: LifecyclePolicy,
    audit_sink: InMemoryAuditSink,
) -> OrderLifecycle:
    """Engine over a temporary database with a frozen clock and in-memory audit sink"""
    return OrderLifecycle(
        temp_db,
        policy=policy,
        time_provider=test_time,
        audit_sink=audit_sink,
    )
