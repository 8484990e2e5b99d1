"""Pytest configuration and fixtures for sysinsight tests."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import pytest

from sysinsight.models import Snapshot
from sysinsight.storage.history_store import HistoryStore

# Monday, 2 March 2026, noon UTC
NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


@pytest.fixture(scope="session", autouse=True)
def setup_telemetry():
    """Setup OpenTelemetry once per test session, without exporters."""
    from sysinsight.observability.tracing import setup_telemetry

    setup_telemetry(service_name="sysinsight-test", enable_console_export=False)

    yield


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Fixed clock at NOW."""
    return lambda: NOW


@pytest.fixture
def make_snapshot() -> Callable[..., Snapshot]:
    """Factory for snapshots, timestamped NOW unless given."""

    def factory(timestamp: datetime | None = None, **fields: Any) -> Snapshot:
        return Snapshot(timestamp=timestamp or NOW, **fields)

    return factory


@pytest.fixture
async def store() -> HistoryStore:
    """Fresh in-memory history store for each test."""
    history = HistoryStore(database_path=":memory:")
    await history.initialize()
    yield history
    await history.close()
