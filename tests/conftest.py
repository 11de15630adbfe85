"""
共享测试夹具
"""
from datetime import datetime, timedelta, timezone

import pytest

from backoffice.ops_metrics.repository import InMemoryRecordStore
from backoffice.ops_metrics.service import DashboardMetricsService

# 2024-03-15 12:00 KST
NOW = datetime(2024, 3, 15, 3, 0, tzinfo=timezone.utc)


def iso_ago(**delta) -> str:
    return (NOW - timedelta(**delta)).isoformat().replace("+00:00", "Z")


def iso_ahead(**delta) -> str:
    return (NOW + timedelta(**delta)).isoformat().replace("+00:00", "Z")


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def context():
    service = DashboardMetricsService(InMemoryRecordStore())
    return service.build_context(NOW)


@pytest.fixture
def make_service():
    def _make(collections=None, config=None):
        store = InMemoryRecordStore(collections or {})
        return DashboardMetricsService(store, config=config, clock=lambda: NOW)

    return _make
