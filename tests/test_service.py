"""
快照组装服务测试
"""
from datetime import datetime

import pytest

from backoffice.ops_metrics.config import MetricsConfig
from backoffice.ops_metrics.repository import InMemoryRecordStore, StoreUnavailableError
from backoffice.ops_metrics.service import DashboardMetricsService, average_order_value

from conftest import NOW, iso_ago, iso_ahead


def _collections():
    return {
        "orders": [
            {"_id": "o1", "createdAt": iso_ago(days=1), "totalPrice": 10000, "paymentStatus": "결제완료", "status": "배송준비중"},
            {"_id": "o2", "createdAt": iso_ago(days=2), "totalPrice": 20000, "paymentStatus": "paid", "status": "배송완료"},
            {
                "_id": "o3",
                "createdAt": iso_ago(hours=30),
                "totalPrice": 5000,
                "paymentStatus": "결제대기",
                "status": "대기중",
                "cancelRequest": {"status": "요청"},
            },
            {"_id": "o4", "createdAt": iso_ago(hours=26), "totalPrice": 7000, "paymentStatus": "결제대기", "status": "대기중"},
            {"_id": "o5", "totalPrice": 1000, "paymentStatus": "결제완료", "status": "배송완료"},
        ],
        "stringing_applications": [
            {"_id": "a1", "createdAt": iso_ago(days=4, hours=1), "status": "in review", "totalPrice": 30000},
        ],
        "rental_orders": [
            {"_id": "r1", "createdAt": iso_ago(days=3), "status": "out", "dueAt": iso_ahead(hours=2), "amount": {"fee": 15000}},
        ],
        "packageOrders": [
            {"_id": "p1", "createdAt": iso_ago(hours=1), "totalPrice": 9000, "paymentStatus": "결제완료"},
        ],
    }


class FailingStore(InMemoryRecordStore):
    def fetch(self, collection, since=None):
        if collection == "rental_orders":
            raise StoreUnavailableError(collection, ConnectionError("connection reset"))
        return super().fetch(collection, since)


def test_average_order_value():
    assert average_order_value(30000, 2) == 15000
    assert average_order_value(10001, 2) == 5001
    assert average_order_value(5000, 0) == 0


@pytest.mark.asyncio
class TestDashboardMetricsService:
    """快照组装"""

    async def test_snapshot_scenario(self, make_service):
        snapshot = (await make_service(_collections()).build()).as_dict()

        assert snapshot["version"] == 1
        assert snapshot["generatedAt"] == "2024-03-15T03:00:00Z"
        orders = snapshot["kpi"]["orders"]
        assert orders["total"] == 5
        assert orders["paid7d"] == 2
        assert orders["revenue7d"] == 30000
        assert orders["aov7d"] == 15000

        queue = snapshot["kpi"]["queue"]
        assert queue["cancelRequests"] == 1
        assert queue["paymentPending24h"] == 1
        assert queue["shippingPending"] == 1
        assert queue["rentalDueSoon"] == 1
        assert queue["rentalOverdue"] == 0
        assert queue["stringingAging3d"] == 1

        details = snapshot["queueDetails"]
        assert details["rentalDueSoon"][0]["dueInHours"] == 2
        assert details["stringingAging"][0]["ageDays"] == 4
        assert details["paymentPending24h"][0]["id"] == "o4"
        assert details["paymentPending24h"][0]["hoursAgo"] == 26
        assert details["cancelRequests"][0]["id"] == "o3"
        assert details["shippingPending"][0]["href"] == "/admin/orders/o1/shipping-update"

    async def test_series(self, make_service):
        series = (await make_service(_collections()).build()).as_dict()["series"]

        assert series["days"] == 30
        assert series["fromYmd"] == "2024-02-15"
        assert series["toYmd"] == "2024-03-15"
        for name in ("dailyRevenue", "dailyRevenueBySource", "dailyOrders", "dailyApplications", "dailySignups", "dailyReviews"):
            assert len(series[name]) == 30, name
        assert sum(point["value"] for point in series["dailyRevenue"]) == 39000
        last = series["dailyRevenueBySource"][-1]
        assert last == {"date": "2024-03-15", "orders": 0, "applications": 0, "packages": 9000, "total": 9000}
        for point, stacked in zip(series["dailyRevenue"], series["dailyRevenueBySource"]):
            assert point["value"] == stacked["orders"] + stacked["applications"] + stacked["packages"]
        # o5 has no createdAt: counted in totals, never on the chart
        assert sum(point["value"] for point in series["dailyOrders"]) == 4

    async def test_idempotent(self, make_service):
        service = make_service(_collections())

        first = await service.build()
        second = await service.build()

        assert first == second
        assert first.as_dict() == second.as_dict()

    async def test_store_failure_propagates(self):
        service = DashboardMetricsService(FailingStore(_collections()), clock=lambda: NOW)

        with pytest.raises(StoreUnavailableError):
            await service.build()

    async def test_empty_store(self, make_service):
        snapshot = (await make_service().build()).as_dict()

        assert snapshot["kpi"]["orders"]["aov7d"] == 0
        assert all(value == 0 for value in snapshot["kpi"]["queue"].values())
        assert all(point["value"] == 0 for point in snapshot["series"]["dailyRevenue"])
        assert snapshot["queueDetails"]["cancelRequests"] == []
        assert snapshot["settlements"]["latest"] is None
        assert snapshot["top"] == {"products7d": [], "brands7d": []}

    async def test_queue_cap_across_entities(self, make_service):
        collections = {
            "orders": [
                {"_id": f"o{i}", "createdAt": iso_ago(hours=2 * i + 1), "cancelRequest": {"status": "requested"}}
                for i in range(7)
            ],
            "stringing_applications": [
                {"_id": f"a{i}", "createdAt": iso_ago(hours=2 * i), "cancelRequest": {"status": "요청"}}
                for i in range(5)
            ],
        }

        snapshot = (await make_service(collections).build()).as_dict()

        assert snapshot["kpi"]["queue"]["cancelRequests"] == 12
        items = snapshot["queueDetails"]["cancelRequests"]
        assert len(items) == 10
        assert [item["createdAt"] for item in items] == sorted(item["createdAt"] for item in items)
        assert items[0]["id"] == "o6"

    async def test_config_and_explicit_now(self, make_service):
        service = make_service(_collections(), config=MetricsConfig(chart_days=7, cache_max_age_seconds=60))

        snapshot = await service.build(now=datetime(2024, 3, 20, 3, 0))

        assert snapshot.cache_control == "private, max-age=0, s-maxage=60"
        data = snapshot.as_dict()
        assert data["generatedAt"] == "2024-03-20T03:00:00Z"
        assert data["series"]["days"] == 7
        assert data["series"]["toYmd"] == "2024-03-20"
        # the rental is past due five days later
        assert data["kpi"]["queue"]["rentalOverdue"] == 1
        assert data["kpi"]["queue"]["rentalDueSoon"] == 0

    async def test_package_cancel_request_is_queued(self, make_service):
        collections = {
            "packageOrders": [
                {
                    "_id": "pk1",
                    "createdAt": iso_ago(hours=30),
                    "totalPrice": 90000,
                    "paymentStatus": "결제대기",
                    "cancelRequest": {"status": "요청"},
                    "userSnapshot": {"name": "이영희"},
                }
            ]
        }

        snapshot = (await make_service(collections).build()).as_dict()

        assert snapshot["kpi"]["queue"]["cancelRequests"] == 1
        assert snapshot["kpi"]["queue"]["paymentPending24h"] == 0
        item = snapshot["queueDetails"]["cancelRequests"][0]
        assert item["kind"] == "package"
        assert item["href"] == "/admin/packages/pk1"
        assert item["name"] == "이영희"
