"""
各实体聚合函数测试
"""
from backoffice.ops_metrics.aggregators import (
    aggregate_community,
    aggregate_inventory,
    aggregate_orders,
    aggregate_outbox,
    aggregate_passes,
    aggregate_points,
    aggregate_rentals,
    aggregate_reviews,
    aggregate_settlements,
    aggregate_users,
)
from backoffice.ops_metrics.repository import InMemoryRecordStore

from conftest import iso_ago, iso_ahead


def _line(product_id, brand, price, quantity):
    return {"productId": product_id, "name": f"String {product_id}", "brand": brand, "kind": "product", "price": price, "quantity": quantity}


class TestOrders:
    """订单 KPI、分布与排行"""

    def test_kpi_scenario(self, context):
        store = InMemoryRecordStore(
            {
                "orders": [
                    {"_id": "o1", "createdAt": iso_ago(days=1), "totalPrice": 10000, "paymentStatus": "결제완료", "status": "배송중"},
                    {"_id": "o2", "createdAt": iso_ago(days=2), "totalPrice": 20000, "paymentStatus": "paid", "status": "배송완료"},
                    {"_id": "o3", "createdAt": iso_ago(days=3), "totalPrice": 5000, "paymentStatus": "결제대기", "status": "대기중"},
                    {"_id": "o4", "createdAt": iso_ago(days=40), "totalPrice": 40000, "paymentStatus": "결제완료", "status": "배송완료"},
                ]
            }
        )

        bundle = aggregate_orders(store, context)

        assert bundle.totals["total"] == 4
        assert bundle.totals["delta7d"] == 3
        assert bundle.totals["paid7d"] == 2
        assert bundle.totals["revenue7d"] == 30000
        assert bundle.totals["revenueMonth"] == 30000
        labels = {row.label: row.count for row in bundle.distributions["orderPaymentStatus"]}
        assert labels == {"결제완료": 2, "결제대기": 1}
        assert [row["id"] for row in bundle.details["recent"]] == ["o1", "o2", "o3", "o4"]

    def test_top_rankings(self, context):
        store = InMemoryRecordStore(
            {
                "orders": [
                    {
                        "_id": "o1",
                        "createdAt": iso_ago(days=1),
                        "paymentStatus": "결제완료",
                        "items": [_line("p1", "Luxilon", 5000, 2), _line("p2", "Babolat", 20000, 1)],
                    },
                    {
                        "_id": "o2",
                        "createdAt": iso_ago(days=1),
                        "paymentStatus": "결제대기",
                        "items": [_line("p1", "Luxilon", 5000, 10)],
                    },
                    {
                        "_id": "o3",
                        "createdAt": iso_ago(days=2),
                        "paymentStatus": "paid",
                        "items": [_line("p1", "Luxilon", 5000, 1), {"kind": "service", "price": 99999, "quantity": 1}],
                    },
                ]
            }
        )

        bundle = aggregate_orders(store, context)

        products = bundle.details["topProducts"]
        assert [row["productId"] for row in products] == ["p2", "p1"]
        assert products[1]["qty"] == 3
        assert products[1]["revenue"] == 15000
        assert [row["brand"] for row in bundle.details["topBrands"]] == ["Babolat", "Luxilon"]


class TestRentals:
    """租赁收入不含押金"""

    def test_revenue_excludes_deposit(self, context):
        store = InMemoryRecordStore(
            {
                "rental_orders": [
                    {
                        "_id": "r1",
                        "createdAt": iso_ago(days=1),
                        "status": "paid",
                        "userEmail": "kim@example.com",
                        "brand": "Wilson",
                        "amount": {"fee": 10000, "stringPrice": 5000, "stringingFee": 3000, "deposit": 100000, "total": 118000},
                    },
                    {"_id": "r2", "createdAt": iso_ago(days=2), "status": "pending", "amount": {"fee": 7000}},
                ]
            }
        )

        bundle = aggregate_rentals(store, context)

        assert bundle.totals["paid7d"] == 1
        assert bundle.totals["revenue7d"] == 18000
        assert bundle.details["recent"][0]["total"] == 118000
        assert [row["name"] for row in bundle.details["recent"]] == ["kim@example.com", "고객"]


class TestOtherSources:
    """其他数据源的汇总"""

    def test_reviews(self, context):
        store = InMemoryRecordStore(
            {
                "reviews": [
                    {"_id": "v1", "createdAt": iso_ago(days=1), "rating": 5, "productId": "p1"},
                    {"_id": "v2", "createdAt": iso_ago(days=10), "rating": 4},
                    {"_id": "v3", "createdAt": iso_ago(days=1), "rating": 1, "isDeleted": True},
                ]
            }
        )

        totals = aggregate_reviews(store, context).totals

        assert totals["total"] == 2
        assert totals["delta7d"] == 1
        assert totals["avg"] == 4.5
        assert totals["five"] == 1
        assert totals["byType"] == {"product": 1, "service": 1}

    def test_users(self, context):
        store = InMemoryRecordStore(
            {
                "users": [
                    {"_id": "u1", "createdAt": iso_ago(days=1), "lastLoginAt": iso_ago(hours=2), "oauth": {"kakao": {"id": 1}}},
                    {"_id": "u2", "createdAt": iso_ago(days=20), "oauth": {"naver": {"id": "n"}}},
                    {"_id": "u3", "createdAt": iso_ago(days=30)},
                ]
            }
        )

        totals = aggregate_users(store, context).totals

        assert totals["total"] == 3
        assert totals["delta7d"] == 1
        assert totals["active7d"] == 1
        assert totals["byProvider"] == {"local": 1, "kakao": 1, "naver": 1}

    def test_points(self, context):
        store = InMemoryRecordStore(
            {
                "point_transactions": [
                    {"createdAt": iso_ago(days=1), "amount": 500},
                    {"createdAt": iso_ago(days=2), "amount": -200},
                    {"createdAt": iso_ago(days=9), "amount": 10000},
                ]
            }
        )

        assert aggregate_points(store, context).totals == {"issued7d": 500, "spent7d": 200}

    def test_community(self, context):
        store = InMemoryRecordStore(
            {
                "community_posts": [{"createdAt": iso_ago(days=1)}, {"createdAt": iso_ago(days=8)}],
                "community_comments": [{"createdAt": iso_ago(hours=1)}],
                "community_reports": [
                    {"_id": "c1", "createdAt": iso_ago(hours=3), "status": "pending", "commentId": "x", "reason": "스팸" * 100},
                    {"_id": "c2", "createdAt": iso_ago(hours=1), "status": "resolved"},
                ],
            }
        )

        bundle = aggregate_community(store, context)

        assert bundle.totals == {"posts7d": 1, "comments7d": 1, "pendingReports": 1}
        reports = bundle.details["recentReports"]
        assert [row["id"] for row in reports] == ["c2", "c1"]
        assert reports[1]["kind"] == "comment"
        assert len(reports[1]["reason"]) == 120

    def test_inventory_excludes_deleted(self, context):
        store = InMemoryRecordStore(
            {
                "products": [
                    {"_id": "p1", "name": "A", "inventory": {"stock": 2, "lowStock": 5}},
                    {"_id": "p2", "name": "B", "inventory": {"stock": 1, "lowStock": 5}},
                    {"_id": "p3", "name": "C", "inventory": {"stock": 0}},
                    {"_id": "p4", "name": "D", "inventory": {"stock": 0}, "isDeleted": True},
                    {"_id": "p5", "name": "E", "inventory": {"stock": 50, "lowStock": 5}},
                ],
                "used_rackets": [{"status": "inactive"}, {"status": "active"}],
            }
        )

        bundle = aggregate_inventory(store, context)

        assert bundle.totals == {"lowStockProducts": 2, "outOfStockProducts": 1, "inactiveRackets": 1}
        assert [row["id"] for row in bundle.details["lowStock"]] == ["p2", "p1"]
        assert [row["id"] for row in bundle.details["outOfStock"]] == ["p3"]

    def test_outbox(self, context):
        store = InMemoryRecordStore(
            {
                "notifications_outbox": [
                    {"_id": "m1", "createdAt": iso_ago(hours=5), "status": "failed", "eventType": "order.paid", "error": "x" * 500},
                    {"_id": "m2", "createdAt": iso_ago(hours=1), "status": "queued", "eventType": "order.paid"},
                    {"_id": "m3", "createdAt": iso_ago(hours=9), "status": "sent"},
                ]
            }
        )

        bundle = aggregate_outbox(store, context)

        assert bundle.totals == {"outboxQueued": 1, "outboxFailed": 1}
        backlog = bundle.queues["outboxBacklog"]
        assert backlog.count == 2
        assert [item.id for item in backlog.items] == ["m1", "m2"]
        assert len(backlog.items[0].as_dict()["error"]) == 140

    def test_passes(self, context):
        store = InMemoryRecordStore(
            {
                "users": [{"_id": "u1", "name": "홍길동"}],
                "service_passes": [
                    {"_id": "s1", "userId": "u1", "status": "active", "expiresAt": iso_ahead(days=10), "packageSize": 10, "remainingCount": 4, "orderId": "po1"},
                    {"_id": "s2", "userId": "u9", "status": "active", "expiresAt": iso_ahead(days=40)},
                    {"_id": "s3", "userId": "u9", "status": "expired", "expiresAt": iso_ahead(days=3)},
                ],
            }
        )

        queue = aggregate_passes(store, context).queues["passExpiringSoon"]

        assert queue.count == 1
        item = queue.items[0].as_dict()
        assert item["name"] == "홍길동 · 10회권"
        assert item["daysLeft"] == 10
        assert item["remainingCount"] == 4
        assert item["href"] == "/admin/packages/po1"

    def test_settlements(self, context):
        store = InMemoryRecordStore(
            {
                "settlements": [
                    {"yyyymm": "202401", "lastGeneratedAt": "2024-02-01T00:00:00Z"},
                    {"yyyymm": "202402", "lastGeneratedAt": "2024-03-01T00:00:00Z", "lastGeneratedBy": "admin"},
                ]
            }
        )

        totals = aggregate_settlements(store, context).totals

        assert totals["currentYyyymm"] == "202403"
        assert totals["prevYyyymm"] == "202402"
        assert totals["hasCurrentSnapshot"] is False
        assert totals["hasPrevSnapshot"] is True
        assert totals["latest"] == {
            "yyyymm": "202402",
            "lastGeneratedAt": "2024-03-01T00:00:00Z",
            "lastGeneratedBy": "admin",
        }
