"""
One aggregator per business entity.

Aggregators are plain blocking functions ``(store, context) -> SourceBundle``.
They share nothing but the read-only context, so the assembler can run them
side by side. A failed read propagates; there is no partial bundle.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .dataset import Number, coerce_datetime, coerce_number, coerce_text, first_text, iso_or_none
from .queues import (
    QueueSlice,
    aging_application_item,
    cancel_request_item,
    derive_queue,
    is_application_aging,
    is_cancel_requested,
    is_pass_expiring,
    is_payment_pending_overdue,
    is_rental_due_soon,
    is_rental_overdue,
    is_shipping_pending,
    outbox_item,
    pass_expiring_item,
    payment_pending_item,
    rental_due_soon_item,
    rental_overdue_item,
    shipping_pending_item,
)
from .records import (
    DomainRecord,
    project_application,
    project_order,
    project_outbox,
    project_package_order,
    project_pass,
    project_product,
    project_rental,
    project_report,
    project_review,
    project_user,
)
from .repository import (
    APPLICATIONS,
    COMMUNITY_COMMENTS,
    COMMUNITY_POSTS,
    COMMUNITY_REPORTS,
    NOTIFICATIONS_OUTBOX,
    ORDERS,
    PACKAGE_ORDERS,
    POINT_TRANSACTIONS,
    PRODUCTS,
    RENTALS,
    REVIEWS,
    SERVICE_PASSES,
    SETTLEMENTS,
    USED_RACKETS,
    USERS,
    RecordStore,
)
from .series import PartialSeries, daily_partial
from .status import PaymentStatus, payment_label
from .timewindow import TimeWindow, TimeWindowCalculator

TOP_LIMIT = 10
UNSPECIFIED_STATUS = "미지정"


@dataclass(frozen=True)
class AggregationContext:
    """Everything an aggregator may know about time. Built once per snapshot from one ``now``."""

    now: datetime
    calendar: TimeWindowCalculator
    chart: TimeWindow
    kpi_since: datetime
    month_start: datetime
    recent_limit: int = 5
    inventory_list_limit: int = 8

    def date_key(self, instant: datetime) -> str:
        return self.calendar.date_key(instant)


@dataclass(frozen=True)
class DistributionRow:
    label: str
    count: int

    def as_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "count": self.count}


@dataclass
class SourceBundle:
    source: str
    totals: Dict[str, Any] = field(default_factory=dict)
    daily: Dict[str, PartialSeries] = field(default_factory=dict)
    queues: Dict[str, QueueSlice] = field(default_factory=dict)
    distributions: Dict[str, List[DistributionRow]] = field(default_factory=dict)
    details: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)


# ----------------------------- shared helpers -----------------------------


def _since(stamp: Optional[datetime], start: datetime, end: Optional[datetime] = None) -> bool:
    if stamp is None or stamp < start:
        return False
    return end is None or stamp <= end


def _is_paid(record: DomainRecord) -> bool:
    return record.payment_status is PaymentStatus.PAID


def _paid_revenue(records: Iterable[DomainRecord]) -> Number:
    return sum(record.revenue_amount for record in records if _is_paid(record))


def _sales_totals(records: Sequence[DomainRecord], ctx: AggregationContext) -> Dict[str, Any]:
    recent = [record for record in records if _since(record.created_at, ctx.kpi_since)]
    paid = [record for record in recent if _is_paid(record)]
    return {
        "total": len(records),
        "delta7d": len(recent),
        "paid7d": len(paid),
        "revenue7d": _paid_revenue(paid),
    }


def _daily_count(records: Iterable[Any], ctx: AggregationContext, stamp: Callable[[Any], Optional[datetime]]) -> PartialSeries:
    return daily_partial(records, ctx.chart, ctx.now, stamp, ctx.date_key)


def _daily_revenue(records: Iterable[DomainRecord], ctx: AggregationContext) -> PartialSeries:
    return daily_partial(
        (record for record in records if _is_paid(record)),
        ctx.chart,
        ctx.now,
        lambda record: record.created_at,
        ctx.date_key,
        lambda record: record.revenue_amount,
    )


def _distribution(labels: Iterable[str]) -> List[DistributionRow]:
    counts: Dict[str, int] = defaultdict(int)
    for label in labels:
        counts[label] += 1
    rows = [DistributionRow(label=label, count=count) for label, count in counts.items()]
    return sorted(rows, key=lambda row: (-row.count, row.label))


def _in_month(records: Iterable[DomainRecord], ctx: AggregationContext) -> List[DomainRecord]:
    return [record for record in records if _since(record.created_at, ctx.month_start, ctx.now)]


def _recent(records: Sequence[Any], ctx: AggregationContext, to_row: Callable[[Any], Dict[str, Any]]) -> List[Dict[str, Any]]:
    dated = sorted(
        (record for record in records if record.created_at is not None),
        key=lambda record: (record.created_at, record.id),
        reverse=True,
    )
    return [to_row(record) for record in dated[: ctx.recent_limit]]


def _sale_row(record: DomainRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "createdAt": iso_or_none(record.created_at),
        "name": record.display_name,
        "totalPrice": record.total_amount,
        "status": record.raw_status,
        "paymentStatus": payment_label(record.raw_payment_status),
    }


def _common_queues(records: Sequence[DomainRecord], ctx: AggregationContext) -> Dict[str, QueueSlice]:
    return {
        "cancelRequests": derive_queue(records, is_cancel_requested, cancel_request_item),
        "paymentPending24h": derive_queue(
            records,
            lambda record: is_payment_pending_overdue(record, ctx.now),
            lambda record: payment_pending_item(record, ctx.now),
        ),
    }


# ----------------------------- orders -----------------------------


def _top_rankings(records: Sequence[DomainRecord], ctx: AggregationContext) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    products: Dict[str, Dict[str, Any]] = {}
    brands: Dict[str, Dict[str, Any]] = {}
    for record in records:
        if not _is_paid(record) or not _since(record.created_at, ctx.kpi_since):
            continue
        for line in record.items:
            if line.kind != "product":
                continue
            revenue = line.price * line.quantity
            product = products.setdefault(
                line.product_id,
                {"productId": line.product_id, "name": line.name, "brand": line.brand, "qty": 0, "revenue": 0},
            )
            product["qty"] += line.quantity
            product["revenue"] += revenue
            brand = brands.setdefault(line.brand, {"brand": line.brand, "qty": 0, "revenue": 0})
            brand["qty"] += line.quantity
            brand["revenue"] += revenue

    top_products = sorted(products.values(), key=lambda row: (-row["revenue"], -row["qty"], row["productId"]))
    top_brands = sorted(brands.values(), key=lambda row: (-row["revenue"], -row["qty"], row["brand"]))
    return top_products[:TOP_LIMIT], top_brands[:TOP_LIMIT]


def aggregate_orders(store: RecordStore, ctx: AggregationContext) -> SourceBundle:
    orders = [project_order(doc) for doc in store.fetch(ORDERS)]
    month = _in_month(orders, ctx)
    totals = _sales_totals(orders, ctx)
    totals["revenueMonth"] = _paid_revenue(month)

    top_products, top_brands = _top_rankings(orders, ctx)
    queues = _common_queues(orders, ctx)
    queues["shippingPending"] = derive_queue(orders, is_shipping_pending, shipping_pending_item)

    return SourceBundle(
        source="orders",
        totals=totals,
        daily={
            "count": _daily_count(orders, ctx, lambda record: record.created_at),
            "revenue": _daily_revenue(orders, ctx),
        },
        queues=queues,
        distributions={
            "orderStatus": _distribution(record.raw_status or UNSPECIFIED_STATUS for record in month),
            "orderPaymentStatus": _distribution(payment_label(record.raw_payment_status) for record in month),
        },
        details={
            "topProducts": top_products,
            "topBrands": top_brands,
            "recent": _recent(orders, ctx, _sale_row),
        },
    )


# ----------------------------- stringing applications -----------------------------


def aggregate_applications(store: RecordStore, ctx: AggregationContext) -> SourceBundle:
    applications = [project_application(doc) for doc in store.fetch(APPLICATIONS)]
    queues = _common_queues(applications, ctx)
    queues["shippingPending"] = derive_queue(applications, is_shipping_pending, shipping_pending_item)
    queues["stringingAging"] = derive_queue(
        applications,
        lambda record: is_application_aging(record, ctx.now),
        lambda record: aging_application_item(record, ctx.now),
    )
    return SourceBundle(
        source="applications",
        totals=_sales_totals(applications, ctx),
        daily={
            "count": _daily_count(applications, ctx, lambda record: record.created_at),
            "revenue": _daily_revenue(applications, ctx),
        },
        queues=queues,
        distributions={
            "applicationStatus": _distribution(
                record.raw_status or UNSPECIFIED_STATUS for record in _in_month(applications, ctx)
            ),
        },
        details={"recent": _recent(applications, ctx, _sale_row)},
    )


# ----------------------------- rentals -----------------------------


def aggregate_rentals(store: RecordStore, ctx: AggregationContext) -> SourceBundle:
    rentals = [project_rental(doc) for doc in store.fetch(RENTALS)]
    queues = _common_queues(rentals, ctx)
    queues["rentalOverdue"] = derive_queue(
        rentals,
        lambda record: is_rental_overdue(record, ctx.now),
        lambda record: rental_overdue_item(record, ctx.now),
    )
    queues["rentalDueSoon"] = derive_queue(
        rentals,
        lambda record: is_rental_due_soon(record, ctx.now),
        lambda record: rental_due_soon_item(record, ctx.now),
    )
    return SourceBundle(
        source="rentals",
        totals=_sales_totals(rentals, ctx),
        queues=queues,
        details={
            "recent": _recent(
                rentals,
                ctx,
                lambda record: {
                    "id": record.id,
                    "createdAt": iso_or_none(record.created_at),
                    "name": first_text(record.contact_email),
                    "total": record.total_amount,
                    "status": record.raw_status,
                },
            )
        },
    )


# ----------------------------- packages & passes -----------------------------


def aggregate_packages(store: RecordStore, ctx: AggregationContext) -> SourceBundle:
    packages = [project_package_order(doc) for doc in store.fetch(PACKAGE_ORDERS)]
    return SourceBundle(
        source="packages",
        totals=_sales_totals(packages, ctx),
        daily={"revenue": _daily_revenue(packages, ctx)},
        queues=_common_queues(packages, ctx),
    )


def aggregate_passes(store: RecordStore, ctx: AggregationContext) -> SourceBundle:
    users_by_id = {coerce_text(doc.get("_id", doc.get("id"))): doc for doc in store.fetch(USERS)}
    passes = [project_pass(doc, users_by_id) for doc in store.fetch(SERVICE_PASSES)]
    return SourceBundle(
        source="passes",
        queues={
            "passExpiringSoon": derive_queue(
                passes,
                lambda record: is_pass_expiring(record, ctx.now),
                lambda record: pass_expiring_item(record, ctx.now),
            )
        },
    )


# ----------------------------- reviews -----------------------------

_RATING_KEYS = {1: "one", 2: "two", 3: "three", 4: "four", 5: "five"}


def aggregate_reviews(store: RecordStore, ctx: AggregationContext) -> SourceBundle:
    reviews = [review for review in (project_review(doc) for doc in store.fetch(REVIEWS)) if not review.is_deleted]
    ratings = [review.rating for review in reviews if review.rating is not None]
    by_rating = {key: 0 for key in _RATING_KEYS.values()}
    by_type = {"product": 0, "service": 0}
    for review in reviews:
        by_type[review.review_type] += 1
        if review.rating in _RATING_KEYS:
            by_rating[_RATING_KEYS[int(review.rating)]] += 1

    return SourceBundle(
        source="reviews",
        totals={
            "total": len(reviews),
            "delta7d": sum(1 for review in reviews if _since(review.created_at, ctx.kpi_since)),
            "avg": sum(ratings) / len(ratings) if ratings else 0,
            "five": by_rating["five"],
            "byType": by_type,
            "byRating": by_rating,
        },
        daily={"count": _daily_count(reviews, ctx, lambda review: review.created_at)},
    )


# ----------------------------- users -----------------------------


def aggregate_users(store: RecordStore, ctx: AggregationContext) -> SourceBundle:
    users = [project_user(doc) for doc in store.fetch(USERS)]
    kakao = sum(1 for user in users if user.has_kakao)
    naver = sum(1 for user in users if user.has_naver)
    return SourceBundle(
        source="users",
        totals={
            "total": len(users),
            "delta7d": sum(1 for user in users if _since(user.created_at, ctx.kpi_since)),
            "active7d": sum(1 for user in users if _since(user.last_login_at, ctx.kpi_since)),
            "byProvider": {"local": max(0, len(users) - kakao - naver), "kakao": kakao, "naver": naver},
        },
        daily={"count": _daily_count(users, ctx, lambda user: user.created_at)},
    )


# ----------------------------- points -----------------------------


def _fetch_recent(store: RecordStore, collection: str, ctx: AggregationContext) -> List[Dict[str, Any]]:
    """Store-side ``since`` only narrows the read; the document's own ``createdAt`` decides."""
    # lower bound only; future-dated documents are counted
    return [
        doc
        for doc in store.fetch(collection, since=ctx.kpi_since)
        if _since(coerce_datetime(doc.get("createdAt")), ctx.kpi_since)
    ]


def aggregate_points(store: RecordStore, ctx: AggregationContext) -> SourceBundle:
    amounts = [coerce_number(doc.get("amount")) for doc in _fetch_recent(store, POINT_TRANSACTIONS, ctx)]
    return SourceBundle(
        source="points",
        totals={
            "issued7d": sum(amount for amount in amounts if amount > 0),
            "spent7d": -sum(amount for amount in amounts if amount < 0),
        },
    )


# ----------------------------- community -----------------------------


def aggregate_community(store: RecordStore, ctx: AggregationContext) -> SourceBundle:
    posts = _fetch_recent(store, COMMUNITY_POSTS, ctx)
    comments = _fetch_recent(store, COMMUNITY_COMMENTS, ctx)
    reports = [project_report(doc) for doc in store.fetch(COMMUNITY_REPORTS)]
    return SourceBundle(
        source="community",
        totals={
            "posts7d": len(posts),
            "comments7d": len(comments),
            "pendingReports": sum(1 for report in reports if report.status == "pending"),
        },
        details={
            "recentReports": _recent(
                reports,
                ctx,
                lambda report: {
                    "id": report.id,
                    "createdAt": iso_or_none(report.created_at),
                    "kind": report.kind,
                    "reason": report.reason,
                },
            )
        },
    )


# ----------------------------- inventory -----------------------------


def _newest_first(stamp: Optional[datetime]) -> float:
    return -stamp.timestamp() if stamp is not None else float("inf")


def aggregate_inventory(store: RecordStore, ctx: AggregationContext) -> SourceBundle:
    products = [product for product in (project_product(doc) for doc in store.fetch(PRODUCTS)) if not product.is_deleted]
    low_stock = [
        product
        for product in products
        if product.stock > 0 and product.low_stock is not None and product.stock <= product.low_stock
    ]
    out_of_stock = [product for product in products if product.stock <= 0]
    inactive_rackets = sum(
        1 for doc in store.fetch(USED_RACKETS) if coerce_text(doc.get("status")).strip().lower() == "inactive"
    )

    low_stock.sort(
        key=lambda product: (product.stock, _newest_first(product.updated_at), _newest_first(product.created_at), product.id)
    )
    out_of_stock.sort(
        key=lambda product: (_newest_first(product.updated_at), _newest_first(product.created_at), product.id)
    )
    limit = ctx.inventory_list_limit
    return SourceBundle(
        source="inventory",
        totals={
            "lowStockProducts": len(low_stock),
            "outOfStockProducts": len(out_of_stock),
            "inactiveRackets": inactive_rackets,
        },
        details={
            "lowStock": [
                {"id": p.id, "name": p.name, "brand": p.brand, "stock": p.stock, "lowStock": p.low_stock}
                for p in low_stock[:limit]
            ],
            "outOfStock": [
                {"id": p.id, "name": p.name, "brand": p.brand, "stock": p.stock} for p in out_of_stock[:limit]
            ],
        },
    )


# ----------------------------- notifications outbox -----------------------------


def aggregate_outbox(store: RecordStore, ctx: AggregationContext) -> SourceBundle:
    messages = [project_outbox(doc) for doc in store.fetch(NOTIFICATIONS_OUTBOX)]
    return SourceBundle(
        source="outbox",
        totals={
            "outboxQueued": sum(1 for message in messages if message.status == "queued"),
            "outboxFailed": sum(1 for message in messages if message.status == "failed"),
        },
        queues={
            "outboxBacklog": derive_queue(
                messages, lambda message: message.status in ("queued", "failed"), outbox_item
            )
        },
    )


# ----------------------------- settlements -----------------------------


def aggregate_settlements(store: RecordStore, ctx: AggregationContext) -> SourceBundle:
    """Presence check only: whether the monthly settlement snapshots have been generated."""
    current = ctx.calendar.month_key(ctx.now)
    previous = ctx.calendar.shift_month_key(current, -1)
    snapshots: Mapping[str, Dict[str, Any]] = {
        coerce_text(doc.get("yyyymm")): doc for doc in store.fetch(SETTLEMENTS) if coerce_text(doc.get("yyyymm"))
    }
    latest: Optional[Dict[str, Any]] = None
    if snapshots:
        key = max(snapshots)
        doc = snapshots[key]
        latest = {
            "yyyymm": key,
            "lastGeneratedAt": iso_or_none(coerce_datetime(doc.get("lastGeneratedAt"))),
            "lastGeneratedBy": coerce_text(doc.get("lastGeneratedBy")) or None,
        }
    return SourceBundle(
        source="settlements",
        totals={
            "currentYyyymm": current,
            "prevYyyymm": previous,
            "hasCurrentSnapshot": current in snapshots,
            "hasPrevSnapshot": previous in snapshots,
            "latest": latest,
        },
    )


AGGREGATORS: Dict[str, Callable[[RecordStore, AggregationContext], SourceBundle]] = {
    "users": aggregate_users,
    "orders": aggregate_orders,
    "applications": aggregate_applications,
    "rentals": aggregate_rentals,
    "packages": aggregate_packages,
    "passes": aggregate_passes,
    "reviews": aggregate_reviews,
    "points": aggregate_points,
    "community": aggregate_community,
    "inventory": aggregate_inventory,
    "outbox": aggregate_outbox,
    "settlements": aggregate_settlements,
}
