"""
Operator attention queues.

Each queue is a predicate over projected records, an unbounded count of the
matches, and a short detail list ordered oldest first (older unresolved items
are more urgent). Thresholds are fixed; callers only supply ``now``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Tuple, TypeVar

from .dataset import Number, iso_or_none
from .records import APPLICATION, ORDER, PACKAGE, RENTAL, DomainRecord, OutboxRecord, PassRecord
from .status import (
    ApplicationStage,
    CancelStatus,
    OrderStage,
    PaymentStatus,
    RentalStage,
    normalize_application_stage,
    normalize_order_stage,
    normalize_rental_stage,
    payment_label,
)

DETAIL_LIMIT = 10

PAYMENT_PENDING_AFTER = timedelta(hours=24)
RENTAL_DUE_SOON_WITHIN = timedelta(hours=48)
APPLICATION_AGING_AFTER = timedelta(days=3)
PASS_EXPIRY_WITHIN = timedelta(days=30)

PICKUP_SHIPPING_METHODS = frozenset({"visit", "pickup", "방문수령"})

ORDER_CLOSED_STAGES = frozenset({OrderStage.DELIVERED, OrderStage.CANCELED, OrderStage.REFUNDED})
APPLICATION_CLOSED_STAGES = frozenset({ApplicationStage.COMPLETED, ApplicationStage.CANCELED})
APPLICATION_UNRESOLVED_STAGES = frozenset(
    {ApplicationStage.RECEIVED, ApplicationStage.IN_REVIEW, ApplicationStage.IN_PROGRESS}
)

_HOUR = timedelta(hours=1)
_DAY = timedelta(days=1)
_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)

_DETAIL_PATHS = {
    ORDER: "/admin/orders/{id}",
    APPLICATION: "/admin/applications/stringing/{id}",
    RENTAL: "/admin/rentals/{id}",
    PACKAGE: "/admin/packages/{id}",
}
_SHIPPING_PATHS = {
    ORDER: "/admin/orders/{id}/shipping-update",
    APPLICATION: "/admin/applications/stringing/{id}/shipping-update",
}

R = TypeVar("R")


@dataclass(frozen=True)
class QueueItem:
    kind: str
    id: str
    created_at: Optional[datetime]
    name: str
    amount: Number
    status: str
    href: str
    sort_at: Optional[datetime]
    payment_status: Optional[str] = None
    metrics: Dict[str, int] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "kind": self.kind,
            "id": self.id,
            "createdAt": iso_or_none(self.created_at),
            "name": self.name,
            "amount": self.amount,
            "status": self.status,
            "href": self.href,
        }
        if self.payment_status is not None:
            data["paymentStatus"] = self.payment_status
        data.update(self.extra)
        data.update(self.metrics)
        return data


@dataclass(frozen=True)
class QueueSlice:
    count: int
    items: Tuple[QueueItem, ...] = ()

    def __post_init__(self) -> None:
        if len(self.items) > min(self.count, DETAIL_LIMIT):
            raise ValueError(f"queue detail list of {len(self.items)} exceeds count {self.count}")


EMPTY_QUEUE = QueueSlice(count=0)


def _floor_units(delta: timedelta, unit: timedelta) -> int:
    return max(0, math.floor(delta / unit))


def _ceil_units(delta: timedelta, unit: timedelta) -> int:
    return max(0, math.ceil(delta / unit))


def hours_ago(created_at: Optional[datetime], now: datetime) -> int:
    return _floor_units(now - created_at, _HOUR) if created_at else 0


def age_days(created_at: Optional[datetime], now: datetime) -> int:
    return _floor_units(now - created_at, _DAY) if created_at else 0


def overdue_days(due_at: Optional[datetime], now: datetime) -> int:
    return _floor_units(now - due_at, _DAY) if due_at else 0


def due_in_hours(due_at: Optional[datetime], now: datetime) -> int:
    # one minute left still reads as "1 hour", never as "0"
    return _ceil_units(due_at - now, _HOUR) if due_at else 0


def days_left(expires_at: Optional[datetime], now: datetime) -> int:
    return _ceil_units(expires_at - now, _DAY) if expires_at else 0


# ----------------------------- predicates -----------------------------


def is_cancel_requested(record: DomainRecord) -> bool:
    return record.cancel_status is CancelStatus.REQUESTED


def is_payment_pending_overdue(record: DomainRecord, now: datetime) -> bool:
    """PENDING for 24h or more, unless the record already sits in the cancel-request queue."""
    return (
        record.payment_status is PaymentStatus.PENDING
        and record.created_at is not None
        and record.created_at <= now - PAYMENT_PENDING_AFTER
        and not is_cancel_requested(record)
    )


def _is_closed(record: DomainRecord) -> bool:
    if record.kind == ORDER:
        return normalize_order_stage(record.raw_status) in ORDER_CLOSED_STAGES
    if record.kind == APPLICATION:
        return normalize_application_stage(record.raw_status) in APPLICATION_CLOSED_STAGES
    return True


def is_shipping_pending(record: DomainRecord) -> bool:
    if record.payment_status is not PaymentStatus.PAID or record.has_tracking:
        return False
    if (record.shipping_method or "").strip().lower() in PICKUP_SHIPPING_METHODS:
        return False
    return not _is_closed(record)


def _is_checked_out(record: DomainRecord) -> bool:
    return record.kind == RENTAL and normalize_rental_stage(record.raw_status) is RentalStage.OUT


def is_rental_overdue(record: DomainRecord, now: datetime) -> bool:
    return _is_checked_out(record) and record.due_at is not None and record.due_at <= now


def is_rental_due_soon(record: DomainRecord, now: datetime) -> bool:
    return (
        _is_checked_out(record)
        and record.due_at is not None
        and now < record.due_at <= now + RENTAL_DUE_SOON_WITHIN
    )


def is_application_aging(record: DomainRecord, now: datetime) -> bool:
    return (
        record.kind == APPLICATION
        and normalize_application_stage(record.raw_status) in APPLICATION_UNRESOLVED_STAGES
        and record.created_at is not None
        and record.created_at <= now - APPLICATION_AGING_AFTER
    )


def is_pass_expiring(record: PassRecord, now: datetime) -> bool:
    return (
        record.status.strip().lower() == "active"
        and record.expires_at is not None
        and now <= record.expires_at <= now + PASS_EXPIRY_WITHIN
    )


# ----------------------------- items -----------------------------


def _href(record: DomainRecord, paths: Dict[str, str] = _DETAIL_PATHS) -> str:
    return paths.get(record.kind, "/admin").format(id=record.id)


def record_item(record: DomainRecord, *, with_payment: bool = True) -> QueueItem:
    return QueueItem(
        kind=record.kind,
        id=record.id,
        created_at=record.created_at,
        name=record.display_name,
        amount=record.total_amount,
        status=record.raw_status,
        href=_href(record),
        sort_at=record.created_at,
        payment_status=payment_label(record.raw_payment_status) if with_payment else None,
    )


def cancel_request_item(record: DomainRecord) -> QueueItem:
    return record_item(record, with_payment=record.kind != RENTAL)


def shipping_pending_item(record: DomainRecord) -> QueueItem:
    item = record_item(record)
    return replace(item, href=_href(record, _SHIPPING_PATHS))


def payment_pending_item(record: DomainRecord, now: datetime) -> QueueItem:
    item = record_item(record, with_payment=False)
    return replace(item, metrics={"hoursAgo": hours_ago(record.created_at, now)})


def rental_overdue_item(record: DomainRecord, now: datetime) -> QueueItem:
    item = record_item(record, with_payment=False)
    return replace(
        item,
        sort_at=record.due_at,
        extra={"dueAt": iso_or_none(record.due_at)},
        metrics={"overdueDays": overdue_days(record.due_at, now)},
    )


def rental_due_soon_item(record: DomainRecord, now: datetime) -> QueueItem:
    item = record_item(record, with_payment=False)
    return replace(
        item,
        sort_at=record.due_at,
        extra={"dueAt": iso_or_none(record.due_at)},
        metrics={"dueInHours": due_in_hours(record.due_at, now)},
    )


def aging_application_item(record: DomainRecord, now: datetime) -> QueueItem:
    item = record_item(record)
    return replace(item, metrics={"ageDays": age_days(record.created_at, now)})


def pass_expiring_item(record: PassRecord, now: datetime) -> QueueItem:
    return QueueItem(
        kind="pass",
        id=record.id,
        created_at=None,
        name=record.display_name,
        amount=0,
        status=record.status,
        href=f"/admin/packages/{record.order_id}" if record.order_id else "/admin/packages",
        sort_at=record.expires_at,
        extra={"expiresAt": iso_or_none(record.expires_at), "remainingCount": record.remaining_count},
        metrics={"daysLeft": days_left(record.expires_at, now)},
    )


def outbox_item(record: OutboxRecord) -> QueueItem:
    return QueueItem(
        kind="outbox",
        id=record.id,
        created_at=record.created_at,
        name=record.event_type,
        amount=0,
        status=record.status,
        href=f"/admin/notifications/outbox/{record.id}",
        sort_at=record.created_at,
        extra={
            "eventType": record.event_type,
            "to": record.to,
            "retries": record.retries,
            "error": record.error,
        },
    )


# ----------------------------- derivation -----------------------------


def _sort_key(item: QueueItem) -> Tuple[bool, datetime, str, str]:
    # undated items go last; kind/id make equal timestamps deterministic
    return (item.sort_at is None, item.sort_at or _FAR_FUTURE, item.kind, item.id)


def derive_queue(
    records: Iterable[R],
    predicate: Callable[[R], bool],
    to_item: Callable[[R], QueueItem],
    limit: int = DETAIL_LIMIT,
) -> QueueSlice:
    matched = [to_item(record) for record in records if predicate(record)]
    matched.sort(key=_sort_key)
    return QueueSlice(count=len(matched), items=tuple(matched[:limit]))


def merge_queues(slices: Sequence[QueueSlice], limit: int = DETAIL_LIMIT) -> QueueSlice:
    """Combine per-entity slices of the same queue into one cross-entity queue."""
    items = sorted((item for queue in slices for item in queue.items), key=_sort_key)
    return QueueSlice(count=sum(queue.count for queue in slices), items=tuple(items[:limit]))
