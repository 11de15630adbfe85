"""
Status vocabularies.

The stores mix Korean legacy labels, English codes and enum-ish variants for
the same state. Everything that aggregates by status goes through the
normalizers below instead of comparing raw strings.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, FrozenSet, Type, TypeVar


class PaymentStatus(str, Enum):
    PAID = "paid"
    PENDING = "pending"
    OTHER = "other"


class CancelStatus(str, Enum):
    NONE = "none"
    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"


class OrderStage(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    SHIPPING = "shipping"
    DELIVERED = "delivered"
    CANCELED = "canceled"
    REFUNDED = "refunded"
    OTHER = "other"


class ApplicationStage(str, Enum):
    RECEIVED = "received"
    IN_REVIEW = "in_review"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELED = "canceled"
    OTHER = "other"


class RentalStage(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OUT = "out"
    RETURNED = "returned"
    CANCELED = "canceled"
    OTHER = "other"


PAYMENT_PAID_VALUES = frozenset({"결제완료", "paid", "confirmed"})
PAYMENT_PENDING_VALUES = frozenset({"결제대기", "pending"})

CANCEL_REQUESTED_VALUES = frozenset({"requested", "요청"})
CANCEL_APPROVED_VALUES = frozenset({"approved", "승인"})
CANCEL_REJECTED_VALUES = frozenset({"rejected", "거절"})

PAYMENT_PAID_LABEL = "결제완료"
PAYMENT_PENDING_LABEL = "결제대기"
PAYMENT_OTHER_LABEL = "기타"

_PAYMENT_CLASSES: Dict[PaymentStatus, FrozenSet[str]] = {
    PaymentStatus.PAID: PAYMENT_PAID_VALUES,
    PaymentStatus.PENDING: PAYMENT_PENDING_VALUES,
}

_CANCEL_CLASSES: Dict[CancelStatus, FrozenSet[str]] = {
    CancelStatus.REQUESTED: CANCEL_REQUESTED_VALUES,
    CancelStatus.APPROVED: CANCEL_APPROVED_VALUES,
    CancelStatus.REJECTED: CANCEL_REJECTED_VALUES,
}

_ORDER_STAGE_CLASSES: Dict[OrderStage, FrozenSet[str]] = {
    OrderStage.PENDING: frozenset({"pending", "대기중"}),
    OrderStage.PREPARING: frozenset({"preparing", "배송준비중", "결제완료"}),
    OrderStage.SHIPPING: frozenset({"shipping", "shipped", "배송중"}),
    OrderStage.DELIVERED: frozenset({"delivered", "배송완료", "구매확정"}),
    OrderStage.CANCELED: frozenset({"canceled", "cancelled", "취소"}),
    OrderStage.REFUNDED: frozenset({"refunded", "환불"}),
}

_APPLICATION_STAGE_CLASSES: Dict[ApplicationStage, FrozenSet[str]] = {
    ApplicationStage.RECEIVED: frozenset({"received", "접수완료"}),
    ApplicationStage.IN_REVIEW: frozenset({"in_review", "in review", "검토 중"}),
    ApplicationStage.IN_PROGRESS: frozenset({"in_progress", "in progress", "작업 중"}),
    ApplicationStage.COMPLETED: frozenset({"completed", "교체완료"}),
    ApplicationStage.CANCELED: frozenset({"canceled", "cancelled", "취소"}),
}

_RENTAL_STAGE_CLASSES: Dict[RentalStage, FrozenSet[str]] = {
    RentalStage.PENDING: frozenset({"pending", "결제대기"}),
    RentalStage.PAID: frozenset({"paid", "결제완료"}),
    RentalStage.OUT: frozenset({"out", "checked out", "checked_out", "대여중"}),
    RentalStage.RETURNED: frozenset({"returned", "반납완료"}),
    RentalStage.CANCELED: frozenset({"canceled", "cancelled", "취소"}),
}

E = TypeVar("E", bound=Enum)


def _clean(raw: Any) -> str:
    if isinstance(raw, Enum):
        raw = raw.value
    if raw is None:
        return ""
    return str(raw).strip()


def _classify(raw: Any, classes: Dict[E, FrozenSet[str]], enum_type: Type[E], fallback: E) -> E:
    if isinstance(raw, enum_type):
        return raw
    lowered = _clean(raw).lower()
    if not lowered:
        return fallback
    # equivalence sets are stored lower-cased
    for member, values in classes.items():
        if lowered == member.value or lowered in values:
            return member
    return fallback


def normalize_payment(raw: Any) -> PaymentStatus:
    return _classify(raw, _PAYMENT_CLASSES, PaymentStatus, PaymentStatus.OTHER)


def normalize_cancel(raw: Any) -> CancelStatus:
    return _classify(raw, _CANCEL_CLASSES, CancelStatus, CancelStatus.NONE)


def normalize_order_stage(raw: Any) -> OrderStage:
    return _classify(raw, _ORDER_STAGE_CLASSES, OrderStage, OrderStage.OTHER)


def normalize_application_stage(raw: Any) -> ApplicationStage:
    return _classify(raw, _APPLICATION_STAGE_CLASSES, ApplicationStage, ApplicationStage.OTHER)


def normalize_rental_stage(raw: Any) -> RentalStage:
    return _classify(raw, _RENTAL_STAGE_CLASSES, RentalStage, RentalStage.OTHER)


def payment_label(raw: Any) -> str:
    """Merge paid/pending spellings into one display label; keep anything else as-is."""
    status = normalize_payment(raw)
    if status is PaymentStatus.PAID:
        return PAYMENT_PAID_LABEL
    if status is PaymentStatus.PENDING:
        return PAYMENT_PENDING_LABEL
    return _clean(raw) or PAYMENT_OTHER_LABEL
