"""
Per-entity projections.

Every store keeps its own field names (``totalPrice`` on orders, ``amount.*``
on rentals, ``userSnapshot`` on package orders ...). The functions here turn a
raw document into the small, uniform records the aggregators work with.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional, Tuple

from .dataset import (
    Number,
    as_doc,
    coerce_datetime,
    coerce_id,
    coerce_number,
    coerce_text,
    dig,
    first_text,
)
from .status import (
    CancelStatus,
    PaymentStatus,
    RentalStage,
    normalize_cancel,
    normalize_payment,
    normalize_rental_stage,
)

ORDER = "order"
APPLICATION = "application"
RENTAL = "rental"
PACKAGE = "package"


@dataclass(frozen=True)
class OrderLine:
    product_id: str
    name: str
    brand: str
    kind: str
    price: Number
    quantity: Number


@dataclass(frozen=True)
class DomainRecord:
    """
    Shape shared by orders, applications, rentals and package orders.

    ``revenue_amount`` is what counts toward revenue once the record is PAID.
    It equals ``total_amount`` everywhere except rentals, whose total carries a
    refundable deposit.
    """

    kind: str
    id: str
    created_at: Optional[datetime]
    total_amount: Number
    revenue_amount: Number
    raw_payment_status: str
    payment_status: PaymentStatus
    raw_status: str
    cancel_status: CancelStatus
    display_name: str
    due_at: Optional[datetime] = None
    has_tracking: bool = False
    shipping_method: Optional[str] = None
    contact_email: Optional[str] = None
    items: Tuple[OrderLine, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PassRecord:
    id: str
    status: str
    expires_at: Optional[datetime]
    remaining_count: Number
    display_name: str
    order_id: Optional[str] = None


@dataclass(frozen=True)
class UserRecord:
    id: str
    created_at: Optional[datetime]
    last_login_at: Optional[datetime]
    has_kakao: bool
    has_naver: bool


@dataclass(frozen=True)
class ReviewRecord:
    id: str
    created_at: Optional[datetime]
    rating: Optional[Number]
    review_type: str
    is_deleted: bool


@dataclass(frozen=True)
class ProductRecord:
    id: str
    name: str
    brand: str
    stock: Number
    low_stock: Optional[Number]
    is_deleted: bool
    updated_at: Optional[datetime]
    created_at: Optional[datetime]


@dataclass(frozen=True)
class OutboxRecord:
    id: str
    created_at: Optional[datetime]
    status: str
    event_type: str
    to: Optional[str]
    retries: Number
    error: Optional[str]


@dataclass(frozen=True)
class ReportRecord:
    id: str
    created_at: Optional[datetime]
    status: str
    kind: str
    reason: str


def _has_tracking(doc: Mapping[str, Any]) -> bool:
    return bool(coerce_text(dig(doc, "shippingInfo.invoice.trackingNumber")).strip())


def _shipping_name(doc: Mapping[str, Any]) -> str:
    return first_text(dig(doc, "shippingInfo.name"), dig(doc, "shippingInfo.receiverName"), dig(doc, "guest.name"))


def _member_tag(user_id: Any) -> str:
    text = coerce_text(user_id)
    return f"회원#{text[-6:]}" if text else ""


def _lines(value: Any) -> Tuple[OrderLine, ...]:
    if not isinstance(value, list):
        return ()
    lines = []
    for raw in value:
        item = as_doc(raw)
        if not item:
            continue
        lines.append(
            OrderLine(
                product_id=coerce_text(item.get("productId")),
                name=coerce_text(item.get("name")),
                brand=coerce_text(item.get("brand")),
                kind=coerce_text(item.get("kind")),
                price=coerce_number(item.get("price")),
                quantity=coerce_number(item.get("quantity")),
            )
        )
    return tuple(lines)


def project_order(doc: Mapping[str, Any]) -> DomainRecord:
    total = coerce_number(doc.get("totalPrice"))
    raw_payment = coerce_text(doc.get("paymentStatus"))
    return DomainRecord(
        kind=ORDER,
        id=coerce_id(doc),
        created_at=coerce_datetime(doc.get("createdAt")),
        total_amount=total,
        revenue_amount=total,
        raw_payment_status=raw_payment,
        payment_status=normalize_payment(raw_payment),
        raw_status=coerce_text(doc.get("status")),
        cancel_status=normalize_cancel(dig(doc, "cancelRequest.status")),
        display_name=_shipping_name(doc),
        has_tracking=_has_tracking(doc),
        shipping_method=coerce_text(dig(doc, "shippingInfo.shippingMethod")) or None,
        items=_lines(doc.get("items")),
    )


def project_application(doc: Mapping[str, Any]) -> DomainRecord:
    total = coerce_number(doc.get("totalPrice"))
    raw_payment = coerce_text(doc.get("paymentStatus"))
    return DomainRecord(
        kind=APPLICATION,
        id=coerce_id(doc),
        created_at=coerce_datetime(doc.get("createdAt")),
        total_amount=total,
        revenue_amount=total,
        raw_payment_status=raw_payment,
        payment_status=normalize_payment(raw_payment),
        raw_status=coerce_text(doc.get("status")),
        cancel_status=normalize_cancel(dig(doc, "cancelRequest.status")),
        display_name=_shipping_name(doc),
        has_tracking=_has_tracking(doc),
        shipping_method=coerce_text(dig(doc, "shippingInfo.shippingMethod")) or None,
    )


def rental_revenue(doc: Mapping[str, Any]) -> Number:
    """Fee + string + stringing labour. The deposit is a liability, never revenue."""
    return (
        coerce_number(dig(doc, "amount.fee"))
        + coerce_number(dig(doc, "amount.stringPrice"))
        + coerce_number(dig(doc, "amount.stringingFee"))
    )


def _rental_total(doc: Mapping[str, Any]) -> Number:
    total = coerce_number(dig(doc, "amount.total"))
    if total:
        return total
    return coerce_number(doc.get("fee")) + coerce_number(doc.get("deposit"))


def _rental_payment(stage: RentalStage) -> PaymentStatus:
    if stage in (RentalStage.PAID, RentalStage.OUT, RentalStage.RETURNED):
        return PaymentStatus.PAID
    if stage is RentalStage.PENDING:
        return PaymentStatus.PENDING
    return PaymentStatus.OTHER


def _rental_name(doc: Mapping[str, Any]) -> str:
    racket = " ".join(part for part in (coerce_text(doc.get("brand")), coerce_text(doc.get("model"))) if part)
    who = first_text(
        dig(doc, "guest.name"),
        dig(doc, "shipping.name"),
        doc.get("userEmail"),
        _member_tag(doc.get("userId")),
    )
    return f"{racket} · {who}" if racket else who


def project_rental(doc: Mapping[str, Any]) -> DomainRecord:
    # rentals have no separate payment field; payment state follows the lifecycle
    raw_status = coerce_text(doc.get("status"))
    return DomainRecord(
        kind=RENTAL,
        id=coerce_id(doc),
        created_at=coerce_datetime(doc.get("createdAt")),
        total_amount=_rental_total(doc),
        revenue_amount=rental_revenue(doc),
        raw_payment_status=raw_status,
        payment_status=_rental_payment(normalize_rental_stage(raw_status)),
        raw_status=raw_status,
        cancel_status=normalize_cancel(dig(doc, "cancelRequest.status")),
        display_name=_rental_name(doc),
        due_at=coerce_datetime(doc.get("dueAt")),
        contact_email=coerce_text(doc.get("userEmail")).strip() or None,
    )


def project_package_order(doc: Mapping[str, Any]) -> DomainRecord:
    total = coerce_number(doc.get("totalPrice"))
    raw_payment = coerce_text(doc.get("paymentStatus"))
    return DomainRecord(
        kind=PACKAGE,
        id=coerce_id(doc),
        created_at=coerce_datetime(doc.get("createdAt")),
        total_amount=total,
        revenue_amount=total,
        raw_payment_status=raw_payment,
        payment_status=normalize_payment(raw_payment),
        raw_status=coerce_text(doc.get("status")),
        cancel_status=normalize_cancel(dig(doc, "cancelRequest.status")),
        display_name=first_text(dig(doc, "userSnapshot.name"), dig(doc, "userSnapshot.email")),
    )


def project_pass(doc: Mapping[str, Any], users_by_id: Optional[Mapping[str, Mapping[str, Any]]] = None) -> PassRecord:
    user = (users_by_id or {}).get(coerce_text(doc.get("userId")), {})
    who = first_text(user.get("name"), user.get("email"), _member_tag(doc.get("userId")))
    size = coerce_number(doc.get("packageSize"))
    label = f"{size}회권" if size > 0 else "패스"
    order_id = coerce_text(doc.get("orderId"))
    return PassRecord(
        id=coerce_id(doc),
        status=coerce_text(doc.get("status")),
        expires_at=coerce_datetime(doc.get("expiresAt")),
        remaining_count=coerce_number(doc.get("remainingCount")),
        display_name=f"{who} · {label}",
        order_id=order_id or None,
    )


def project_user(doc: Mapping[str, Any]) -> UserRecord:
    return UserRecord(
        id=coerce_id(doc),
        created_at=coerce_datetime(doc.get("createdAt")),
        last_login_at=coerce_datetime(doc.get("lastLoginAt")),
        has_kakao=dig(doc, "oauth.kakao.id") is not None,
        has_naver=dig(doc, "oauth.naver.id") is not None,
    )


def _review_type(doc: Mapping[str, Any]) -> str:
    explicit = coerce_text(doc.get("type"))
    if explicit in ("product", "service"):
        return explicit
    if doc.get("productId") is not None or doc.get("product_id") is not None:
        return "product"
    return "service"


def project_review(doc: Mapping[str, Any]) -> ReviewRecord:
    rating = doc.get("rating")
    return ReviewRecord(
        id=coerce_id(doc),
        created_at=coerce_datetime(doc.get("createdAt")),
        rating=coerce_number(rating) if rating is not None else None,
        review_type=_review_type(doc),
        is_deleted=doc.get("isDeleted") is True,
    )


def project_product(doc: Mapping[str, Any]) -> ProductRecord:
    low_stock = dig(doc, "inventory.lowStock")
    return ProductRecord(
        id=coerce_id(doc),
        name=coerce_text(doc.get("name")),
        brand=coerce_text(doc.get("brand")),
        stock=coerce_number(dig(doc, "inventory.stock")),
        low_stock=coerce_number(low_stock) if low_stock is not None else None,
        is_deleted=doc.get("isDeleted") is True,
        updated_at=coerce_datetime(doc.get("updatedAt")),
        created_at=coerce_datetime(doc.get("createdAt")),
    )


def project_outbox(doc: Mapping[str, Any]) -> OutboxRecord:
    error = coerce_text(doc.get("error")) or coerce_text(doc.get("lastError"))
    to = coerce_text(dig(doc, "rendered.email.to")) or coerce_text(dig(doc, "rendered.sms.to"))
    return OutboxRecord(
        id=coerce_id(doc),
        created_at=coerce_datetime(doc.get("createdAt")),
        status=coerce_text(doc.get("status"), "queued"),
        event_type=coerce_text(doc.get("eventType")),
        to=to or None,
        retries=coerce_number(doc.get("retries")),
        error=error[:140] if error else None,
    )


def project_report(doc: Mapping[str, Any]) -> ReportRecord:
    return ReportRecord(
        id=coerce_id(doc),
        created_at=coerce_datetime(doc.get("createdAt")),
        status=coerce_text(doc.get("status")),
        kind="comment" if doc.get("commentId") else "post",
        reason=coerce_text(doc.get("reason"))[:120],
    )

