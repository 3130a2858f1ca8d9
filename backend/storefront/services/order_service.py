# Overview: Service-layer operations for orders; status lifecycle and stock reconciliation.

"""
Order Lifecycle Service

STATE MACHINE:
    pending_payment -> paid -> shipped -> completed
    pending_payment -> cancelled
    paid            -> cancelled

RULES:
1. Only pending_payment and paid orders can be cancelled
2. Cancelling returns every item's reserved quantity to its variant, and the
   stock restoration and the status change commit together or not at all
3. A cancelled order is never cancelled (or restocked) a second time
4. The shipping address can change only while pending_payment or paid
5. The payment-timeout sweep cancels each stale order in its own
   transaction, so one bad order does not stop the rest
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Order
from storefront.time_utils import minutes_ago, to_utc_z
from .concurrency import lock_for_update, run_atomic, run_with_retry
from .inventory_service import InventoryError, restore_stock


PENDING_PAYMENT = "pending_payment"
PAID = "paid"
SHIPPED = "shipped"
CANCELLED = "cancelled"
COMPLETED = "completed"

VALID_STATUSES = {PENDING_PAYMENT, PAID, SHIPPED, CANCELLED, COMPLETED}

ALLOWED_TRANSITIONS = {
    (PENDING_PAYMENT, PAID),
    (PAID, SHIPPED),
    (SHIPPED, COMPLETED),
    (PENDING_PAYMENT, CANCELLED),
    (PAID, CANCELLED),
}

ADDRESS_EDITABLE_STATUSES = {PENDING_PAYMENT, PAID}

PAYMENT_TIMEOUT_REASON = "Payment timeout"
ADMIN_CANCEL_REASON = "Cancelled by administrator"

ADDRESS_REQUIRED_FIELDS = ("fullName", "phone", "addressLine1", "city", "state", "postalCode", "country")
ADDRESS_OPTIONAL_FIELDS = ("addressLine2",)


class OrderError(Exception):
    """Raised for order operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class OrderNotFoundError(OrderError):
    pass


class AlreadyCancelledError(OrderError):
    pass


class InvalidTransitionError(OrderError):
    pass


class OrderStoreError(OrderError):
    """The store failed while applying a change; nothing was committed."""


class OrderOwnershipError(OrderError):
    pass


class AddressValidationError(OrderError):
    pass


@dataclass
class SweepReport:
    cutoff: datetime
    cancelled: list[int] = field(default_factory=list)
    failed: list[tuple[int, str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.cancelled) + len(self.failed)

    def to_dict(self) -> dict:
        return {
            "cutoff": to_utc_z(self.cutoff),
            "total": self.total,
            "cancelled": list(self.cancelled),
            "failed": [{"order_id": order_id, "message": message} for order_id, message in self.failed],
        }


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise InvalidTransitionError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    """Same-status writes count as allowed no-ops."""
    validate_status(from_status)
    validate_status(to_status)
    if from_status == to_status:
        return True
    return (from_status, to_status) in ALLOWED_TRANSITIONS


def _enforce_transitions() -> bool:
    return bool(current_app.config.get("ORDER_STATUS_ENFORCE_TRANSITIONS", True))


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise OrderNotFoundError("Order not found", details={"order_id": order_id})
    return order


def list_orders(
    *,
    status: str | None = None,
    user_id: str | None = None,
    limit: int = 200,
) -> list[Order]:
    q = db.session.query(Order)
    if status is not None:
        validate_status(status)
        q = q.filter(Order.status == status)
    if user_id is not None:
        q = q.filter(Order.user_id == user_id)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()


def _ensure_cancellable(order: Order) -> None:
    if order.status == CANCELLED:
        raise AlreadyCancelledError("Order is already cancelled", details={"order_id": order.id})
    if order.status == COMPLETED:
        raise InvalidTransitionError("Cannot cancel a completed order", details={"order_id": order.id})
    if (order.status, CANCELLED) not in ALLOWED_TRANSITIONS:
        raise InvalidTransitionError(
            f"Cannot cancel an order that is {order.status}",
            details={"order_id": order.id, "status": order.status},
        )


def _cancel_locked(order_id: int, reason: str, expected_status: str | None) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        raise OrderNotFoundError("Order not found", details={"order_id": order_id})

    _ensure_cancellable(order)

    if expected_status is not None and order.status != expected_status:
        raise InvalidTransitionError(
            f"Order is {order.status}, expected {expected_status}",
            details={"order_id": order.id, "status": order.status},
        )

    for item in order.items:
        # Variant deleted since the order was placed: nothing to return to
        if item.product_variant_id is None:
            continue
        restore_stock(item.product_variant_id, item.quantity)

    order.status = CANCELLED
    order.cancel_reason = reason
    db.session.flush()
    return order


def _cancel(order_id: int, reason: str, *, expected_status: str | None = None) -> Order:
    try:
        return run_with_retry(
            lambda: run_atomic(lambda: _cancel_locked(order_id, reason, expected_status))
        )
    except InventoryError as exc:
        raise OrderError(f"Failed to cancel order: {exc.message}", details=exc.details) from exc
    except SQLAlchemyError as exc:
        raise OrderStoreError(f"Failed to cancel order: {exc}", details={"order_id": order_id}) from exc


def cancel_order(order_id: int, reason: str | None = None) -> Order:
    """
    Cancel an order and return its reserved stock.

    Raises:
        OrderNotFoundError: No such order
        AlreadyCancelledError: Order was already cancelled (no stock change)
        InvalidTransitionError: Order is shipped or completed
        OrderStoreError: The store failed; nothing was applied
        OrderError: An item could not be restocked; nothing was applied
    """
    return _cancel(order_id, reason or ADMIN_CANCEL_REASON)


def sweep_timed_out_orders(cutoff: datetime | None = None) -> SweepReport:
    """
    Cancel every pending_payment order created before `cutoff`.

    cutoff defaults to now minus ORDER_PAYMENT_TIMEOUT_MINUTES. Each order is
    cancelled in its own transaction; failures are collected, not raised.
    """
    if cutoff is None:
        cutoff = minutes_ago(current_app.config.get("ORDER_PAYMENT_TIMEOUT_MINUTES", 30))

    order_ids = [
        row.id
        for row in db.session.query(Order.id).filter(
            Order.status == PENDING_PAYMENT,
            Order.created_at < cutoff,
        ).order_by(Order.id).all()
    ]

    logger = current_app.logger
    logger.info("Found %d pending orders to cancel", len(order_ids))

    report = SweepReport(cutoff=cutoff)
    for order_id in order_ids:
        try:
            _cancel(order_id, PAYMENT_TIMEOUT_REASON, expected_status=PENDING_PAYMENT)
        except OrderError as exc:
            logger.error("Failed to cancel order %s: %s", order_id, exc.message)
            report.failed.append((order_id, exc.message))
            continue
        except Exception as exc:
            logger.exception("Unexpected error cancelling order %s", order_id)
            db.session.rollback()
            report.failed.append((order_id, f"Unexpected error: {exc}"))
            continue
        logger.info("Order %s cancelled and stock restored", order_id)
        report.cancelled.append(order_id)

    logger.info(
        "Payment timeout sweep finished: %d cancelled, %d failed",
        len(report.cancelled), len(report.failed),
    )
    return report


def update_order_status(order_id: int, new_status: str) -> Order:
    """
    Admin status change for forward moves (paid -> shipped -> completed).

    Moves are checked against the transition graph unless
    ORDER_STATUS_ENFORCE_TRANSITIONS is off, in which case any status is
    written as-is and the override is logged. Cancellation always goes
    through cancel_order so reserved stock is returned.
    """
    validate_status(new_status)

    if new_status == CANCELLED:
        return cancel_order(order_id)

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise OrderNotFoundError("Order not found", details={"order_id": order_id})

        if order.status == new_status:
            return order

        if not can_transition(order.status, new_status):
            if _enforce_transitions():
                raise InvalidTransitionError(
                    f"Cannot change order from {order.status} to {new_status}",
                    details={"order_id": order.id, "status": order.status},
                )
            current_app.logger.warning(
                "Order %s status override %s -> %s outside the transition graph",
                order.id, order.status, new_status,
            )

        order.status = new_status
        return order

    try:
        return run_with_retry(lambda: run_atomic(_op))
    except SQLAlchemyError as exc:
        raise OrderStoreError(f"Failed to update status: {exc}", details={"order_id": order_id}) from exc


def update_tracking_info(
    order_id: int,
    *,
    carrier_name: str,
    tracking_number: str,
    tracking_url: str | None = None,
) -> Order:
    """
    Attach shipment tracking to an order.

    A paid order moves to shipped. Any other order keeps its status and only
    the tracking fields change.
    """
    if not carrier_name or not tracking_number:
        raise OrderError("carrier_name and tracking_number are required")

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise OrderNotFoundError("Order not found", details={"order_id": order_id})

        order.carrier_name = carrier_name
        order.tracking_number = tracking_number
        order.tracking_url = tracking_url
        if order.status == PAID:
            order.status = SHIPPED
        return order

    try:
        return run_with_retry(lambda: run_atomic(_op))
    except SQLAlchemyError as exc:
        raise OrderStoreError(f"Failed to update tracking info: {exc}", details={"order_id": order_id}) from exc


def _clean_address(address: dict) -> dict:
    if not isinstance(address, dict):
        raise AddressValidationError("Address must be an object")

    missing = [
        key for key in ADDRESS_REQUIRED_FIELDS
        if not isinstance(address.get(key), str) or not address.get(key).strip()
    ]
    if missing:
        raise AddressValidationError(
            f"Missing address fields: {', '.join(missing)}",
            details={"missing": missing},
        )

    cleaned = {key: address[key].strip() for key in ADDRESS_REQUIRED_FIELDS}
    for key in ADDRESS_OPTIONAL_FIELDS:
        value = address.get(key)
        if isinstance(value, str) and value.strip():
            cleaned[key] = value.strip()
    return cleaned


def update_order_address(order_id: int, user_id: str, address: dict) -> Order:
    """
    Customer edit of the shipping address.

    Only the order's owner may edit it, and only before it ships.
    """
    cleaned = _clean_address(address)

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise OrderNotFoundError("Order not found", details={"order_id": order_id})
        if order.user_id != user_id:
            raise OrderOwnershipError("You cannot modify this order", details={"order_id": order_id})
        if order.status not in ADDRESS_EDITABLE_STATUSES:
            raise InvalidTransitionError(
                "The shipping address can no longer be changed for this order",
                details={"order_id": order.id, "status": order.status},
            )
        order.shipping_address = cleaned
        return order

    try:
        return run_with_retry(lambda: run_atomic(_op))
    except SQLAlchemyError as exc:
        raise OrderStoreError(f"Failed to update address: {exc}", details={"order_id": order_id}) from exc
