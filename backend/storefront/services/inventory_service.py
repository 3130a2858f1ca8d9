# Overview: Service-layer operations for inventory; variant stock and restock subscriptions.

"""
Variant stock and restock subscriptions.

STOCK RULES:
- stock_quantity never goes negative (also enforced by a CHECK constraint)
- Shared counters are changed with one UPDATE ... SET stock_quantity =
  stock_quantity + n, never by reading the value and writing it back
- restore_stock does not commit: it joins the caller's transaction so the
  restoration commits or rolls back together with the order change
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import ProductVariant, RestockSubscription
from storefront.time_utils import utcnow


class InventoryError(Exception):
    """Raised for stock and subscription errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class VariantNotFoundError(InventoryError):
    pass


class StockValidationError(InventoryError):
    pass


@dataclass(frozen=True)
class RestockNotification:
    variant_id: int
    notified: int

    @property
    def noop(self) -> bool:
        return self.notified == 0

    @property
    def message(self) -> str:
        if self.noop:
            return "No pending subscriptions found."
        return f"Successfully notified {self.notified} subscribers."

    def to_dict(self) -> dict:
        return {
            "success": not self.noop,
            "noop": self.noop,
            "notified": self.notified,
            "message": self.message,
        }


def _get_variant(variant_id: int) -> ProductVariant:
    variant = db.session.get(ProductVariant, variant_id)
    if variant is None:
        raise VariantNotFoundError(
            f"Product variant {variant_id} not found",
            details={"product_variant_id": variant_id},
        )
    return variant


def restore_stock(variant_id: int, quantity: int) -> None:
    """
    Return `quantity` reserved units to a variant inside the open transaction.

    Raises:
        StockValidationError: If quantity is not a positive integer
        VariantNotFoundError: If the variant row does not exist
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise StockValidationError(
            "Restored quantity must be a positive integer",
            details={"product_variant_id": variant_id, "quantity": quantity},
        )

    result = db.session.execute(
        update(ProductVariant)
        .where(ProductVariant.id == variant_id)
        .values(stock_quantity=ProductVariant.stock_quantity + quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise VariantNotFoundError(
            f"Product variant {variant_id} not found",
            details={"product_variant_id": variant_id},
        )


def update_stock(variant_id: int, new_quantity: int) -> ProductVariant:
    """Admin stock count: overwrite the on-hand quantity."""
    if isinstance(new_quantity, bool) or not isinstance(new_quantity, int):
        raise StockValidationError("Stock must be an integer")
    if new_quantity < 0:
        raise StockValidationError("Stock cannot be negative")

    variant = _get_variant(variant_id)
    variant.stock_quantity = new_quantity
    db.session.commit()
    return variant


def subscribe_restock(variant_id: int, email: str, user_id: str | None = None) -> RestockSubscription:
    """
    Register interest in a variant coming back in stock.

    A pending (un-notified) subscription for the same email is reused.
    """
    email = (email or "").strip().lower()
    if "@" not in email:
        raise InventoryError("A valid email is required")

    _get_variant(variant_id)

    existing = db.session.query(RestockSubscription).filter_by(
        product_variant_id=variant_id,
        email=email,
        is_notified=False,
    ).first()
    if existing:
        return existing

    subscription = RestockSubscription(
        product_variant_id=variant_id,
        email=email,
        user_id=user_id,
    )
    db.session.add(subscription)
    db.session.commit()
    return subscription


def count_pending_subscriptions(variant_id: int) -> int:
    return db.session.query(RestockSubscription).filter_by(
        product_variant_id=variant_id,
        is_notified=False,
    ).count()


def notify_restock_subscribers(variant_id: int) -> RestockNotification:
    """
    Mark every un-notified subscription for the variant as notified.

    Returns a RestockNotification; notified == 0 is the no-op outcome and is
    what every repeated call reports once the queue is drained.
    """
    pending = db.session.query(RestockSubscription.id, RestockSubscription.email).filter_by(
        product_variant_id=variant_id,
        is_notified=False,
    ).all()
    if not pending:
        return RestockNotification(variant_id=variant_id, notified=0)

    # No mail transport is wired in; the dispatch is recorded in the app log.
    current_app.logger.info(
        "Sending restock notification to %d subscribers for variant %s",
        len(pending), variant_id,
    )

    # Only the batch that was sent; later sign-ups wait for the next run
    updated = db.session.query(RestockSubscription).filter(
        RestockSubscription.id.in_([row.id for row in pending]),
        RestockSubscription.is_notified.is_(False),
    ).update(
        {"is_notified": True, "notified_at": utcnow()},
        synchronize_session=False,
    )
    db.session.commit()
    return RestockNotification(variant_id=variant_id, notified=updated)
