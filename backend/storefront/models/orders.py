from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z, utcnow


class Order(db.Model):
    """
    Customer order.

    STATUS GRAPH:
        pending_payment -> paid -> shipped -> completed
        pending_payment -> cancelled
        paid            -> cancelled

    Items are fixed once the order leaves pending_payment. The shipping
    address may only change while the order is pending_payment or paid.
    version_id guards against two writers cancelling the same order.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_user", "user_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id"), nullable=False)

    status = db.Column(db.String(32), nullable=False, default="pending_payment")
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    shipping_address = db.Column(db.JSON, nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    carrier_name = db.Column(db.String(128), nullable=True)
    tracking_number = db.Column(db.String(128), nullable=True)
    tracking_url = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("Profile", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} status={self.status!r}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "total_cents": self.total_cents,
            "shipping_address": self.shipping_address,
            "cancel_reason": self.cancel_reason,
            "carrier_name": self.carrier_name,
            "tracking_number": self.tracking_number,
            "tracking_url": self.tracking_url,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """
    Line of an order. quantity is the stock reserved when the order was placed.
    product_variant_id becomes NULL if the variant is later deleted.
    """
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_variant_id = db.Column(
        db.Integer,
        db.ForeignKey("product_variants.id", ondelete="SET NULL"),
        nullable=True,
    )

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    variant = db.relationship("ProductVariant")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_variant_id": self.product_variant_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
        }
