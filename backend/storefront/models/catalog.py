from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z, utcnow


class Product(db.Model):
    """Catalog product. Stock lives on its variants, not here."""
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    brand = db.Column(db.String(128), nullable=True)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "brand": self.brand,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class ProductVariant(db.Model):
    """
    Sellable variant (flavour / nicotine strength) of a product.

    stock_quantity is shared by order placement and order cancellation, so it
    is only ever changed through a single UPDATE with an arithmetic
    expression (see inventory_service), never read-then-write.
    """
    __tablename__ = "product_variants"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_product_variants_stock_non_negative"),
        db.Index("ix_product_variants_product", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    sku = db.Column(db.String(64), nullable=True, unique=True)
    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=True)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product", backref=db.backref("variants", lazy=True))

    def __repr__(self) -> str:
        return f"<ProductVariant id={self.id} name={self.name!r} stock={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "price_cents": self.price_cents,
            "stock_quantity": self.stock_quantity,
            "created_at": to_utc_z(self.created_at),
        }


class RestockSubscription(db.Model):
    """A shopper waiting for an out-of-stock variant to come back."""
    __tablename__ = "restock_subscriptions"
    __table_args__ = (
        db.Index("ix_restock_subscriptions_variant_pending", "product_variant_id", "is_notified"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False)
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id"), nullable=True)
    email = db.Column(db.String(255), nullable=False)

    is_notified = db.Column(db.Boolean, nullable=False, default=False)
    notified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    variant = db.relationship("ProductVariant", backref=db.backref("restock_subscriptions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_variant_id": self.product_variant_id,
            "user_id": self.user_id,
            "email": self.email,
            "is_notified": self.is_notified,
            "notified_at": to_utc_z(self.notified_at),
            "created_at": to_utc_z(self.created_at),
        }
