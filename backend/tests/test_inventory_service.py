"""
Variant stock and restock-subscription tests.
"""

import pytest

from storefront.extensions import db
from storefront.models import ProductVariant, RestockSubscription
from storefront.services import inventory_service
from storefront.services.inventory_service import (
    InventoryError,
    StockValidationError,
    VariantNotFoundError,
)


def _stock(variant_id: int) -> int:
    db.session.expire_all()
    return db.session.get(ProductVariant, variant_id).stock_quantity


class TestRestoreStock:

    def test_increments_inside_open_transaction(self, variant_factory):
        variant = variant_factory(stock=3)

        inventory_service.restore_stock(variant.id, 4)
        db.session.commit()

        assert _stock(variant.id) == 7

    def test_rolls_back_with_caller(self, variant_factory):
        variant = variant_factory(stock=3)

        inventory_service.restore_stock(variant.id, 4)
        db.session.rollback()

        assert _stock(variant.id) == 3

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
    def test_rejects_non_positive_quantities(self, variant_factory, quantity):
        variant = variant_factory(stock=3)
        with pytest.raises(StockValidationError):
            inventory_service.restore_stock(variant.id, quantity)

    def test_missing_variant(self, db_session):
        with pytest.raises(VariantNotFoundError):
            inventory_service.restore_stock(12345, 1)


class TestUpdateStock:

    def test_sets_quantity(self, variant_factory):
        variant = variant_factory(stock=3)
        inventory_service.update_stock(variant.id, 40)
        assert _stock(variant.id) == 40

    def test_negative_rejected(self, variant_factory):
        variant = variant_factory(stock=3)
        with pytest.raises(StockValidationError):
            inventory_service.update_stock(variant.id, -1)
        assert _stock(variant.id) == 3

    def test_missing_variant(self, db_session):
        with pytest.raises(VariantNotFoundError):
            inventory_service.update_stock(12345, 1)


class TestRestockSubscriptions:

    def test_subscribe_reuses_pending_subscription(self, variant_factory):
        variant = variant_factory(stock=0)

        first = inventory_service.subscribe_restock(variant.id, "Vaper@Example.com")
        second = inventory_service.subscribe_restock(variant.id, "vaper@example.com")

        assert first.id == second.id
        assert first.email == "vaper@example.com"
        assert inventory_service.count_pending_subscriptions(variant.id) == 1

    def test_subscribe_requires_email(self, variant_factory):
        variant = variant_factory(stock=0)
        with pytest.raises(InventoryError):
            inventory_service.subscribe_restock(variant.id, "not-an-email")

    def test_notify_marks_all_pending(self, variant_factory):
        variant = variant_factory(stock=0)
        other = variant_factory(stock=0)
        for email in ("a@example.com", "b@example.com", "c@example.com"):
            inventory_service.subscribe_restock(variant.id, email)
        inventory_service.subscribe_restock(other.id, "d@example.com")

        result = inventory_service.notify_restock_subscribers(variant.id)

        assert result.notified == 3
        assert not result.noop
        assert result.to_dict()["success"] is True
        assert inventory_service.count_pending_subscriptions(variant.id) == 0
        assert inventory_service.count_pending_subscriptions(other.id) == 1
        notified = db.session.query(RestockSubscription).filter_by(product_variant_id=variant.id).all()
        assert all(row.notified_at is not None for row in notified)

    def test_notify_is_idempotent_noop(self, variant_factory):
        variant = variant_factory(stock=0)
        inventory_service.subscribe_restock(variant.id, "a@example.com")
        inventory_service.notify_restock_subscribers(variant.id)

        for _ in range(3):
            result = inventory_service.notify_restock_subscribers(variant.id)
            assert result.noop
            assert result.notified == 0
            assert result.to_dict() == {
                "success": False,
                "noop": True,
                "notified": 0,
                "message": "No pending subscriptions found.",
            }

    def test_late_subscriber_waits_for_next_run(self, app, variant_factory, monkeypatch):
        variant = variant_factory(stock=0)
        variant_id = variant.id
        inventory_service.subscribe_restock(variant.id, "early@example.com")
        real_info = app.logger.info

        def _info_then_subscribe(*args, **kwargs):
            real_info(*args, **kwargs)
            db.session.add(RestockSubscription(product_variant_id=variant_id, email="late@example.com"))
            db.session.flush()

        monkeypatch.setattr(app.logger, "info", _info_then_subscribe)

        result = inventory_service.notify_restock_subscribers(variant.id)

        assert result.notified == 1
        pending = db.session.query(RestockSubscription).filter_by(
            product_variant_id=variant.id, is_notified=False,
        ).all()
        assert [row.email for row in pending] == ["late@example.com"]

    def test_resubscribe_after_notification_creates_new_row(self, variant_factory):
        variant = variant_factory(stock=0)
        first = inventory_service.subscribe_restock(variant.id, "a@example.com")
        inventory_service.notify_restock_subscribers(variant.id)

        second = inventory_service.subscribe_restock(variant.id, "a@example.com")

        assert second.id != first.id
        assert inventory_service.notify_restock_subscribers(variant.id).notified == 1
