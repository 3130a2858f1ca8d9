# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/storefront/routes/inventory.py
"""Variant stock and restock-notification routes"""

from flask import Blueprint, request, jsonify, g

from ..services import inventory_service
from ..services.inventory_service import InventoryError, VariantNotFoundError
from ..decorators import require_login, require_admin
from flask import current_app


admin_inventory_bp = Blueprint("admin_inventory", __name__, url_prefix="/api/admin/inventory")
inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _error_response(exc: InventoryError):
    status_code = 404 if isinstance(exc, VariantNotFoundError) else 400
    return jsonify({"success": False, "message": exc.message, "details": exc.details}), status_code


@admin_inventory_bp.put("/variants/<int:variant_id>/stock")
@require_login
@require_admin
def update_stock_route(variant_id: int):
    try:
        data = request.get_json(silent=True) or {}
        variant = inventory_service.update_stock(variant_id, data.get("stock_quantity"))
        return jsonify({
            "success": True,
            "message": "Stock updated successfully",
            "variant": variant.to_dict(),
            "pending_subscriptions": inventory_service.count_pending_subscriptions(variant_id),
        }), 200

    except InventoryError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update stock")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@admin_inventory_bp.post("/variants/<int:variant_id>/notify")
@require_login
@require_admin
def notify_subscribers_route(variant_id: int):
    """
    Notify everyone waiting on this variant.

    An empty queue is reported as a no-op (success=false, noop=true), not an error.
    """
    try:
        result = inventory_service.notify_restock_subscribers(variant_id)
        return jsonify(result.to_dict()), 200

    except Exception:
        current_app.logger.exception("Failed to notify restock subscribers")
        return jsonify({"success": False, "message": "Failed to send notifications."}), 500


@inventory_bp.post("/variants/<int:variant_id>/subscribe")
@require_login
def subscribe_route(variant_id: int):
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email") or g.current_user.email
        subscription = inventory_service.subscribe_restock(variant_id, email, user_id=g.current_user.id)
        return jsonify({
            "success": True,
            "message": "We'll let you know when it's back in stock",
            "subscription": subscription.to_dict(),
        }), 201

    except InventoryError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to subscribe to restock")
        return jsonify({"success": False, "message": "Internal server error"}), 500
