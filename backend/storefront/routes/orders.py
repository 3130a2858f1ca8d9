# Overview: Flask API routes for orders; parses input and returns JSON responses.

# backend/storefront/routes/orders.py
"""Order API routes (admin back office and customer self-service)"""

from flask import Blueprint, request, jsonify, g

from ..services import order_service
from ..services.order_service import (
    OrderError,
    OrderNotFoundError,
    OrderOwnershipError,
    OrderStoreError,
)
from ..time_utils import parse_iso_datetime
from ..decorators import require_login, require_admin
from flask import current_app


admin_orders_bp = Blueprint("admin_orders", __name__, url_prefix="/api/admin/orders")
orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _error_response(exc: OrderError):
    if isinstance(exc, OrderNotFoundError):
        status_code = 404
    elif isinstance(exc, OrderOwnershipError):
        status_code = 403
    elif isinstance(exc, OrderStoreError):
        status_code = 503
    else:
        status_code = 400
    return jsonify({"success": False, "message": exc.message, "details": exc.details}), status_code


@admin_orders_bp.get("")
@require_login
@require_admin
def list_orders_route():
    status = request.args.get("status") or None
    limit = request.args.get("limit", 200, type=int)
    try:
        orders = order_service.list_orders(status=status, limit=min(max(limit, 1), 500))
    except OrderError as e:
        return _error_response(e)

    return jsonify({
        "success": True,
        "message": "OK",
        "orders": [order.to_dict() for order in orders],
    }), 200


@admin_orders_bp.get("/<int:order_id>")
@require_login
@require_admin
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
    except OrderError as e:
        return _error_response(e)

    return jsonify({"success": True, "message": "OK", "order": order.to_dict(include_items=True)}), 200


@admin_orders_bp.post("/<int:order_id>/cancel")
@require_login
@require_admin
def cancel_order_route(order_id: int):
    """Cancel an order and return its reserved stock."""
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.cancel_order(order_id, reason=data.get("reason"))
        return jsonify({
            "success": True,
            "message": "Order cancelled successfully",
            "order": order.to_dict(),
        }), 200

    except OrderError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@admin_orders_bp.post("/<int:order_id>/status")
@require_login
@require_admin
def update_status_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        new_status = data.get("status")
        if not new_status:
            return jsonify({"success": False, "message": "status required"}), 400

        order = order_service.update_order_status(order_id, new_status)
        return jsonify({
            "success": True,
            "message": "Order status updated",
            "order": order.to_dict(),
        }), 200

    except OrderError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@admin_orders_bp.post("/<int:order_id>/tracking")
@require_login
@require_admin
def update_tracking_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.update_tracking_info(
            order_id,
            carrier_name=data.get("carrier_name"),
            tracking_number=data.get("tracking_number"),
            tracking_url=data.get("tracking_url"),
        )
        return jsonify({
            "success": True,
            "message": "Tracking info updated",
            "order": order.to_dict(),
        }), 200

    except OrderError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update tracking info")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@admin_orders_bp.post("/sweep")
@require_login
@require_admin
def sweep_route():
    """
    Cancel pending_payment orders older than the payment timeout.

    Optional JSON body: {"cutoff": "<ISO-8601>"}.
    """
    try:
        data = request.get_json(silent=True) or {}
        try:
            cutoff = parse_iso_datetime(data.get("cutoff"))
        except (AttributeError, TypeError, ValueError):
            return jsonify({"success": False, "message": "cutoff must be an ISO-8601 datetime"}), 400

        report = order_service.sweep_timed_out_orders(cutoff)
        return jsonify({
            "success": not report.failed,
            "message": f"{len(report.cancelled)} cancelled, {len(report.failed)} failed",
            "report": report.to_dict(),
        }), 200

    except Exception:
        current_app.logger.exception("Failed to sweep timed-out orders")
        return jsonify({"success": False, "message": "Internal server error"}), 500


@orders_bp.get("")
@require_login
def my_orders_route():
    orders = order_service.list_orders(user_id=g.current_user.id)
    return jsonify({
        "success": True,
        "message": "OK",
        "orders": [order.to_dict(include_items=True) for order in orders],
    }), 200


@orders_bp.put("/<int:order_id>/address")
@require_login
def update_address_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.update_order_address(order_id, g.current_user.id, data.get("address"))
        return jsonify({
            "success": True,
            "message": "Address updated",
            "order": order.to_dict(),
        }), 200

    except OrderError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order address")
        return jsonify({"success": False, "message": "Internal server error"}), 500
