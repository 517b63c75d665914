# Overview: Flask API routes for purchase order operations; parses input and returns JSON responses.

"""
Purchase order API routes

Status changes into and out of "received" move stock; see
services/purchase_service.py for the rules.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import (
    ConcurrencyConflict,
    InsufficientStock,
    OrderNotFound,
    ProductNotFound,
    StorageError,
    ValidationError,
)
from ..services import purchase_service
from ..decorators import require_auth


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("")
@require_auth
def create_purchase_route():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        order = purchase_service.create_purchase_order(
            supplier_id=data.get("supplier_id"),
            items=data.get("items"),
            status=data.get("status"),
            total_amount_cents=data.get("total_amount_cents"),
            expected_delivery_date=data.get("expected_delivery_date"),
            received_date=data.get("received_date"),
            notes=data.get("notes"),
            user_id=g.current_user.id,
        )
        current_app.logger.info(
            "Purchase order %s created with status=%s (%d line(s))",
            order.order_number, order.status, len(order.lines),
        )
        return jsonify(order.to_dict()), 201

    except (ValidationError, ProductNotFound, InsufficientStock) as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except ConcurrencyConflict as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except StorageError:
        current_app.logger.exception("Storage failure while creating purchase order")
        return jsonify({"error": "Failed to save purchase order"}), 500
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.put("/<int:order_id>")
@require_auth
def update_purchase_route(order_id: int):
    """Update any subset of the create fields; crossing "received" moves stock."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        order = purchase_service.update_purchase_order(
            order_id,
            data,
            user_id=g.current_user.id,
        )
        current_app.logger.info(
            "Purchase order %s updated; status=%s", order.order_number, order.status,
        )
        return jsonify(order.to_dict()), 200

    except OrderNotFound as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except (ValidationError, ProductNotFound, InsufficientStock) as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except ConcurrencyConflict as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except StorageError:
        current_app.logger.exception("Storage failure while updating purchase order")
        return jsonify({"error": "Failed to save purchase order"}), 500
    except Exception:
        current_app.logger.exception("Failed to update purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.delete("/<int:order_id>")
@require_auth
def delete_purchase_route(order_id: int):
    try:
        order_number = purchase_service.delete_purchase_order(order_id, user_id=g.current_user.id)
        current_app.logger.info("Purchase order %s deleted", order_number)
        return jsonify({"message": "Purchase order deleted successfully"}), 200

    except OrderNotFound as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except (ProductNotFound, InsufficientStock) as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except ConcurrencyConflict as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except StorageError:
        current_app.logger.exception("Storage failure while deleting purchase order")
        return jsonify({"error": "Failed to delete purchase order"}), 500
    except Exception:
        current_app.logger.exception("Failed to delete purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("")
@require_auth
def list_purchases_route():
    """
    List purchase orders, newest first.

    Query params: status, supplier_id, limit (default 100, max 500), offset
    """
    limit = min(max(request.args.get("limit", 100, type=int), 1), 500)
    offset = max(request.args.get("offset", 0, type=int), 0)

    orders, total = purchase_service.list_purchase_orders(
        status=request.args.get("status"),
        supplier_id=request.args.get("supplier_id", type=int),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [o.to_dict() for o in orders],
        "count": len(orders),
        "total": total,
    }), 200


@purchases_bp.get("/<int:order_id>")
@require_auth
def get_purchase_route(order_id: int):
    try:
        order = purchase_service.get_purchase_order(order_id)
    except OrderNotFound as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(order.to_dict()), 200
