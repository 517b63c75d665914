# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/pharmacy/routes/sales.py
"""
Sales API routes

A sale is created in one request: invoice number, lines, opening payment
and stock debits commit together or not at all. Later installments go
through PATCH /<id>/payment.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import (
    ConcurrencyConflict,
    InsufficientStock,
    ProductNotFound,
    SaleNotFound,
    StorageError,
    ValidationError,
)
from ..services import payment_service, reporting_service, sales_service
from ..decorators import require_auth


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Create a sale and debit stock for every line.

    Body: customer_id, customer_name, customer_phone?, items[{product_id,
    quantity, unit_price_cents?, subtotal_cents?}], total_cents?,
    paid_amount_cents, payment_method?, date?
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        sale = sales_service.create_sale(
            customer_id=data.get("customer_id"),
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            items=data.get("items"),
            total_cents=data.get("total_cents"),
            paid_amount_cents=data.get("paid_amount_cents", 0),
            payment_method=data.get("payment_method"),
            date=data.get("date"),
            user_id=g.current_user.id,
        )
        current_app.logger.info(
            "Sale %s created: %d line(s), total=%d cents",
            sale.invoice_number, len(sale.lines), sale.total_cents,
        )
        return jsonify(sale.to_dict()), 201

    except (ValidationError, ProductNotFound, InsufficientStock) as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except ConcurrencyConflict as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except StorageError:
        current_app.logger.exception("Storage failure while creating sale")
        return jsonify({"error": "Failed to save sale"}), 500
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.patch("/<int:sale_id>/payment")
@require_auth
def record_payment_route(sale_id: int):
    """Apply a further payment to a sale. Body: paid_amount_cents, payment_method?"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        sale = payment_service.record_payment(
            sale_id,
            amount_cents=data.get("paid_amount_cents"),
            payment_method=data.get("payment_method"),
            user_id=g.current_user.id,
        )
        current_app.logger.info(
            "Payment recorded on %s: due=%d cents, status=%s",
            sale.invoice_number, sale.due_amount_cents, sale.status,
        )
        return jsonify(sale.to_dict()), 200

    except SaleNotFound as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except ConcurrencyConflict as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except StorageError:
        current_app.logger.exception("Storage failure while recording payment")
        return jsonify({"error": "Failed to save payment"}), 500
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    List sales, newest first.

    Query params: status, customer_id, limit (default 100, max 500), offset
    """
    limit = min(max(request.args.get("limit", 100, type=int), 1), 500)
    offset = max(request.args.get("offset", 0, type=int), 0)

    sales, total = sales_service.list_sales(
        status=request.args.get("status"),
        customer_id=request.args.get("customer_id"),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [s.to_dict() for s in sales],
        "count": len(sales),
        "total": total,
    }), 200


@sales_bp.get("/stats/summary")
@require_auth
def sales_summary_route():
    """Today's and month-to-date totals."""
    return jsonify(reporting_service.sales_summary()), 200


@sales_bp.get("/customer-dues/<customer_id>")
@require_auth
def customer_dues_route(customer_id: str):
    """Sales of a customer that still have an amount due."""
    sales = sales_service.customer_dues(customer_id)
    return jsonify({
        "items": [s.to_dict() for s in sales],
        "count": len(sales),
        "total_due_cents": sum(s.due_amount_cents for s in sales),
    }), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
    except SaleNotFound as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(sale.to_dict()), 200


@sales_bp.get("/<int:sale_id>/payments")
@require_auth
def list_payments_route(sale_id: int):
    try:
        payments = payment_service.get_sale_payments(sale_id)
    except SaleNotFound as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({
        "items": [p.to_dict() for p in payments],
        "count": len(payments),
    }), 200
