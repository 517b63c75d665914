# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/pharmacy/routes/products.py
"""
Product catalog routes.

Stock can be set when a product is created; afterwards it only moves
through sales and purchase orders, so PUT rejects a stock field.

SECURITY: All routes require authentication.
"""
from flask import Blueprint, request, jsonify, current_app

from ..errors import ProductNotFound
from ..models import Product
from ..services import inventory_service
from ..services import products_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    parse_int_field,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "category", "description", "manufacturer",
        "price_cents", "stock", "reorder_level", "expiry_date",
    },
    required_on_create={"name", "category", "price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    List products with optional filters and pagination.

    Query params:
    - category: exact category
    - q: name search (case-insensitive)
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    result = products_service.list_products(
        category=request.args.get("category"),
        q=request.args.get("q"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result), 200


@products_bp.get("/alerts/low-stock")
@require_auth
def low_stock_route():
    """Products at or below their reorder level."""
    products = inventory_service.low_stock_products()
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.get("/alerts/expiring")
@require_auth
def expiring_route():
    """Products expiring within EXPIRY_ALERT_DAYS (override with ?days=)."""
    days = request.args.get("days", current_app.config["EXPIRY_ALERT_DAYS"], type=int)
    products = inventory_service.expiring_products(max(days, 0))
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products), "days": days}), 200


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = inventory_service.get_product(product_id)
    except ProductNotFound:
        return jsonify({"error": "Product not found"}), 404
    return jsonify(product.to_dict()), 200


@products_bp.get("/<int:product_id>/movements")
@require_auth
def product_movements_route(product_id: int):
    """Stock movement history, newest first."""
    limit = min(max(request.args.get("limit", 100, type=int), 1), 500)
    offset = max(request.args.get("offset", 0, type=int), 0)
    try:
        movements, total = inventory_service.list_movements(product_id, limit=limit, offset=offset)
    except ProductNotFound:
        return jsonify({"error": "Product not found"}), 404
    return jsonify({
        "items": [m.to_dict() for m in movements],
        "count": len(movements),
        "total": total,
    }), 200


@products_bp.post("")
@require_auth
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)  # Handles price validation including max check
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400

    product = products_service.create_product(patch=patch)
    return jsonify(product.to_dict()), 201


@products_bp.put("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        updated = products_service.update_product(product_id=product_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except ProductNotFound:
        return jsonify({"error": "Product not found"}), 404

    return jsonify(updated.to_dict()), 200


@products_bp.patch("/<int:product_id>/reorder-level")
@require_auth
def update_reorder_level_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        level = parse_int_field(payload.get("reorder_level"), "reorder_level", minimum=0)
        updated = products_service.update_reorder_level(product_id=product_id, reorder_level=level)
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except ProductNotFound:
        return jsonify({"error": "Product not found"}), 404

    return jsonify(updated.to_dict()), 200


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id=product_id)
    except ProductNotFound:
        return jsonify({"error": "Product not found"}), 404
    except ConflictError as e:
        return jsonify({"error": str(e), "details": e.details}), 409

    return jsonify({"message": "Product deleted successfully"}), 200
