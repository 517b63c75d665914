# Overview: Flask API routes for customers operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..errors import CustomerNotFound
from ..models import Customer
from ..services import customer_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_customer,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth

ADDRESS_FIELDS = {"street": "street", "city": "city", "state": "state", "zip_code": "zip_code", "country": "country"}

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "email", "phone",
        "street", "city", "state", "zip_code", "country",
        "allergies", "conditions", "medications",
        "date_of_birth", "gender",
        "insurance_provider", "insurance_policy_number",
    },
    required_on_create={"name", "email", "phone"},
    flatten={
        "address": ADDRESS_FIELDS,
        "health_info": {"allergies": "allergies", "conditions": "conditions", "medications": "medications"},
        "insurance_info": {"provider": "insurance_provider", "policy_number": "insurance_policy_number"},
    },
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers_route():
    limit = min(max(request.args.get("limit", 100, type=int), 1), 500)
    offset = max(request.args.get("offset", 0, type=int), 0)
    customers, total = customer_service.list_customers(limit=limit, offset=offset)
    return jsonify({
        "items": [c.to_dict() for c in customers],
        "count": len(customers),
        "total": total,
    }), 200


@customers_bp.get("/search/<query>")
@require_auth
def search_customers_route(query: str):
    """Case-insensitive match on name, email or phone."""
    customers = customer_service.search_customers(query)
    return jsonify({"items": [c.to_dict() for c in customers], "count": len(customers)}), 200


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(customer_id)
    except CustomerNotFound as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(customer.to_dict()), 200


@customers_bp.get("/<int:customer_id>/purchases")
@require_auth
def customer_purchases_route(customer_id: int):
    try:
        sales = customer_service.customer_purchase_history(customer_id)
    except CustomerNotFound as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)}), 200


@customers_bp.post("")
@require_auth
def create_customer_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        enforce_rules_customer(patch)
        customer = customer_service.create_customer(patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except ConflictError as e:
        return jsonify({"error": str(e), "details": e.details}), 409

    return jsonify(customer.to_dict()), 201


@customers_bp.put("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
        enforce_rules_customer(patch)
        customer = customer_service.update_customer(customer_id=customer_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except CustomerNotFound as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e), "details": e.details}), 409

    return jsonify(customer.to_dict()), 200


@customers_bp.delete("/<int:customer_id>")
@require_auth
def delete_customer_route(customer_id: int):
    try:
        customer_service.delete_customer(customer_id=customer_id)
    except CustomerNotFound as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"message": "Customer deleted successfully"}), 200
