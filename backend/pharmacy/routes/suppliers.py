# Overview: Flask API routes for suppliers operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..errors import SupplierNotFound
from ..models import Supplier
from ..services import supplier_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_supplier,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "email", "phone",
        "street", "city", "state", "zip_code", "country",
        "contact_person", "tax_id", "status", "notes",
    },
    required_on_create={"name", "email", "phone"},
    flatten={
        "address": {"street": "street", "city": "city", "state": "state", "zip_code": "zip_code", "country": "country"},
    },
)

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_auth
def list_suppliers_route():
    suppliers = supplier_service.list_suppliers(status=request.args.get("status"))
    return jsonify({"items": [s.to_dict() for s in suppliers], "count": len(suppliers)}), 200


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
def get_supplier_route(supplier_id: int):
    try:
        supplier = supplier_service.get_supplier(supplier_id)
    except SupplierNotFound as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(supplier.to_dict()), 200


@suppliers_bp.post("")
@require_auth
def create_supplier_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
        enforce_rules_supplier(patch)
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400

    supplier = supplier_service.create_supplier(patch=patch)
    return jsonify(supplier.to_dict()), 201


@suppliers_bp.put("/<int:supplier_id>")
@require_auth
def update_supplier_route(supplier_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
        enforce_rules_supplier(patch)
        supplier = supplier_service.update_supplier(supplier_id=supplier_id, patch=patch)
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except SupplierNotFound as e:
        return jsonify({"error": str(e)}), 404

    return jsonify(supplier.to_dict()), 200


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
def delete_supplier_route(supplier_id: int):
    try:
        supplier_service.delete_supplier(supplier_id=supplier_id)
    except SupplierNotFound as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    return jsonify({"message": "Supplier deleted successfully"}), 200
