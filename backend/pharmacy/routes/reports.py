from flask import Blueprint, current_app, jsonify, request

from pharmacy.decorators import require_auth
from pharmacy.errors import ValidationError
from pharmacy.services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales")
@require_auth
def sales_report():
    try:
        report = reporting_service.sales_report(
            start=request.args.get("start_date"),
            end=request.args.get("end_date"),
        )
        return jsonify(report), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/inventory")
@require_auth
def inventory_report():
    report = reporting_service.inventory_report(expiry_days=current_app.config["EXPIRY_ALERT_DAYS"])
    return jsonify(report), 200


@reports_bp.get("/customers")
@require_auth
def customers_report():
    try:
        report = reporting_service.customers_report(
            start=request.args.get("start_date"),
            end=request.args.get("end_date"),
        )
        return jsonify(report), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/purchases")
@require_auth
def purchases_report():
    try:
        report = reporting_service.purchases_report(
            start=request.args.get("start_date"),
            end=request.args.get("end_date"),
        )
        return jsonify(report), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/products")
@require_auth
def products_report():
    return jsonify(reporting_service.products_report()), 200
