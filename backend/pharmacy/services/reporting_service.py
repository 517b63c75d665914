# Overview: Service-layer operations for reporting; read-only projections over sales, stock and purchasing.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import String, cast, func, select

from pharmacy.extensions import db
from pharmacy.models import (
    Customer,
    Product,
    PurchaseOrder,
    Sale,
    SaleLine,
    Supplier,
)
from pharmacy.errors import ValidationError
from pharmacy.services.inventory_service import expiring_products, low_stock_products
from pharmacy.time_utils import parse_iso_datetime, utcnow, to_utc_z

TOP_N = 5


def _parse_bound(value: str | None, field: str, *, end: bool) -> datetime | None:
    if not value:
        return None
    try:
        dt = parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date or datetime")
    # A bare end date covers that whole day
    if end and dt is not None and len(value.strip()) == 10:
        dt = dt + timedelta(days=1) - timedelta(microseconds=1)
    return dt


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    start_dt = _parse_bound(start, "start_date", end=False)
    end_dt = _parse_bound(end, "end_date", end=True)
    if start_dt and end_dt and start_dt > end_dt:
        raise ValidationError("start_date must be before end_date")
    return start_dt, end_dt


def _in_range(query, column, start_dt, end_dt):
    if start_dt:
        query = query.filter(column >= start_dt)
    if end_dt:
        query = query.filter(column <= end_dt)
    return query


def _range_payload(start_dt, end_dt) -> dict:
    return {
        "start_date": to_utc_z(start_dt) if start_dt else None,
        "end_date": to_utc_z(end_dt) if end_dt else None,
    }


def sales_report(*, start: str | None = None, end: str | None = None) -> dict:
    start_dt, end_dt = _parse_range(start, end)

    totals = _in_range(
        db.session.query(
            func.count(Sale.id).label("total_sales"),
            func.coalesce(func.sum(Sale.total_cents), 0).label("total_revenue_cents"),
        ),
        Sale.date, start_dt, end_dt,
    ).one()

    top = _in_range(
        db.session.query(
            SaleLine.product_id,
            Product.name,
            func.sum(SaleLine.quantity).label("quantity"),
            func.sum(SaleLine.subtotal_cents).label("revenue_cents"),
        )
        .join(Sale, Sale.id == SaleLine.sale_id)
        .join(Product, Product.id == SaleLine.product_id),
        Sale.date, start_dt, end_dt,
    ).group_by(SaleLine.product_id, Product.name).order_by(func.sum(SaleLine.subtotal_cents).desc()).limit(TOP_N).all()

    total_sales = int(totals.total_sales or 0)
    revenue = int(totals.total_revenue_cents or 0)
    return {
        **_range_payload(start_dt, end_dt),
        "total_sales": total_sales,
        "total_revenue_cents": revenue,
        "average_order_value_cents": revenue // total_sales if total_sales else 0,
        "top_selling_products": [
            {
                "product_id": row.product_id,
                "name": row.name,
                "quantity": int(row.quantity or 0),
                "revenue_cents": int(row.revenue_cents or 0),
            }
            for row in top
        ],
    }


def inventory_report(*, expiry_days: int = 183) -> dict:
    metrics = db.session.query(
        func.count(Product.id).label("total_products"),
        func.coalesce(func.sum(Product.price_cents * Product.stock), 0).label("total_value_cents"),
    ).one()
    out_of_stock = db.session.query(func.count(Product.id)).filter(Product.stock == 0).scalar() or 0

    return {
        "total_products": int(metrics.total_products or 0),
        "total_value_cents": int(metrics.total_value_cents or 0),
        "out_of_stock": int(out_of_stock),
        "low_stock_products": [p.to_dict() for p in low_stock_products()],
        "expiring_products": [p.to_dict() for p in expiring_products(expiry_days)],
    }


def customers_report(*, start: str | None = None, end: str | None = None) -> dict:
    start_dt, end_dt = _parse_range(start, end)

    total_customers = db.session.query(func.count(Customer.id)).scalar() or 0
    new_customers = _in_range(
        db.session.query(func.count(Customer.id)), Customer.created_at, start_dt, end_dt
    ).scalar() or 0

    # Sales keep the customer id as a string snapshot
    active_ids = _in_range(
        db.session.query(Sale.customer_id).distinct(), Sale.date, start_dt, end_dt
    ).subquery()
    active_customers = (
        db.session.query(func.count(Customer.id))
        .filter(cast(Customer.id, String).in_(select(active_ids.c.customer_id)))
        .scalar()
        or 0
    )

    top = _in_range(
        db.session.query(
            Sale.customer_id,
            func.max(Sale.customer_name).label("name"),
            func.count(Sale.id).label("total_purchases"),
            func.sum(Sale.total_cents).label("total_spent_cents"),
        ),
        Sale.date, start_dt, end_dt,
    ).group_by(Sale.customer_id).order_by(func.sum(Sale.total_cents).desc()).limit(TOP_N).all()

    return {
        **_range_payload(start_dt, end_dt),
        "total_customers": int(total_customers),
        "new_customers": int(new_customers),
        "active_customers": int(active_customers),
        "top_customers": [
            {
                "customer_id": row.customer_id,
                "name": row.name,
                "total_purchases": int(row.total_purchases or 0),
                "total_spent_cents": int(row.total_spent_cents or 0),
            }
            for row in top
        ],
    }


def purchases_report(*, start: str | None = None, end: str | None = None) -> dict:
    start_dt, end_dt = _parse_range(start, end)

    orders = _in_range(db.session.query(PurchaseOrder), PurchaseOrder.created_at, start_dt, end_dt).subquery()

    metrics = db.session.query(
        func.count(orders.c.id).label("total_purchases"),
        func.coalesce(func.sum(orders.c.total_amount_cents), 0).label("total_cost_cents"),
    ).one()
    pending = (
        db.session.query(func.count(orders.c.id)).filter(orders.c.status == "ordered").scalar() or 0
    )

    top = (
        db.session.query(
            orders.c.supplier_id,
            Supplier.name,
            func.count(orders.c.id).label("order_count"),
            func.sum(orders.c.total_amount_cents).label("total_amount_cents"),
        )
        .outerjoin(Supplier, Supplier.id == orders.c.supplier_id)
        .group_by(orders.c.supplier_id, Supplier.name)
        .order_by(func.sum(orders.c.total_amount_cents).desc())
        .limit(TOP_N)
        .all()
    )

    return {
        **_range_payload(start_dt, end_dt),
        "total_purchases": int(metrics.total_purchases or 0),
        "total_cost_cents": int(metrics.total_cost_cents or 0),
        "pending_orders": int(pending),
        "top_suppliers": [
            {
                "supplier_id": row.supplier_id,
                "name": row.name or "Unknown Supplier",
                "order_count": int(row.order_count or 0),
                "total_amount_cents": int(row.total_amount_cents or 0),
            }
            for row in top
        ],
    }


def _month_start(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _revenue_by_product(start_dt=None, end_dt=None) -> dict[int, int]:
    query = (
        db.session.query(SaleLine.product_id, func.sum(SaleLine.subtotal_cents))
        .join(Sale, Sale.id == SaleLine.sale_id)
    )
    if start_dt:
        query = query.filter(Sale.date >= start_dt)
    if end_dt:
        query = query.filter(Sale.date < end_dt)
    return {product_id: int(total or 0) for product_id, total in query.group_by(SaleLine.product_id).all()}


def products_report(*, now: datetime | None = None) -> dict:
    """
    Per-product sales performance.

    growth_percent compares this month's revenue with last month's; it is 0
    when last month had no revenue for the product.
    """
    now = now or utcnow()
    this_month = _month_start(now)
    last_month = _month_start(this_month - timedelta(days=1))

    totals = dict(
        (row.product_id, (int(row.quantity or 0), int(row.revenue or 0)))
        for row in db.session.query(
            SaleLine.product_id,
            func.sum(SaleLine.quantity).label("quantity"),
            func.sum(SaleLine.subtotal_cents).label("revenue"),
        ).group_by(SaleLine.product_id).all()
    )
    current = _revenue_by_product(this_month, None)
    previous = _revenue_by_product(last_month, this_month)

    products = db.session.query(Product).order_by(Product.name.asc()).all()

    rows = []
    categories: dict[str, dict] = {}
    for product in products:
        quantity, revenue = totals.get(product.id, (0, 0))
        prev = previous.get(product.id, 0)
        growth = round((current.get(product.id, 0) - prev) / prev * 100) if prev else 0
        rows.append({
            "product_id": product.id,
            "name": product.name,
            "quantity_sold": quantity,
            "revenue_cents": revenue,
            "growth_percent": growth,
            "stock": product.stock,
        })

        bucket = categories.setdefault(product.category, {"name": product.category, "stock": 0})
        bucket["stock"] += product.stock

    rows.sort(key=lambda r: r["revenue_cents"], reverse=True)
    return {
        "products": rows,
        "categories": sorted(categories.values(), key=lambda c: c["name"]),
    }


def sales_summary(*, now: datetime | None = None) -> dict:
    """Today's and month-to-date sales totals (UTC)."""
    now = now or utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    month_start = _month_start(now)

    def _totals(since: datetime) -> dict:
        total, count = db.session.query(
            func.coalesce(func.sum(Sale.total_cents), 0),
            func.count(Sale.id),
        ).filter(Sale.date >= since).one()
        return {"total_cents": int(total or 0), "count": int(count or 0)}

    return {
        "daily": _totals(today),
        "monthly": _totals(month_start),
    }
