# backend/pharmacy/services/products_service.py
"""
Products Service

Plain catalog CRUD. Initial stock may be set when a product is created;
after that, stock only moves through the InventoryLedger (sales and
purchase orders), so update_product refuses to touch it.

Products that appear on any sale or purchase-order line, or that have stock
movements, cannot be deleted: the history would lose its product reference.
"""
from __future__ import annotations

from sqlalchemy import func

from ..errors import ProductNotFound
from ..extensions import db
from ..models import Product, PurchaseOrderLine, SaleLine, StockMovement
from ..validation import MAX_STOCK, ConflictError, ValidationError

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "category",
    "description",
    "manufacturer",
    "price_cents",
    "reorder_level",
    "expiry_date",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def list_products(
    *,
    category: str | None = None,
    q: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional filters and pagination.

    Args:
        category: exact category match
        q: case-insensitive substring of the product name
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)
    """
    base_query = db.session.query(Product)
    if category:
        base_query = base_query.filter(Product.category == category)
    if q:
        base_query = base_query.filter(func.lower(Product.name).contains(q.strip().lower()))
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def create_product(*, patch: dict) -> Product:
    p = Product(stock=patch.get("stock", 0) or 0)
    apply_product_patch(p, patch)

    db.session.add(p)
    db.session.commit()
    return p


def update_product(*, product_id: int, patch: dict) -> Product:
    """
    Update catalog fields of a product.

    Raises:
        ProductNotFound: product does not exist
        ValidationError: the patch tries to set stock
    """
    if "stock" in patch:
        raise ValidationError("stock cannot be changed directly; use sales or purchase orders")

    p = db.session.query(Product).filter(Product.id == product_id).first()
    if not p:
        raise ProductNotFound("Product not found", details={"product_id": product_id})

    apply_product_patch(p, patch)
    db.session.commit()
    return p


def update_reorder_level(*, product_id: int, reorder_level: int) -> Product:
    if reorder_level < 0:
        raise ValidationError("reorder_level must be >= 0")
    if reorder_level > MAX_STOCK:
        raise ValidationError(f"reorder_level cannot exceed {MAX_STOCK}")

    p = db.session.query(Product).filter(Product.id == product_id).first()
    if not p:
        raise ProductNotFound("Product not found", details={"product_id": product_id})

    p.reorder_level = reorder_level
    db.session.commit()
    return p


def delete_product(*, product_id: int) -> None:
    """
    Hard-delete a product that no document references.

    Raises:
        ProductNotFound: product does not exist
        ConflictError: product appears on a document line or has stock movements
    """
    p = db.session.query(Product).filter(Product.id == product_id).first()
    if not p:
        raise ProductNotFound("Product not found", details={"product_id": product_id})

    on_sales = db.session.query(SaleLine.id).filter(SaleLine.product_id == product_id).first()
    on_orders = db.session.query(PurchaseOrderLine.id).filter(PurchaseOrderLine.product_id == product_id).first()
    has_history = db.session.query(StockMovement.id).filter(StockMovement.product_id == product_id).first()
    if on_sales or on_orders or has_history:
        raise ConflictError(
            "Product is referenced by sales, purchase orders or stock history and cannot be deleted.",
            details={"product_id": product_id},
        )

    db.session.delete(p)
    db.session.commit()
