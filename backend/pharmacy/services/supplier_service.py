# Overview: Service-layer operations for suppliers; encapsulates business logic and database work.

"""
Supplier Service

Suppliers are required on every purchase order. A supplier that still has
purchase orders cannot be deleted; set its status to "inactive" instead.
"""

from ..errors import SupplierNotFound
from ..extensions import db
from ..models import PurchaseOrder, Supplier
from ..validation import ConflictError

SUPPLIER_MUTABLE_FIELDS = {
    "name", "email", "phone",
    "street", "city", "state", "zip_code", "country",
    "contact_person", "tax_id", "status", "notes",
}


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if not supplier:
        raise SupplierNotFound("Supplier not found", details={"supplier_id": supplier_id})
    return supplier


def list_suppliers(*, status: str | None = None) -> list[Supplier]:
    query = db.session.query(Supplier)
    if status:
        query = query.filter(Supplier.status == status)
    return query.order_by(Supplier.name.asc(), Supplier.id.asc()).all()


def create_supplier(*, patch: dict) -> Supplier:
    supplier = Supplier()
    for k, v in patch.items():
        if k in SUPPLIER_MUTABLE_FIELDS:
            setattr(supplier, k, v)

    db.session.add(supplier)
    db.session.commit()
    return supplier


def update_supplier(*, supplier_id: int, patch: dict) -> Supplier:
    supplier = get_supplier(supplier_id)
    for k, v in patch.items():
        if k in SUPPLIER_MUTABLE_FIELDS:
            setattr(supplier, k, v)

    db.session.commit()
    return supplier


def delete_supplier(*, supplier_id: int) -> None:
    supplier = get_supplier(supplier_id)

    has_orders = db.session.query(PurchaseOrder.id).filter(PurchaseOrder.supplier_id == supplier_id).first()
    if has_orders:
        raise ConflictError(
            "Supplier has purchase orders and cannot be deleted.",
            details={"supplier_id": supplier_id},
        )

    db.session.delete(supplier)
    db.session.commit()
