# Overview: Service-layer operations for customers; encapsulates business logic and database work.

"""
Customer Service

Customers carry contact, address, health and insurance details. Emails are
unique across customers. Sales reference a customer by a snapshot of its id
(stored as a string), so purchase history is a lookup on Sale.customer_id.
"""

from __future__ import annotations

from sqlalchemy import func, or_

from ..errors import CustomerNotFound
from ..extensions import db
from ..models import Customer, Sale
from ..validation import ConflictError

CUSTOMER_MUTABLE_FIELDS = {
    "name", "email", "phone",
    "street", "city", "state", "zip_code", "country",
    "allergies", "conditions", "medications",
    "date_of_birth", "gender",
    "insurance_provider", "insurance_policy_number",
}


def _require_unique_email(email: str | None, exclude_id: int | None = None) -> None:
    if not email:
        return
    query = db.session.query(Customer.id).filter(func.lower(Customer.email) == email.lower())
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    if query.first():
        raise ConflictError("A customer with this email already exists.", details={"email": email})


def get_customer(customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if not customer:
        raise CustomerNotFound("Customer not found", details={"customer_id": customer_id})
    return customer


def list_customers(*, limit: int = 100, offset: int = 0) -> tuple[list[Customer], int]:
    query = db.session.query(Customer)
    total = query.count()
    rows = query.order_by(Customer.created_at.desc(), Customer.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def search_customers(term: str, *, limit: int = 50) -> list[Customer]:
    """Case-insensitive substring match on name, email or phone."""
    needle = f"%{term.strip().lower()}%"
    return (
        db.session.query(Customer)
        .filter(or_(
            func.lower(Customer.name).like(needle),
            func.lower(Customer.email).like(needle),
            func.lower(Customer.phone).like(needle),
        ))
        .order_by(Customer.name.asc())
        .limit(limit)
        .all()
    )


def create_customer(*, patch: dict) -> Customer:
    _require_unique_email(patch.get("email"))

    customer = Customer()
    for k, v in patch.items():
        if k in CUSTOMER_MUTABLE_FIELDS:
            setattr(customer, k, v)

    db.session.add(customer)
    db.session.commit()
    return customer


def update_customer(*, customer_id: int, patch: dict) -> Customer:
    customer = get_customer(customer_id)
    if "email" in patch and patch["email"] != customer.email:
        _require_unique_email(patch["email"], exclude_id=customer.id)

    for k, v in patch.items():
        if k in CUSTOMER_MUTABLE_FIELDS:
            setattr(customer, k, v)

    db.session.commit()
    return customer


def delete_customer(*, customer_id: int) -> None:
    customer = get_customer(customer_id)
    db.session.delete(customer)
    db.session.commit()


def customer_purchase_history(customer_id: int) -> list[Sale]:
    """Sales recorded against the customer, newest first."""
    customer = get_customer(customer_id)
    return (
        db.session.query(Sale)
        .filter(Sale.customer_id == str(customer.id))
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .all()
    )
