# Overview: Service-layer operations for sale payments; encapsulates business logic and database work.

"""
Payment Service

Later payments against a sale add to paid_amount_cents and recompute the
due amount and status under a row lock. Each installment is kept as a
SalePayment row.
"""

from __future__ import annotations

from ..errors import SaleNotFound, ValidationError
from ..extensions import db
from ..models import Sale, SalePayment
from ..validation import MAX_AMOUNT_CENTS, check_amount, parse_int_field
from .concurrency import lock_for_update, run_atomic
from .sales_service import derive_status, validate_payment_method


def record_payment(
    sale_id: int,
    *,
    amount_cents,
    payment_method: str | None = None,
    user_id: int | None = None,
) -> Sale:
    """
    Apply a payment to a sale.

    Raises:
        ValidationError: amount is not a positive integer, or nothing is due
        SaleNotFound: sale does not exist
    """
    amount = parse_int_field(amount_cents, "paid_amount_cents", minimum=1, maximum=MAX_AMOUNT_CENTS)
    if payment_method is not None:
        validate_payment_method(payment_method)

    def _op() -> Sale:
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise SaleNotFound("Sale not found", details={"sale_id": sale_id})

        if sale.due_amount_cents <= 0:
            raise ValidationError(
                "Sale has no remaining balance due",
                details={"due_amount_cents": sale.due_amount_cents},
            )

        sale.paid_amount_cents = check_amount(sale.paid_amount_cents + amount, "paid_amount_cents")
        sale.due_amount_cents = sale.total_cents - sale.paid_amount_cents
        sale.status = derive_status(sale.due_amount_cents)

        db.session.add(SalePayment(
            sale_id=sale.id,
            amount_cents=amount,
            payment_method=payment_method or sale.payment_method,
            due_after_cents=sale.due_amount_cents,
            created_by_user_id=user_id,
        ))
        return sale

    return run_atomic(_op)


def get_sale_payments(sale_id: int) -> list[SalePayment]:
    """Payments for a sale, oldest first."""
    if not db.session.query(Sale.id).filter_by(id=sale_id).first():
        raise SaleNotFound("Sale not found", details={"sale_id": sale_id})
    return (
        db.session.query(SalePayment)
        .filter_by(sale_id=sale_id)
        .order_by(SalePayment.created_at.asc(), SalePayment.id.asc())
        .all()
    )
