# Overview: Service-layer operations for sales; turns a proposed sale into a committed sale plus stock debits.

"""
Sales Service

A sale is created in one atomic unit:

1. Allocate the next invoice number (INV######) from the sale counter.
2. For every line, in submission order, resolve the product and reserve
   the quantity on the InventoryLedger. A missing product or short stock
   aborts the whole sale before any row is written.
3. Persist the sale, its lines and the opening payment, then apply the
   ledger's debits (guarded UPDATEs) and commit.

Totals are derived from the lines. A caller-supplied total or line subtotal
that disagrees with the computed value is rejected rather than stored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from ..errors import SaleNotFound, ValidationError
from ..extensions import db
from ..models import Sale, SaleLine, SalePayment
from ..validation import (
    MAX_AMOUNT_CENTS,
    MAX_PRICE_CENTS,
    MAX_QUANTITY,
    PAYMENT_METHODS,
    check_amount,
    parse_int_field,
)
from pharmacy.time_utils import parse_iso_datetime, utcnow
from .concurrency import run_atomic
from .document_service import SALE_SEQUENCE, next_document_number
from .inventory_service import InventoryLedger


STATUS_PAID = "paid"
STATUS_PARTIAL = "partial"


@dataclass(frozen=True)
class SaleItemInput:
    product_id: int
    quantity: int
    unit_price_cents: int | None = None
    subtotal_cents: int | None = None


def derive_status(due_amount_cents: int) -> str:
    """A sale is paid once nothing (or less than nothing) is still due."""
    return STATUS_PAID if due_amount_cents <= 0 else STATUS_PARTIAL


def validate_payment_method(method) -> str:
    if method is None:
        return "cash"
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
    return method


def parse_sale_items(items) -> list[SaleItemInput]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    parsed = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        prefix = f"items[{index}]"
        unit_price = raw.get("unit_price_cents")
        subtotal = raw.get("subtotal_cents")
        parsed.append(SaleItemInput(
            product_id=parse_int_field(raw.get("product_id"), f"{prefix}.product_id", minimum=1),
            quantity=parse_int_field(
                raw.get("quantity"), f"{prefix}.quantity", minimum=1, maximum=MAX_QUANTITY
            ),
            unit_price_cents=(
                parse_int_field(unit_price, f"{prefix}.unit_price_cents", minimum=0, maximum=MAX_PRICE_CENTS)
                if unit_price is not None else None
            ),
            subtotal_cents=(
                parse_int_field(subtotal, f"{prefix}.subtotal_cents", minimum=0, maximum=MAX_AMOUNT_CENTS)
                if subtotal is not None else None
            ),
        ))
    return parsed


def create_sale(
    *,
    customer_id,
    customer_name: str | None,
    items,
    paid_amount_cents,
    customer_phone: str | None = None,
    payment_method: str | None = None,
    total_cents=None,
    date=None,
    user_id: int | None = None,
    ledger_factory: Callable[[], InventoryLedger] = InventoryLedger,
) -> Sale:
    """
    Create a sale and debit stock for every line, all or nothing.

    Raises:
        ValidationError: malformed input or a total that does not match the lines
        ProductNotFound: a line references a missing product
        InsufficientStock: a line asks for more than is available
        ConcurrencyConflict / StorageError: the unit could not be committed
    """
    if customer_id is None or str(customer_id).strip() == "":
        raise ValidationError("customer_id is required")
    if not customer_name or not str(customer_name).strip():
        raise ValidationError("customer_name is required")

    lines = parse_sale_items(items)
    paid = parse_int_field(paid_amount_cents, "paid_amount_cents", minimum=0, maximum=MAX_AMOUNT_CENTS)
    method = validate_payment_method(payment_method)
    submitted_total = (
        parse_int_field(total_cents, "total_cents", minimum=0, maximum=MAX_AMOUNT_CENTS)
        if total_cents is not None else None
    )

    sale_date = utcnow()
    if date:
        try:
            sale_date = parse_iso_datetime(date) or sale_date
        except (TypeError, ValueError):
            raise ValidationError("date must be an ISO-8601 datetime")

    def _op() -> Sale:
        ledger = ledger_factory()
        invoice_number = next_document_number(SALE_SEQUENCE)

        sale_lines = []
        for position, item in enumerate(lines, start=1):
            ledger.reserve(item.product_id, item.quantity, note=f"Sale {invoice_number}")
            product = ledger.resolve(item.product_id)

            unit_price = item.unit_price_cents
            if unit_price is None:
                unit_price = product.price_cents
            subtotal = check_amount(
                unit_price * item.quantity,
                f"items[{position - 1}].subtotal_cents",
                details={"product_id": item.product_id},
            )
            if item.subtotal_cents is not None and item.subtotal_cents != subtotal:
                raise ValidationError(
                    f"items[{position - 1}].subtotal_cents does not equal quantity x unit price",
                    details={"expected": subtotal, "submitted": item.subtotal_cents},
                )

            sale_lines.append(SaleLine(
                product_id=item.product_id,
                position=position,
                quantity=item.quantity,
                unit_price_cents=unit_price,
                subtotal_cents=subtotal,
            ))

        computed_total = check_amount(sum(line.subtotal_cents for line in sale_lines), "total_cents")
        if submitted_total is not None and submitted_total != computed_total:
            raise ValidationError(
                "total_cents does not match the sum of line subtotals",
                details={"expected": computed_total, "submitted": submitted_total},
            )

        due = computed_total - paid
        sale = Sale(
            invoice_number=invoice_number,
            date=sale_date,
            customer_id=str(customer_id).strip(),
            customer_name=str(customer_name).strip(),
            customer_phone=customer_phone,
            total_cents=computed_total,
            paid_amount_cents=paid,
            due_amount_cents=due,
            payment_method=method,
            status=derive_status(due),
            created_by_user_id=user_id,
            lines=sale_lines,
        )
        db.session.add(sale)
        db.session.flush()

        if paid > 0:
            db.session.add(SalePayment(
                sale_id=sale.id,
                amount_cents=paid,
                payment_method=method,
                due_after_cents=due,
                created_by_user_id=user_id,
            ))

        ledger.apply(
            reference_type="sale",
            reference_id=sale.id,
            reference_number=invoice_number,
            actor_user_id=user_id,
        )
        return sale

    return run_atomic(_op)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if not sale:
        raise SaleNotFound("Sale not found", details={"sale_id": sale_id})
    return sale


def list_sales(
    *,
    status: str | None = None,
    customer_id: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Sale], int]:
    """Newest first."""
    query = db.session.query(Sale)
    if status:
        query = query.filter(Sale.status == status)
    if customer_id:
        query = query.filter(Sale.customer_id == str(customer_id))

    total = query.count()
    rows = query.order_by(Sale.created_at.desc(), Sale.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def customer_dues(customer_id: str) -> list[Sale]:
    """Sales of a customer that still have an amount due."""
    return (
        db.session.query(Sale)
        .filter(Sale.customer_id == str(customer_id), Sale.status == STATUS_PARTIAL)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .all()
    )
