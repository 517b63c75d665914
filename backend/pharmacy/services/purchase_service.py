# Overview: Service-layer operations for purchase orders; applies stock credits and reversals at the "received" boundary.

"""
Purchase Order Service

LIFECYCLE:
1. draft: being prepared
2. ordered: sent to the supplier
3. received: goods on the shelf (stock credited)
4. cancelled

Any status may be set at creation and any transition is allowed. Stock is
touched only when an order crosses the "received" boundary:

- entering received (or created as received): credit every line of the
  order as it will be stored after the update
- leaving received: debit every line as it was stored before the update
- deleting a received order: debit every stored line, then delete

The line list of an order that is received both before and after an update
cannot change its product quantities; the order has to leave "received"
first. Together these keep "stock credited <=> status == received" exact.

Every create/update/delete runs as one atomic unit with its ledger effects.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Callable

from ..errors import OrderNotFound, ValidationError
from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderLine, Supplier
from ..validation import (
    MAX_AMOUNT_CENTS,
    MAX_PRICE_CENTS,
    MAX_QUANTITY,
    check_amount,
    parse_int_field,
)
from pharmacy.time_utils import parse_iso_datetime, utcnow
from .concurrency import lock_for_update, run_atomic
from .document_service import PURCHASE_ORDER_SEQUENCE, next_document_number
from .inventory_service import InventoryLedger


STATUS_DRAFT = "draft"
STATUS_ORDERED = "ordered"
STATUS_RECEIVED = "received"
STATUS_CANCELLED = "cancelled"

PURCHASE_ORDER_STATUSES = (STATUS_DRAFT, STATUS_ORDERED, STATUS_RECEIVED, STATUS_CANCELLED)

UPDATABLE_FIELDS = {
    "supplier_id",
    "items",
    "status",
    "total_amount_cents",
    "expected_delivery_date",
    "received_date",
    "notes",
}


@dataclass(frozen=True)
class PurchaseItemInput:
    product_id: int
    quantity: int
    unit_cost_cents: int
    subtotal_cents: int | None = None


def validate_status(status) -> str:
    if status not in PURCHASE_ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(PURCHASE_ORDER_STATUSES)}")
    return status


def parse_purchase_items(items) -> list[PurchaseItemInput]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    parsed = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        prefix = f"items[{index}]"
        subtotal = raw.get("subtotal_cents")
        parsed.append(PurchaseItemInput(
            product_id=parse_int_field(raw.get("product_id"), f"{prefix}.product_id", minimum=1),
            quantity=parse_int_field(
                raw.get("quantity"), f"{prefix}.quantity", minimum=1, maximum=MAX_QUANTITY
            ),
            unit_cost_cents=parse_int_field(
                raw.get("unit_cost_cents"), f"{prefix}.unit_cost_cents", minimum=0, maximum=MAX_PRICE_CENTS
            ),
            subtotal_cents=(
                parse_int_field(subtotal, f"{prefix}.subtotal_cents", minimum=0, maximum=MAX_AMOUNT_CENTS)
                if subtotal is not None else None
            ),
        ))
    return parsed


def _parse_optional_datetime(value, field: str):
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def _build_lines(items: list[PurchaseItemInput]) -> list[PurchaseOrderLine]:
    lines = []
    for position, item in enumerate(items, start=1):
        subtotal = check_amount(
            item.quantity * item.unit_cost_cents,
            f"items[{position - 1}].subtotal_cents",
            details={"product_id": item.product_id},
        )
        if item.subtotal_cents is not None and item.subtotal_cents != subtotal:
            raise ValidationError(
                f"items[{position - 1}].subtotal_cents does not equal quantity x unit cost",
                details={"expected": subtotal, "submitted": item.subtotal_cents},
            )
        lines.append(PurchaseOrderLine(
            product_id=item.product_id,
            position=position,
            quantity=item.quantity,
            unit_cost_cents=item.unit_cost_cents,
            subtotal_cents=subtotal,
        ))
    return lines


def _check_total(submitted: int | None, lines) -> int:
    computed = check_amount(sum(line.subtotal_cents for line in lines), "total_amount_cents")
    if submitted is not None and submitted != computed:
        raise ValidationError(
            "total_amount_cents does not match the sum of line subtotals",
            details={"expected": computed, "submitted": submitted},
        )
    return computed


def _require_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if not supplier:
        raise ValidationError(f"Supplier not found: {supplier_id}", details={"supplier_id": supplier_id})
    return supplier


def _stock_signature(lines) -> Counter:
    """Quantity per product; what the order contributes to stock when received."""
    signature: Counter = Counter()
    for line in lines:
        signature[line.product_id] += line.quantity
    return signature


def create_purchase_order(
    *,
    supplier_id,
    items,
    user_id: int,
    status: str | None = None,
    total_amount_cents=None,
    expected_delivery_date=None,
    received_date=None,
    notes: str | None = None,
    ledger_factory: Callable[[], InventoryLedger] = InventoryLedger,
) -> PurchaseOrder:
    """
    Create a purchase order. An order created as "received" credits stock
    for every line in the same unit.

    Raises:
        ValidationError: malformed input, unknown supplier, total mismatch
        ProductNotFound: a line references a missing product
    """
    supplier_id = parse_int_field(supplier_id, "supplier_id", minimum=1)
    parsed_items = parse_purchase_items(items)
    status = validate_status(status or STATUS_DRAFT)
    submitted_total = (
        parse_int_field(total_amount_cents, "total_amount_cents", minimum=0, maximum=MAX_AMOUNT_CENTS)
        if total_amount_cents is not None else None
    )
    expected_dt = _parse_optional_datetime(expected_delivery_date, "expected_delivery_date")
    received_dt = _parse_optional_datetime(received_date, "received_date")

    def _op() -> PurchaseOrder:
        ledger = ledger_factory()
        _require_supplier(supplier_id)
        order_number = next_document_number(PURCHASE_ORDER_SEQUENCE)

        # Every product must resolve before any delta is queued
        for item in parsed_items:
            ledger.resolve(item.product_id)

        lines = _build_lines(parsed_items)
        total = _check_total(submitted_total, lines)

        if status == STATUS_RECEIVED:
            for line in lines:
                ledger.credit(line.product_id, line.quantity, note=f"Received {order_number}")

        order = PurchaseOrder(
            order_number=order_number,
            supplier_id=supplier_id,
            created_by_user_id=user_id,
            status=status,
            total_amount_cents=total,
            expected_delivery_date=expected_dt,
            received_date=(received_dt or utcnow()) if status == STATUS_RECEIVED else received_dt,
            notes=notes,
            lines=lines,
        )
        db.session.add(order)
        db.session.flush()

        ledger.apply(
            reference_type="purchase_order",
            reference_id=order.id,
            reference_number=order_number,
            actor_user_id=user_id,
        )
        return order

    return run_atomic(_op)


def update_purchase_order(
    order_id: int,
    fields: dict,
    *,
    user_id: int | None = None,
    ledger_factory: Callable[[], InventoryLedger] = InventoryLedger,
) -> PurchaseOrder:
    """
    Update an order's fields and apply the stock effect of its status change.

    Raises:
        OrderNotFound: order does not exist
        ValidationError: malformed input, or a quantity change on an order
            that stays received
        ProductNotFound: a submitted line references a missing product
        InsufficientStock: reversing the receipt would drive stock negative
    """
    if not isinstance(fields, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = sorted(set(fields) - UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    new_items = parse_purchase_items(fields["items"]) if "items" in fields else None
    requested_status = validate_status(fields["status"]) if "status" in fields else None
    new_supplier_id = (
        parse_int_field(fields["supplier_id"], "supplier_id", minimum=1) if "supplier_id" in fields else None
    )
    submitted_total = (
        parse_int_field(
            fields["total_amount_cents"], "total_amount_cents", minimum=0, maximum=MAX_AMOUNT_CENTS
        )
        if fields.get("total_amount_cents") is not None else None
    )
    expected_dt = _parse_optional_datetime(fields.get("expected_delivery_date"), "expected_delivery_date")
    received_dt = _parse_optional_datetime(fields.get("received_date"), "received_date")

    def _op() -> PurchaseOrder:
        order = lock_for_update(db.session.query(PurchaseOrder).filter_by(id=order_id)).first()
        if not order:
            raise OrderNotFound("Purchase order not found", details={"order_id": order_id})

        ledger = ledger_factory()
        old_status = order.status
        new_status = requested_status or old_status
        old_lines = list(order.lines)

        if new_supplier_id is not None:
            _require_supplier(new_supplier_id)

        new_lines = None
        if new_items is not None:
            for item in new_items:
                ledger.resolve(item.product_id)
            new_lines = _build_lines(new_items)

        entering = old_status != STATUS_RECEIVED and new_status == STATUS_RECEIVED
        leaving = old_status == STATUS_RECEIVED and new_status != STATUS_RECEIVED

        if (
            old_status == STATUS_RECEIVED
            and new_status == STATUS_RECEIVED
            and new_lines is not None
            and _stock_signature(new_lines) != _stock_signature(old_lines)
        ):
            raise ValidationError(
                "Cannot change item quantities of a received order; "
                "move it out of received first",
                details={"order_id": order.id, "status": old_status},
            )

        if entering:
            for line in (new_lines if new_lines is not None else old_lines):
                ledger.credit(line.product_id, line.quantity, note=f"Received {order.order_number}")
        elif leaving:
            for line in old_lines:
                ledger.debit(line.product_id, line.quantity, note=f"Reversed {order.order_number}")

        if new_lines is not None:
            order.lines = new_lines
        order.total_amount_cents = _check_total(submitted_total, order.lines)

        if new_supplier_id is not None:
            order.supplier_id = new_supplier_id
        if "expected_delivery_date" in fields:
            order.expected_delivery_date = expected_dt
        if "notes" in fields:
            order.notes = fields["notes"]

        order.status = new_status
        # A received order always carries a received date; null means "now"
        if leaving:
            order.received_date = None
        elif received_dt is not None:
            order.received_date = received_dt
        elif entering:
            order.received_date = utcnow()
        elif "received_date" in fields and new_status != STATUS_RECEIVED:
            order.received_date = None

        db.session.flush()

        ledger.apply(
            reference_type="purchase_order",
            reference_id=order.id,
            reference_number=order.order_number,
            actor_user_id=user_id,
        )
        return order

    return run_atomic(_op)


def delete_purchase_order(
    order_id: int,
    *,
    user_id: int | None = None,
    ledger_factory: Callable[[], InventoryLedger] = InventoryLedger,
) -> str:
    """
    Delete an order, reversing its stock credit first if it was received.

    Returns the deleted order's number.
    """
    def _op() -> str:
        order = lock_for_update(db.session.query(PurchaseOrder).filter_by(id=order_id)).first()
        if not order:
            raise OrderNotFound("Purchase order not found", details={"order_id": order_id})

        ledger = ledger_factory()
        if order.status == STATUS_RECEIVED:
            for line in order.lines:
                ledger.debit(line.product_id, line.quantity, note=f"Deleted {order.order_number}")

        ledger.apply(
            reference_type="purchase_order",
            reference_id=order.id,
            reference_number=order.order_number,
            actor_user_id=user_id,
        )

        order_number = order.order_number
        db.session.delete(order)
        return order_number

    return run_atomic(_op)


def get_purchase_order(order_id: int) -> PurchaseOrder:
    order = db.session.query(PurchaseOrder).filter_by(id=order_id).first()
    if not order:
        raise OrderNotFound("Purchase order not found", details={"order_id": order_id})
    return order


def list_purchase_orders(
    *,
    status: str | None = None,
    supplier_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[PurchaseOrder], int]:
    """Newest first."""
    query = db.session.query(PurchaseOrder)
    if status:
        query = query.filter(PurchaseOrder.status == status)
    if supplier_id:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)

    total = query.count()
    rows = (
        query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total
