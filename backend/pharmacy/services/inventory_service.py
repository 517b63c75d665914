# Overview: Service-layer operations for inventory; owns every stock mutation made by sales and purchase orders.

"""
Inventory invariants (authoritative)

- Product.stock is never negative in committed state.
- Only the InventoryLedger changes stock during sale and purchase-order flows.
  Deltas are collected first (reserve/credit/debit) and written by apply()
  as conditional UPDATEs inside the caller's transaction; nothing touches the
  products table before every line of the batch has been resolved.
- A reserve() is checked against stock minus what the same ledger has
  already reserved for that product, so duplicate lines cannot oversell.
- apply() is guarded: "0 <= stock + delta <= MAX_STOCK" is part of the
  UPDATE's WHERE clause. A zero row count means another transaction got
  there first; the unit aborts with InsufficientStock (ValidationError for
  a credit past the ceiling) instead of committing an out-of-range stock.
- Each applied delta appends a StockMovement row in the same transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy import update

from ..errors import InsufficientStock, ProductNotFound, ValidationError
from ..extensions import db
from ..validation import MAX_QUANTITY, MAX_STOCK
from ..models import Product, StockMovement
from pharmacy.time_utils import utcnow
from .concurrency import lock_for_update


MOVEMENT_SALE = "SALE"
MOVEMENT_RECEIVE = "RECEIVE"
MOVEMENT_RECEIVE_REVERSAL = "RECEIVE_REVERSAL"


@dataclass(frozen=True)
class PendingDelta:
    """A stock change that has been validated but not yet written."""
    product_id: int
    quantity_delta: int
    movement_type: str
    note: str | None = None


def require_positive_quantity(quantity, field: str = "quantity") -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(f"{field} must be an integer")
    if quantity <= 0:
        raise ValidationError(f"{field} must be > 0")
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"{field} cannot exceed {MAX_QUANTITY}")
    return quantity


class InventoryLedger:
    """
    Collects signed stock deltas for one atomic unit and applies them.

    A ledger belongs to exactly one unit of work: the processor creates it
    (or receives one), queues deltas while validating its line items, calls
    apply() once every line has passed, then commits. If the unit aborts the
    ledger is simply dropped; nothing was written.
    """

    def __init__(self, session=None):
        self.session = session or db.session
        self._products: dict[int, Product] = {}
        self._pending: list[PendingDelta] = []

    @property
    def pending(self) -> tuple[PendingDelta, ...]:
        return tuple(self._pending)

    def resolve(self, product_id) -> Product:
        """Load (and lock, where supported) a product; ProductNotFound if absent."""
        if product_id in self._products:
            return self._products[product_id]

        product = lock_for_update(self.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise ProductNotFound(
                f"Product not found: {product_id}",
                details={"product_id": product_id},
            )
        self._products[product_id] = product
        return product

    def available(self, product_id) -> int:
        product = self.resolve(product_id)
        queued = sum(d.quantity_delta for d in self._pending if d.product_id == product_id)
        return product.stock + queued

    def reserve(self, product_id, quantity, *, note: str | None = None) -> PendingDelta:
        """Queue a sale debit after checking it against available stock."""
        quantity = require_positive_quantity(quantity)
        available = self.available(product_id)
        if available < quantity:
            product = self._products[product_id]
            raise InsufficientStock(
                f"Insufficient stock for product: {product.name}",
                details={
                    "product_id": product_id,
                    "requested_quantity": quantity,
                    "available": available,
                },
            )
        return self._queue(product_id, -quantity, MOVEMENT_SALE, note)

    def credit(self, product_id, quantity, *, note: str | None = None) -> PendingDelta:
        """Queue a stock increase (purchase order received)."""
        quantity = require_positive_quantity(quantity)
        available = self.available(product_id)
        if available + quantity > MAX_STOCK:
            raise ValidationError(
                f"Stock for product {self._products[product_id].name} cannot exceed {MAX_STOCK}",
                details={
                    "product_id": product_id,
                    "requested_quantity": quantity,
                    "available": available,
                },
            )
        return self._queue(product_id, quantity, MOVEMENT_RECEIVE, note)

    def debit(self, product_id, quantity, *, note: str | None = None) -> PendingDelta:
        """
        Queue the reversal of an earlier credit.

        No availability pre-check: the reversal mirrors a credit that was
        applied before. apply() still refuses to take stock below zero.
        """
        quantity = require_positive_quantity(quantity)
        self.resolve(product_id)
        return self._queue(product_id, -quantity, MOVEMENT_RECEIVE_REVERSAL, note)

    def _queue(self, product_id, quantity_delta: int, movement_type: str, note: str | None) -> PendingDelta:
        delta = PendingDelta(
            product_id=product_id,
            quantity_delta=quantity_delta,
            movement_type=movement_type,
            note=note,
        )
        self._pending.append(delta)
        return delta

    def apply(
        self,
        *,
        reference_type: str | None = None,
        reference_id: int | None = None,
        reference_number: str | None = None,
        actor_user_id: int | None = None,
    ) -> list[StockMovement]:
        """
        Write every queued delta in submission order.

        Does not commit. Raises InsufficientStock, ValidationError for a
        credit past MAX_STOCK, or ProductNotFound if the product vanished,
        when a guarded UPDATE matches no row; the caller's unit must then
        roll back.
        """
        movements: list[StockMovement] = []
        occurred_at = utcnow()

        for delta in self._pending:
            stmt = (
                update(Product)
                .where(
                    Product.id == delta.product_id,
                    Product.stock + delta.quantity_delta >= 0,
                    Product.stock + delta.quantity_delta <= MAX_STOCK,
                )
                .values(
                    stock=Product.stock + delta.quantity_delta,
                    version_id=Product.version_id + 1,
                )
                .execution_options(synchronize_session=False)
            )
            result = self.session.execute(stmt)

            if not result.rowcount:
                self._raise_rejected(delta)

            stock_after = self.session.query(Product.stock).filter_by(id=delta.product_id).scalar()
            movement = StockMovement(
                product_id=delta.product_id,
                type=delta.movement_type,
                quantity_delta=delta.quantity_delta,
                stock_after=stock_after,
                reference_type=reference_type,
                reference_id=reference_id,
                reference_number=reference_number,
                note=delta.note,
                actor_user_id=actor_user_id,
                occurred_at=occurred_at,
            )
            self.session.add(movement)
            movements.append(movement)

        # Loaded products no longer match the rows we just updated
        for product in self._products.values():
            self.session.expire(product)

        self._pending.clear()
        self.session.flush()
        return movements

    def _raise_rejected(self, delta: PendingDelta) -> None:
        current = self.session.query(Product.stock).filter_by(id=delta.product_id).scalar()
        if current is None:
            raise ProductNotFound(
                f"Product not found: {delta.product_id}",
                details={"product_id": delta.product_id},
            )

        product = self._products.get(delta.product_id)
        name = product.name if product is not None else delta.product_id
        if delta.quantity_delta > 0:
            raise ValidationError(
                f"Stock for product {name} cannot exceed {MAX_STOCK}",
                details={
                    "product_id": delta.product_id,
                    "requested_quantity": delta.quantity_delta,
                    "available": current,
                },
            )
        if delta.movement_type == MOVEMENT_RECEIVE_REVERSAL:
            message = f"Cannot reverse received stock for product: {name}"
        else:
            message = f"Insufficient stock for product: {name}"
        raise InsufficientStock(
            message,
            details={
                "product_id": delta.product_id,
                "requested_quantity": -delta.quantity_delta,
                "available": current,
            },
        )


# =============================================================================
# Read-side queries
# =============================================================================

def get_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if not product:
        raise ProductNotFound(f"Product not found: {product_id}", details={"product_id": product_id})
    return product


def list_movements(product_id: int, *, limit: int = 100, offset: int = 0) -> tuple[list[StockMovement], int]:
    get_product(product_id)
    query = db.session.query(StockMovement).filter_by(product_id=product_id)
    total = query.count()
    rows = (
        query.order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total


def low_stock_products() -> list[Product]:
    """Products at or below their reorder level."""
    return (
        db.session.query(Product)
        .filter(Product.stock <= Product.reorder_level)
        .order_by(Product.stock.asc(), Product.name.asc())
        .all()
    )


def expiring_products(days: int, today: date | None = None) -> list[Product]:
    """Products that expire within `days`, excluding already-expired stock."""
    today = today or utcnow().date()
    horizon = today + timedelta(days=days)
    return (
        db.session.query(Product)
        .filter(
            Product.expiry_date.isnot(None),
            Product.expiry_date >= today,
            Product.expiry_date <= horizon,
        )
        .order_by(Product.expiry_date.asc())
        .all()
    )
