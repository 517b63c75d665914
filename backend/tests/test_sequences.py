"""
Document number allocation.

Invoice and purchase order numbers come from per-type counters that advance
inside the caller's transaction, so a rolled-back unit gives its number back.
"""

import pytest

from pharmacy.errors import ValidationError
from pharmacy.extensions import db
from pharmacy.models import DocumentSequence, Sale
from pharmacy.services.concurrency import begin_write_transaction, run_atomic
from pharmacy.time_utils import utcnow
from pharmacy.services.document_service import (
    PURCHASE_ORDER_SEQUENCE,
    SALE_SEQUENCE,
    format_document_number,
    next_document_number,
)


def allocate(document_type):
    return run_atomic(lambda: next_document_number(document_type))


class TestFormat:

    def test_zero_padded(self):
        assert format_document_number("INV", 1) == "INV000001"
        assert format_document_number("PO", 45) == "PO000045"

    def test_wider_numbers_are_not_truncated(self):
        assert format_document_number("INV", 1234567) == "INV1234567"


class TestAllocation:

    def test_first_numbers(self, db_session):
        assert allocate(SALE_SEQUENCE) == "INV000001"
        assert allocate(PURCHASE_ORDER_SEQUENCE) == "PO000001"

    def test_numbers_increase(self, db_session):
        numbers = [allocate(SALE_SEQUENCE) for _ in range(5)]
        assert numbers == [f"INV{n:06d}" for n in range(1, 6)]
        assert len(set(numbers)) == 5

    def test_sequences_are_independent(self, db_session):
        allocate(SALE_SEQUENCE)
        allocate(SALE_SEQUENCE)
        assert allocate(PURCHASE_ORDER_SEQUENCE) == "PO000001"
        assert allocate(SALE_SEQUENCE) == "INV000003"

    def test_rollback_returns_number(self, db_session):
        allocate(SALE_SEQUENCE)

        begin_write_transaction()
        assert next_document_number(SALE_SEQUENCE) == "INV000002"
        db.session.rollback()

        assert allocate(SALE_SEQUENCE) == "INV000002"

    def test_unknown_type(self, db_session):
        with pytest.raises(ValidationError):
            next_document_number("CREDIT_NOTE")


class TestSeeding:

    def test_seed_skips_past_existing_documents(self, db_session):
        # Documents issued before the counter row existed
        for number in ("INV000001", "INV000007"):
            db_session.add(Sale(
                invoice_number=number,
                date=utcnow(),
                customer_id="walk-in",
                customer_name="Walk-in",
                total_cents=0,
                paid_amount_cents=0,
                due_amount_cents=0,
                payment_method="cash",
                status="paid",
            ))
        db_session.commit()
        assert db_session.query(DocumentSequence).count() == 0

        assert allocate(SALE_SEQUENCE) == "INV000008"
        assert allocate(SALE_SEQUENCE) == "INV000009"

    def test_seed_uses_count_when_numbers_are_not_ours(self, db_session):
        for number in ("LEGACY-A", "LEGACY-B", "LEGACY-C"):
            db_session.add(Sale(
                invoice_number=number,
                date=utcnow(),
                customer_id="walk-in",
                customer_name="Walk-in",
                total_cents=0,
                paid_amount_cents=0,
                due_amount_cents=0,
                payment_method="cash",
                status="paid",
            ))
        db_session.commit()

        assert allocate(SALE_SEQUENCE) == "INV000004"

    def test_seed_orders_numbers_past_the_padding(self, db_session):
        for number in ("INV999999", "INV1000000", "INV000042"):
            db_session.add(Sale(
                invoice_number=number,
                date=utcnow(),
                customer_id="walk-in",
                customer_name="Walk-in",
                total_cents=0,
                paid_amount_cents=0,
                due_amount_cents=0,
                payment_method="cash",
                status="paid",
            ))
        db_session.commit()

        assert allocate(SALE_SEQUENCE) == "INV1000001"
