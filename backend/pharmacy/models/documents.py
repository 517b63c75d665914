from __future__ import annotations

from ..extensions import db


class DocumentSequence(db.Model):
    """
    Counter row per document type ("SALE", "PURCHASE_ORDER").

    next_number is incremented with a single UPDATE inside the transaction
    that creates the document, so two writers can never mint the same number
    and a rolled-back transaction gives its number back.
    """
    __tablename__ = "document_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<DocumentSequence {self.document_type} next={self.next_number}>"
