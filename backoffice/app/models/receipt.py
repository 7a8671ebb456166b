"""
Receipt database model.

Collection document issued to a client. Receipts are the main producer of
credit entries; they are only created, edited and deleted through the
receipt reconciliation workflow.
"""

from sqlalchemy import Column, Integer, String, DateTime, Numeric, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backoffice.app.db.session import Base


class Receipt(Base):
    """Receipt model."""
    __tablename__ = "receipts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    agency_id = Column(Integer, nullable=False, index=True)
    booking_id = Column(Integer, nullable=True, index=True)
    receipt_number = Column(String(50), nullable=False)

    concept = Column(String(255), nullable=False)
    amount = Column(Numeric(18, 2), nullable=False)
    amount_currency = Column(String(10), nullable=False)
    amount_string = Column(String(255), nullable=True)

    # Foreign exchange pair (optional)
    base_amount = Column(Numeric(18, 2), nullable=True)
    base_currency = Column(String(10), nullable=True)
    counter_amount = Column(Numeric(18, 2), nullable=True)
    counter_currency = Column(String(10), nullable=True)

    client_ids = Column(JSON, nullable=False, default=list)
    issue_date = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    payments = relationship(
        "ReceiptPayment",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ReceiptPayment.id",
    )

    def __repr__(self):
        return f"<Receipt(id={self.id}, number='{self.receipt_number}', amount={self.amount} {self.amount_currency})>"
