"""
Client payment schedule line database model.
"""

from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, Index
from sqlalchemy.sql import func
from backoffice.app.db.session import Base
from backoffice.app.models.ledger_enums import ClientPaymentStatus


class ClientPayment(Base):
    """
    Installment a client owes for a booking.

    Lines are marked PAGADA by settling them with a receipt and reopened
    (PENDIENTE, receipt unlinked) when that receipt is edited or deleted.
    """
    __tablename__ = "client_payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    agency_id = Column(Integer, nullable=False, index=True)
    booking_id = Column(Integer, nullable=False, index=True)
    client_id = Column(Integer, nullable=False, index=True)

    amount = Column(Numeric(18, 2), nullable=False)
    currency = Column(String(10), nullable=False)
    due_date = Column(DateTime(timezone=True), nullable=False)

    status = Column(String(20), nullable=False, default=ClientPaymentStatus.PENDING.value, index=True)
    receipt_id = Column(Integer, ForeignKey('receipts.id', ondelete="SET NULL"), nullable=True, index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    paid_by = Column(Integer, nullable=True)
    status_reason = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_client_payments_booking_status", "booking_id", "status"),
    )

    def __repr__(self):
        return f"<ClientPayment(id={self.id}, status='{self.status}', amount={self.amount})>"
