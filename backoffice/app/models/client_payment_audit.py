"""
Client payment audit database model.

Append-only trail of status changes on client payment schedule lines.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey
from sqlalchemy.sql import func
from backoffice.app.db.session import Base


class ClientPaymentAudit(Base):
    """
    Audit record for a schedule line.

    Events logged:
    - STATUS_CHANGE (settled with a receipt)
    - RECEIPT_EDITED_REOPEN / RECEIPT_DELETED_REOPEN
    """
    __tablename__ = "client_payment_audits"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    client_payment_id = Column(Integer, ForeignKey('client_payments.id', ondelete="CASCADE"), nullable=False, index=True)
    agency_id = Column(Integer, nullable=False, index=True)

    action = Column(String(100), nullable=False, index=True)
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=True)
    reason = Column(String(255), nullable=True)

    # Who performed the change (None for system actions)
    changed_by = Column(Integer, nullable=True, index=True)
    changed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    data = Column(JSON, nullable=True)

    def __repr__(self):
        return f"<ClientPaymentAudit(id={self.id}, action='{self.action}', payment={self.client_payment_id})>"
