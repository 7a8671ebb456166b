"""
Credit Entry database model.

Signed ledger movement against a credit account. The row stores a positive
magnitude and a document type; the balance effect is amount * sign(doc type).
"""

from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, CheckConstraint, Index
from sqlalchemy.sql import func
from backoffice.app.db.session import Base


class CreditEntry(Base):
    """
    Credit Entry model.

    Entries are immutable once posted except for descriptive fields
    (concept, reference, value date). Removing one always goes through the
    reversal path, which rolls back its balance effect in the same transaction.
    """
    __tablename__ = "credit_entries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    agency_id = Column(Integer, nullable=False, index=True)
    agency_entry_number = Column(Integer, nullable=True)
    account_id = Column(Integer, ForeignKey('credit_accounts.id'), nullable=False, index=True)

    # Financials (magnitude only)
    amount = Column(Numeric(18, 2), nullable=False)
    currency = Column(String(10), nullable=False)
    document_type = Column(String(30), nullable=False, index=True)

    concept = Column(String(255), nullable=False)
    reference = Column(String(100), nullable=True)
    value_date = Column(DateTime(timezone=True), nullable=True)

    # Source document links
    booking_id = Column(Integer, nullable=True, index=True)
    receipt_id = Column(Integer, ForeignKey('receipts.id', ondelete="SET NULL"), nullable=True, index=True)
    investment_id = Column(Integer, nullable=True, index=True)
    operator_due_id = Column(Integer, nullable=True, index=True)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_credit_entries_positive_amount"),
        Index("ix_credit_entries_agency_created", "agency_id", "created_at"),
    )

    def __repr__(self):
        return f"<CreditEntry(id={self.id}, account={self.account_id}, type='{self.document_type}', amount={self.amount})>"
