"""
Credit Account database model.

Per-subject, per-currency running balance. The balance is only ever written
by the ledger posting and reversal services.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, CheckConstraint, Index
from sqlalchemy.sql import func
from backoffice.app.db.session import Base


class CreditAccount(Base):
    """
    Credit Account model.

    Belongs to exactly one agency and exactly one subject (a client or an
    operator, never both). ``balance`` always equals the signed sum of the
    account's entries.
    """
    __tablename__ = "credit_accounts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    agency_id = Column(Integer, nullable=False, index=True)
    agency_account_number = Column(Integer, nullable=True)

    # Subject
    subject_type = Column(String(20), nullable=False)
    client_id = Column(Integer, nullable=True, index=True)
    operator_id = Column(Integer, nullable=True, index=True)

    currency = Column(String(10), nullable=False, index=True)
    balance = Column(Numeric(18, 2), nullable=False, default=0)
    credit_limit = Column(Numeric(18, 2), nullable=True)
    enabled = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "(client_id IS NULL) <> (operator_id IS NULL)",
            name="ck_credit_accounts_single_subject",
        ),
        Index("ix_credit_accounts_agency_subject", "agency_id", "subject_type"),
    )

    def __repr__(self):
        return f"<CreditAccount(id={self.id}, subject='{self.subject_type}', currency='{self.currency}', balance={self.balance})>"
