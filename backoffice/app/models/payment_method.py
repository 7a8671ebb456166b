"""
Finance payment method database model.
"""

from sqlalchemy import Column, Integer, String, Boolean, UniqueConstraint
from backoffice.app.db.session import Base


class FinancePaymentMethod(Base):
    """
    Agency-configured payment method.

    ``requires_account`` lines must name the destination account;
    ``uses_credit_account`` lines must reference a credit account.
    """
    __tablename__ = "finance_payment_methods"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    agency_id = Column(Integer, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(50), nullable=False)
    requires_account = Column(Boolean, nullable=False, default=False)
    uses_credit_account = Column(Boolean, nullable=False, default=False)
    enabled = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("agency_id", "code", name="uq_finance_payment_methods_agency_code"),
    )

    def __repr__(self):
        return f"<FinancePaymentMethod(id={self.id}, code='{self.code}')>"
