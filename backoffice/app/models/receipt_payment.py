"""
Receipt payment line database model.
"""

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey
from backoffice.app.db.session import Base


class ReceiptPayment(Base):
    """
    One payment line of a receipt.

    A line settled against a credit account (``credit_account_id``) produces
    one credit entry when the receipt is posted.
    """
    __tablename__ = "receipt_payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    receipt_id = Column(Integer, ForeignKey('receipts.id', ondelete="CASCADE"), nullable=False, index=True)

    amount = Column(Numeric(18, 2), nullable=False)
    payment_method_id = Column(Integer, ForeignKey('finance_payment_methods.id'), nullable=False)
    account_label = Column(String(100), nullable=True)
    credit_account_id = Column(Integer, ForeignKey('credit_accounts.id'), nullable=True, index=True)

    def __repr__(self):
        return f"<ReceiptPayment(id={self.id}, receipt={self.receipt_id}, amount={self.amount})>"
