"""
Receipt API Schema Definitions.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from backoffice.app.schemas.credit import AmountInput


class PaymentLineCreate(BaseModel):
    """Schema for one payment line of a receipt."""
    amount: AmountInput
    payment_method_id: int
    account_label: Optional[str] = Field(None, max_length=100)
    credit_account_id: Optional[int] = None


class ReceiptCreate(BaseModel):
    """Schema for creating or replacing a receipt."""
    booking_id: Optional[int] = None
    concept: str = Field(..., min_length=1, max_length=255)
    amount: AmountInput
    amount_currency: str = Field(..., min_length=1, max_length=10)
    amount_string: Optional[str] = Field(None, max_length=255, description="Amount in words")
    base_amount: Optional[AmountInput] = None
    base_currency: Optional[str] = Field(None, max_length=10)
    counter_amount: Optional[AmountInput] = None
    counter_currency: Optional[str] = Field(None, max_length=10)
    client_ids: List[int] = Field(default_factory=list)
    issue_date: Optional[datetime] = None
    payments: List[PaymentLineCreate] = Field(..., min_length=1)


class PaymentLineResponse(BaseModel):
    """Schema for payment line response."""
    id: int
    amount: Decimal
    payment_method_id: int
    account_label: Optional[str] = None
    credit_account_id: Optional[int] = None

    class Config:
        from_attributes = True


class ReceiptResponse(BaseModel):
    """Schema for receipt response."""
    id: int
    agency_id: int
    booking_id: Optional[int] = None
    receipt_number: str
    concept: str
    amount: Decimal
    amount_currency: str
    amount_string: Optional[str] = None
    base_amount: Optional[Decimal] = None
    base_currency: Optional[str] = None
    counter_amount: Optional[Decimal] = None
    counter_currency: Optional[str] = None
    client_ids: List[int]
    issue_date: datetime
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    payments: List[PaymentLineResponse]

    class Config:
        from_attributes = True


class ReceiptMutationResponse(BaseModel):
    """Schema for receipt create/update result."""
    receipt: ReceiptResponse
    posted_entry_ids: List[int]
    reversed_entry_ids: List[int] = Field(default_factory=list)
    reopened_payment_ids: List[int] = Field(default_factory=list)


class ReceiptDeleteResponse(BaseModel):
    """Schema for receipt deletion result."""
    success: bool
    receipt_id: int
    reversed_entry_ids: List[int]
    reopened_payment_ids: List[int]
