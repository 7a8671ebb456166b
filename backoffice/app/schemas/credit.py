"""
Credit Ledger Schema Definitions.

Pydantic schemas for credit accounts, entries and document reversals.
Amounts are accepted as numbers or strings ("1.234,56" and "1234.56" both
work) and always returned as two-place decimals.
"""

from pydantic import BaseModel, Field, computed_field, model_validator
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Union, Dict

from backoffice.app.domain.ledger.money import Money
from backoffice.app.domain.ledger.signs import signed_amount
from backoffice.app.models.ledger_enums import SubjectType

AmountInput = Union[Decimal, int, float, str]


# Accounts

class CreditAccountCreate(BaseModel):
    """Schema for opening a credit account."""
    subject_type: SubjectType
    subject_id: int = Field(..., gt=0, description="Client or operator id")
    currency: str = Field(..., min_length=1, max_length=10)
    credit_limit: Optional[AmountInput] = None
    initial_balance: Optional[AmountInput] = Field(None, description="Posted as an adjust entry")


class CreditAccountUpdate(BaseModel):
    """Schema for enabling/disabling an account or changing its limit."""
    enabled: Optional[bool] = None
    credit_limit: Optional[AmountInput] = None
    clear_credit_limit: bool = False


class CreditAccountAdjust(BaseModel):
    """Schema for a manual adjustment to a target balance."""
    target_balance: AmountInput
    reason: str = Field(..., min_length=1, max_length=200)


class CreditAccountResponse(BaseModel):
    """Schema for credit account response."""
    id: int
    agency_id: int
    agency_account_number: Optional[int] = None
    subject_type: str
    client_id: Optional[int] = None
    operator_id: Optional[int] = None
    currency: str
    balance: Decimal
    credit_limit: Optional[Decimal] = None
    enabled: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CreditAccountListResponse(BaseModel):
    """Schema for a page of accounts."""
    items: List[CreditAccountResponse]
    next_cursor: Optional[int] = None


class AccountOpenResponse(BaseModel):
    """Schema for account creation; ``created`` is False when it already existed."""
    account: CreditAccountResponse
    created: bool


# Entries

class CreditEntryCreate(BaseModel):
    """
    Schema for posting an entry.

    Receipt entries are only posted by the receipt workflow, so no receipt
    link is accepted here.
    """
    account_id: int
    amount: AmountInput = Field(..., description="Positive magnitude")
    currency: str = Field(..., min_length=1, max_length=10)
    document_type: str = Field(..., description="receipt, investment, adjust_up or adjust_down")
    concept: str = Field(..., min_length=1, max_length=255)
    reference: Optional[str] = Field(None, max_length=100)
    value_date: Optional[datetime] = None
    booking_id: Optional[int] = None
    investment_id: Optional[int] = None
    operator_due_id: Optional[int] = None


class CreditEntryUpdate(BaseModel):
    """Schema for editing descriptive fields of an entry."""
    concept: Optional[str] = Field(None, max_length=255)
    reference: Optional[str] = Field(None, max_length=100)
    value_date: Optional[datetime] = None


class CreditEntryResponse(BaseModel):
    """Schema for credit entry response, including its signed balance effect."""
    id: int
    agency_id: int
    agency_entry_number: Optional[int] = None
    account_id: int
    amount: Decimal
    currency: str
    document_type: str
    concept: str
    reference: Optional[str] = None
    value_date: Optional[datetime] = None
    booking_id: Optional[int] = None
    receipt_id: Optional[int] = None
    investment_id: Optional[int] = None
    operator_due_id: Optional[int] = None
    created_by: Optional[int] = None
    created_at: datetime

    @computed_field
    @property
    def signed_amount(self) -> Decimal:
        return signed_amount(Money(self.amount), self.document_type, strict=False).amount

    class Config:
        from_attributes = True


class CreditEntryListResponse(BaseModel):
    """Schema for a page of entries."""
    items: List[CreditEntryResponse]
    next_cursor: Optional[int] = None


class CreditAccountDetailResponse(BaseModel):
    """Schema for account detail with its latest entries."""
    account: CreditAccountResponse
    recent_entries: List[CreditEntryResponse]


class AccountAdjustResponse(BaseModel):
    """Schema for a manual adjustment; ``entry`` is None when nothing was posted."""
    account: CreditAccountResponse
    entry: Optional[CreditEntryResponse] = None
    adjusted: bool


# Reversal and verification

class DocumentReverseRequest(BaseModel):
    """
    Schema for reversing the entries of an external document.

    Exactly one of the ids must be given. Receipts are reversed through the
    receipt endpoints.
    """
    investment_id: Optional[int] = None
    operator_due_id: Optional[int] = None
    booking_id: Optional[int] = None

    @model_validator(mode="after")
    def check_single_reference(self):
        given = [v for v in (self.investment_id, self.operator_due_id, self.booking_id) if v is not None]
        if len(given) != 1:
            raise ValueError("Exactly one of investment_id, operator_due_id or booking_id is required")
        return self


class ReversalResponse(BaseModel):
    """Schema for reversal result."""
    entries_removed: int
    entry_ids: List[int]
    deltas: Dict[int, Decimal]


class AccountVerifyResponse(BaseModel):
    """Schema for balance verification of one account."""
    account_id: int
    stored_balance: Decimal
    computed_balance: Decimal
    consistent: bool
    currency_mismatch_entry_ids: List[int]
