"""
Client Payment Schedule Schema Definitions.
"""

from pydantic import BaseModel, Field, computed_field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from backoffice.app.domain.receipts.schedule import derive_status


class ClientPaymentResponse(BaseModel):
    """Schema for a schedule line; ``effective_status`` reports VENCIDA for overdue lines."""
    id: int
    agency_id: int
    booking_id: int
    client_id: int
    amount: Decimal
    currency: str
    due_date: datetime
    status: str
    receipt_id: Optional[int] = None
    paid_at: Optional[datetime] = None
    paid_by: Optional[int] = None
    status_reason: Optional[str] = None

    @computed_field
    @property
    def effective_status(self) -> str:
        return derive_status(self)

    class Config:
        from_attributes = True


class SettleRequest(BaseModel):
    """Schema for settling schedule lines with a receipt."""
    receipt_id: int
    client_payment_ids: List[int] = Field(..., min_length=1)


class ClientPaymentAuditResponse(BaseModel):
    """Schema for schedule audit record."""
    id: int
    client_payment_id: int
    action: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    reason: Optional[str] = None
    changed_by: Optional[int] = None
    changed_at: datetime
    data: Optional[dict] = None

    class Config:
        from_attributes = True
