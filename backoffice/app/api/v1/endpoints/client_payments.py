"""
Client Payment Schedule API Endpoints.

List schedule lines, settle them with a receipt and read their audit trail.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional

from backoffice.app.core.dependencies import Principal
from backoffice.app.core.exceptions import ResourceNotFoundError
from backoffice.app.core.guards import require_section
from backoffice.app.db.session import get_db
from backoffice.app.domain.receipts.schedule import list_client_payments, settle_client_payments
from backoffice.app.models.client_payment import ClientPayment
from backoffice.app.schemas.client_payment import (
    ClientPaymentAuditResponse,
    ClientPaymentResponse,
    SettleRequest,
)
from backoffice.app.services.access_policy import Section
from backoffice.app.services.audit import get_payment_audit_trail

router = APIRouter(prefix="/client-payments", tags=["Client Payments"])


@router.get("", response_model=List[ClientPaymentResponse])
async def get_client_payments(
    booking_id: Optional[int] = Query(None),
    client_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None, description="PENDIENTE, VENCIDA, PAGADA or CANCELADA"),
    limit: int = Query(100, ge=1, le=500),
    principal: Principal = Depends(require_section(Section.PAYMENT_PLANS)),
    db: AsyncSession = Depends(get_db)
):
    """List schedule lines of the caller's agency."""
    return await list_client_payments(
        db, principal.agency_id, booking_id=booking_id, client_id=client_id, status=status, limit=limit
    )


@router.post("/settle", response_model=List[ClientPaymentResponse])
async def settle(
    payload: SettleRequest,
    principal: Principal = Depends(require_section(Section.PAYMENT_PLANS)),
    db: AsyncSession = Depends(get_db)
):
    """Mark pending schedule lines as paid by a receipt."""
    payments = await settle_client_payments(
        db,
        principal.agency_id,
        payload.receipt_id,
        payload.client_payment_ids,
        changed_by=principal.user_id,
    )
    await db.commit()
    return payments


@router.get("/{client_payment_id}/audits", response_model=List[ClientPaymentAuditResponse])
async def get_audits(
    client_payment_id: int,
    limit: int = Query(100, ge=1, le=500),
    principal: Principal = Depends(require_section(Section.PAYMENT_PLANS)),
    db: AsyncSession = Depends(get_db)
):
    """Audit trail of one schedule line, most recent first."""
    result = await db.execute(
        select(ClientPayment.id).where(
            ClientPayment.id == client_payment_id,
            ClientPayment.agency_id == principal.agency_id,
        )
    )
    if result.scalar_one_or_none() is None:
        raise ResourceNotFoundError("Client payment", client_payment_id)

    return await get_payment_audit_trail(
        db, principal.agency_id, client_payment_id=client_payment_id, limit=limit
    )
