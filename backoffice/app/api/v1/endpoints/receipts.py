"""
Receipt API Endpoints.

Creating, editing and deleting a receipt keeps its credit entries and the
client payment schedule consistent in a single transaction.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from typing import List, Optional

from backoffice.app.core.dependencies import Principal
from backoffice.app.core.exceptions import ResourceNotFoundError
from backoffice.app.core.guards import require_section
from backoffice.app.db.session import get_db
from backoffice.app.domain.receipts.workflow import PaymentLineInput, ReceiptInput, ReceiptWorkflow
from backoffice.app.models.receipt import Receipt
from backoffice.app.schemas.receipt import (
    ReceiptCreate,
    ReceiptDeleteResponse,
    ReceiptMutationResponse,
    ReceiptResponse,
)
from backoffice.app.services.access_policy import Section

router = APIRouter(prefix="/receipts", tags=["Receipts"])


def _to_input(payload: ReceiptCreate) -> ReceiptInput:
    return ReceiptInput(
        concept=payload.concept,
        amount=payload.amount,
        amount_currency=payload.amount_currency,
        payments=[
            PaymentLineInput(
                amount=line.amount,
                payment_method_id=line.payment_method_id,
                account_label=line.account_label,
                credit_account_id=line.credit_account_id,
            )
            for line in payload.payments
        ],
        booking_id=payload.booking_id,
        amount_string=payload.amount_string,
        base_amount=payload.base_amount,
        base_currency=payload.base_currency,
        counter_amount=payload.counter_amount,
        counter_currency=payload.counter_currency,
        client_ids=payload.client_ids,
        issue_date=payload.issue_date,
    )


async def _load_receipt(db: AsyncSession, agency_id: int, receipt_id: int) -> Receipt:
    result = await db.execute(
        select(Receipt)
        .where(Receipt.id == receipt_id, Receipt.agency_id == agency_id)
        .execution_options(populate_existing=True)
    )
    receipt = result.scalar_one_or_none()
    if receipt is None:
        raise ResourceNotFoundError("Receipt", receipt_id)
    return receipt


@router.get("", response_model=List[ReceiptResponse])
async def list_receipts(
    booking_id: Optional[int] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(require_section(Section.RECEIPTS)),
    db: AsyncSession = Depends(get_db)
):
    """List receipts of the caller's agency, newest first."""
    query = select(Receipt).where(Receipt.agency_id == principal.agency_id)
    if booking_id is not None:
        query = query.where(Receipt.booking_id == booking_id)
    result = await db.execute(query.order_by(desc(Receipt.id)).limit(limit))
    return result.scalars().all()


@router.post("", response_model=ReceiptMutationResponse, status_code=status.HTTP_201_CREATED)
async def create_receipt(
    payload: ReceiptCreate,
    principal: Principal = Depends(require_section(Section.RECEIPTS_FORM)),
    db: AsyncSession = Depends(get_db)
):
    """Issue a receipt and post its credit-account lines."""
    outcome = await ReceiptWorkflow.create_receipt(
        db, principal.agency_id, _to_input(payload), created_by=principal.user_id
    )
    await db.commit()
    receipt = await _load_receipt(db, principal.agency_id, outcome.receipt_id)
    return ReceiptMutationResponse(
        receipt=ReceiptResponse.model_validate(receipt),
        posted_entry_ids=[e.id for e in outcome.posted_entries],
    )


@router.get("/{receipt_id}", response_model=ReceiptResponse)
async def get_receipt(
    receipt_id: int,
    principal: Principal = Depends(require_section(Section.RECEIPTS)),
    db: AsyncSession = Depends(get_db)
):
    """Get a receipt with its payment lines."""
    return await _load_receipt(db, principal.agency_id, receipt_id)


@router.put("/{receipt_id}", response_model=ReceiptMutationResponse)
async def update_receipt(
    receipt_id: int,
    payload: ReceiptCreate,
    principal: Principal = Depends(require_section(Section.RECEIPTS_FORM)),
    db: AsyncSession = Depends(get_db)
):
    """
    Replace a receipt.

    Its previous entries are reversed, schedule lines it paid are reopened
    and the new lines are posted.
    """
    outcome = await ReceiptWorkflow.update_receipt(
        db, principal.agency_id, receipt_id, _to_input(payload), changed_by=principal.user_id
    )
    await db.commit()
    receipt = await _load_receipt(db, principal.agency_id, outcome.receipt_id)
    return ReceiptMutationResponse(
        receipt=ReceiptResponse.model_validate(receipt),
        posted_entry_ids=[e.id for e in outcome.posted_entries],
        reversed_entry_ids=outcome.reversal.entry_ids,
        reopened_payment_ids=[p.id for p in outcome.reopened_payments],
    )


@router.delete("/{receipt_id}", response_model=ReceiptDeleteResponse)
async def delete_receipt(
    receipt_id: int,
    principal: Principal = Depends(require_section(Section.RECEIPTS_FORM)),
    db: AsyncSession = Depends(get_db)
):
    """Delete a receipt, reversing its entries and reopening the schedule lines it paid."""
    outcome = await ReceiptWorkflow.delete_receipt(
        db, principal.agency_id, receipt_id, changed_by=principal.user_id
    )
    await db.commit()
    return ReceiptDeleteResponse(
        success=True,
        receipt_id=outcome.receipt_id,
        reversed_entry_ids=outcome.reversal.entry_ids,
        reopened_payment_ids=[p.id for p in outcome.reopened_payments],
    )
