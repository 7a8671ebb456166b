"""
Credit Entry API Endpoints.

Manual postings, entry listing and metadata edits, single-entry deletion and
reversal of external documents (investments, operator dues). Receipt entries
are managed through the receipt endpoints.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from backoffice.app.core.dependencies import Principal
from backoffice.app.core.guards import require_section
from backoffice.app.db.session import get_db
from backoffice.app.domain.ledger.posting import DocumentRef, post_entry, update_entry_metadata
from backoffice.app.domain.ledger.queries import get_entry, list_entries
from backoffice.app.domain.ledger.reversal import reverse_entry, reverse_for_document
from backoffice.app.schemas.credit import (
    CreditEntryCreate,
    CreditEntryListResponse,
    CreditEntryResponse,
    CreditEntryUpdate,
    DocumentReverseRequest,
    ReversalResponse,
)
from backoffice.app.services.access_policy import Section

router = APIRouter(prefix="/credit", tags=["Credit - Entries"])


@router.get("/entries", response_model=CreditEntryListResponse)
async def get_entries(
    account_id: Optional[int] = Query(None),
    subject_type: Optional[str] = Query(None, description="client or operator"),
    document_type: Optional[str] = Query(None),
    currency: Optional[str] = Query(None),
    linked_document: Optional[str] = Query(None, description="receipt, investment, operator_due or booking"),
    linked_id: Optional[int] = Query(None),
    cursor: Optional[int] = Query(None, description="Last id of the previous page"),
    limit: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(require_section(Section.CREDITS)),
    db: AsyncSession = Depends(get_db)
):
    """List entries of the caller's agency, newest first."""
    items, next_cursor = await list_entries(
        db,
        principal.agency_id,
        account_id=account_id,
        subject_type=subject_type,
        document_type=document_type,
        currency=currency,
        linked_document=linked_document,
        linked_id=linked_id,
        cursor=cursor,
        limit=limit,
    )
    return CreditEntryListResponse(items=items, next_cursor=next_cursor)


@router.post("/entries", response_model=CreditEntryResponse, status_code=status.HTTP_201_CREATED)
async def create_entry(
    payload: CreditEntryCreate,
    principal: Principal = Depends(require_section(Section.CREDITS)),
    db: AsyncSession = Depends(get_db)
):
    """Post an entry and update the account balance in one transaction."""
    entry = await post_entry(
        db,
        agency_id=principal.agency_id,
        account_id=payload.account_id,
        amount=payload.amount,
        currency=payload.currency,
        document_type=payload.document_type,
        concept=payload.concept,
        source=DocumentRef(
            investment_id=payload.investment_id,
            operator_due_id=payload.operator_due_id,
            booking_id=payload.booking_id,
        ),
        created_by=principal.user_id,
        reference=payload.reference,
        value_date=payload.value_date,
        require_enabled=True,
    )
    await db.commit()
    await db.refresh(entry)
    return entry


@router.get("/entries/{entry_id}", response_model=CreditEntryResponse)
async def get_entry_detail(
    entry_id: int,
    principal: Principal = Depends(require_section(Section.CREDITS)),
    db: AsyncSession = Depends(get_db)
):
    """Get a single entry."""
    return await get_entry(db, principal.agency_id, entry_id)


@router.patch("/entries/{entry_id}", response_model=CreditEntryResponse)
async def update_entry(
    entry_id: int,
    payload: CreditEntryUpdate,
    principal: Principal = Depends(require_section(Section.CREDITS, finance_admin=True)),
    db: AsyncSession = Depends(get_db)
):
    """Edit concept, reference or value date. Amounts and types are immutable."""
    entry = await update_entry_metadata(
        db, principal.agency_id, entry_id, payload.model_dump(exclude_unset=True)
    )
    await db.commit()
    await db.refresh(entry)
    return entry


@router.delete("/entries/{entry_id}", response_model=ReversalResponse)
async def delete_entry(
    entry_id: int,
    allow_linked: bool = Query(False, description="Allow removing investment-linked entries"),
    principal: Principal = Depends(require_section(Section.CREDITS, finance_admin=True)),
    db: AsyncSession = Depends(get_db)
):
    """Reverse and delete a single unlinked entry."""
    result = await reverse_entry(db, principal.agency_id, entry_id, allow_linked=allow_linked)
    await db.commit()
    return result.as_dict()


@router.post("/documents/reverse", response_model=ReversalResponse)
async def reverse_document(
    payload: DocumentReverseRequest,
    principal: Principal = Depends(require_section(Section.CREDITS)),
    db: AsyncSession = Depends(get_db)
):
    """
    Reverse every entry of an investment, operator due or booking.

    A document without entries is a no-op.
    """
    result = await reverse_for_document(
        db,
        DocumentRef(
            investment_id=payload.investment_id,
            operator_due_id=payload.operator_due_id,
            booking_id=payload.booking_id,
        ),
        principal.agency_id,
    )
    await db.commit()
    return result.as_dict()
