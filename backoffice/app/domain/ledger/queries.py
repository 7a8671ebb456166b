"""
Read-side queries for credit accounts and entries.

Listings are always scoped to one agency and paginated with an id cursor
(newest first): pass the last id of the previous page as ``cursor``.
"""

from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc

from backoffice.app.core.exceptions import LedgerValidationError, ResourceNotFoundError
from backoffice.app.domain.ledger.signs import normalize_document_type
from backoffice.app.models.credit_account import CreditAccount
from backoffice.app.models.credit_entry import CreditEntry
from backoffice.app.models.ledger_enums import SubjectType

MAX_PAGE_SIZE = 200

LINKED_DOCUMENTS = {
    "receipt": CreditEntry.receipt_id,
    "investment": CreditEntry.investment_id,
    "operator_due": CreditEntry.operator_due_id,
    "booking": CreditEntry.booking_id,
}


def _page(rows: list, limit: int) -> Tuple[list, Optional[int]]:
    if len(rows) > limit:
        rows = rows[:limit]
        return rows, rows[-1].id
    return rows, None


def _check_limit(limit: int) -> int:
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise LedgerValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    return limit


async def list_accounts(
    db: AsyncSession,
    agency_id: int,
    subject_type: Optional[str] = None,
    subject_id: Optional[int] = None,
    currency: Optional[str] = None,
    enabled: Optional[bool] = None,
    cursor: Optional[int] = None,
    limit: int = 50,
) -> Tuple[List[CreditAccount], Optional[int]]:
    """
    List credit accounts of an agency.

    Returns:
        Tuple of (accounts, next_cursor)
    """
    limit = _check_limit(limit)
    query = select(CreditAccount).where(CreditAccount.agency_id == agency_id)

    if subject_type:
        subject_type = subject_type.strip().lower()
        query = query.where(CreditAccount.subject_type == subject_type)
        if subject_id is not None:
            column = CreditAccount.client_id if subject_type == SubjectType.CLIENT.value else CreditAccount.operator_id
            query = query.where(column == subject_id)
    if currency:
        query = query.where(CreditAccount.currency == currency.strip().upper())
    if enabled is not None:
        query = query.where(CreditAccount.enabled == enabled)
    if cursor is not None:
        query = query.where(CreditAccount.id < cursor)

    query = query.order_by(desc(CreditAccount.id)).limit(limit + 1)
    result = await db.execute(query)
    return _page(list(result.scalars().all()), limit)


async def list_entries(
    db: AsyncSession,
    agency_id: int,
    account_id: Optional[int] = None,
    subject_type: Optional[str] = None,
    document_type: Optional[str] = None,
    currency: Optional[str] = None,
    linked_document: Optional[str] = None,
    linked_id: Optional[int] = None,
    cursor: Optional[int] = None,
    limit: int = 50,
) -> Tuple[List[CreditEntry], Optional[int]]:
    """
    List credit entries of an agency.

    ``linked_document`` is one of receipt / investment / operator_due /
    booking; with ``linked_id`` it selects the entries of that document,
    without it any entry carrying such a link.

    Returns:
        Tuple of (entries, next_cursor)
    """
    limit = _check_limit(limit)
    query = select(CreditEntry).where(CreditEntry.agency_id == agency_id)

    if account_id is not None:
        query = query.where(CreditEntry.account_id == account_id)
    if subject_type:
        query = query.join(CreditAccount, CreditAccount.id == CreditEntry.account_id).where(
            CreditAccount.subject_type == subject_type.strip().lower()
        )
    if document_type:
        query = query.where(CreditEntry.document_type == normalize_document_type(document_type))
    if currency:
        query = query.where(CreditEntry.currency == currency.strip().upper())
    if linked_document:
        column = LINKED_DOCUMENTS.get(linked_document.strip().lower())
        if column is None:
            raise LedgerValidationError(
                "linked_document must be one of: " + ", ".join(sorted(LINKED_DOCUMENTS)),
                details={"linked_document": linked_document}
            )
        query = query.where(column == linked_id if linked_id is not None else column.is_not(None))
    if cursor is not None:
        query = query.where(CreditEntry.id < cursor)

    query = query.order_by(desc(CreditEntry.id)).limit(limit + 1)
    result = await db.execute(query)
    return _page(list(result.scalars().all()), limit)


async def get_entry(db: AsyncSession, agency_id: int, entry_id: int) -> CreditEntry:
    result = await db.execute(
        select(CreditEntry).where(CreditEntry.id == entry_id, CreditEntry.agency_id == agency_id)
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        raise ResourceNotFoundError("Credit entry", entry_id)
    return entry


async def recent_entries(db: AsyncSession, agency_id: int, account_id: int, limit: int = 20) -> List[CreditEntry]:
    result = await db.execute(
        select(CreditEntry)
        .where(CreditEntry.agency_id == agency_id, CreditEntry.account_id == account_id)
        .order_by(desc(CreditEntry.id))
        .limit(limit)
    )
    return list(result.scalars().all())
