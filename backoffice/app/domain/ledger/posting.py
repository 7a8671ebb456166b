"""
Ledger Posting Service.

Creates credit entries and applies their signed effect to the owning
account's balance. Must be called inside the caller's transaction: the
account row is locked (SELECT ... FOR UPDATE) before its balance is read, the
entry insert and the balance write are flushed together, and the caller
commits or rolls back the whole unit.

Lock order inside one transaction: receipt number counters, then accounts in
ascending id order, then the agency entry counter.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from backoffice.app.core.config import settings
from backoffice.app.core.exceptions import (
    AccountDisabledError,
    CurrencyMismatchError,
    LedgerValidationError,
    ResourceNotFoundError,
)
from backoffice.app.domain.ledger.money import Money
from backoffice.app.domain.ledger.signs import normalize_document_type, resolve_sign
from backoffice.app.models.credit_account import CreditAccount
from backoffice.app.models.credit_entry import CreditEntry
from backoffice.app.services.counters import next_agency_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentRef:
    """
    Source document of a group of entries.

    At most one of receipt / investment / operator due is set; a booking id
    may accompany a receipt.
    """
    receipt_id: Optional[int] = None
    investment_id: Optional[int] = None
    operator_due_id: Optional[int] = None
    booking_id: Optional[int] = None

    def __post_init__(self):
        linked = [v for v in (self.receipt_id, self.investment_id, self.operator_due_id) if v is not None]
        if len(linked) > 1:
            raise LedgerValidationError(
                "An entry can reference only one source document",
                details=self.as_dict()
            )

    @property
    def is_empty(self) -> bool:
        return not any(self.as_dict().values())

    def as_dict(self) -> Dict[str, Optional[int]]:
        return {
            "receipt_id": self.receipt_id,
            "investment_id": self.investment_id,
            "operator_due_id": self.operator_due_id,
            "booking_id": self.booking_id,
        }

    def conditions(self):
        """WHERE clauses selecting every entry of this document."""
        if self.receipt_id is not None:
            return [CreditEntry.receipt_id == self.receipt_id]
        if self.investment_id is not None:
            return [CreditEntry.investment_id == self.investment_id]
        if self.operator_due_id is not None:
            return [CreditEntry.operator_due_id == self.operator_due_id]
        if self.booking_id is not None:
            # receipt entries of the booking belong to their receipt
            return [CreditEntry.booking_id == self.booking_id, CreditEntry.receipt_id.is_(None)]
        raise LedgerValidationError("A document reference is required")


def normalize_currency(currency: Any) -> str:
    code = str(currency or "").strip().upper()
    if not code:
        raise LedgerValidationError("Currency is required")
    return code


async def lock_account(db: AsyncSession, agency_id: int, account_id: int) -> CreditAccount:
    """
    Load an account of ``agency_id`` with a row lock.

    Accounts of other agencies are reported as not found.

    Raises:
        ResourceNotFoundError: If the account does not exist in the agency
    """
    result = await db.execute(
        select(CreditAccount)
        .where(CreditAccount.id == account_id, CreditAccount.agency_id == agency_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    account = result.scalar_one_or_none()
    if account is None:
        raise ResourceNotFoundError("Credit account", account_id)
    return account


async def lock_accounts(db: AsyncSession, agency_id: int, account_ids) -> Dict[int, CreditAccount]:
    """
    Lock several accounts of ``agency_id`` in ascending id order.

    Callers that touch more than one account take every lock here before the
    first posting, so two requests over the same accounts queue instead of
    deadlocking.

    Raises:
        ResourceNotFoundError: If any account does not exist in the agency
    """
    wanted = sorted(set(account_ids))
    if not wanted:
        return {}
    result = await db.execute(
        select(CreditAccount)
        .where(CreditAccount.id.in_(wanted), CreditAccount.agency_id == agency_id)
        .order_by(CreditAccount.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    accounts = {account.id: account for account in result.scalars().all()}
    for account_id in wanted:
        if account_id not in accounts:
            raise ResourceNotFoundError("Credit account", account_id)
    return accounts


def apply_delta(account: CreditAccount, delta: Money) -> Money:
    """Add ``delta`` to the (locked) account balance and return the new balance."""
    new_balance = Money(account.balance) + delta
    account.balance = new_balance.amount
    return new_balance


async def post_entry(
    db: AsyncSession,
    agency_id: int,
    account_id: int,
    amount: Any,
    currency: Any,
    document_type: str,
    concept: str,
    source: Optional[DocumentRef] = None,
    created_by: Optional[int] = None,
    reference: Optional[str] = None,
    value_date: Optional[datetime] = None,
    require_enabled: bool = False,
) -> CreditEntry:
    """
    Post one entry and update the account balance.

    Flow:
    1. Validate magnitude (> 0), currency and document type (no writes yet)
    2. Lock the account row, scoped to the agency
    3. Check currency against the account (and enabled flag when asked)
    4. Insert the entry, set balance = balance + amount * sign

    Args:
        db: Database session (transaction managed by caller)
        agency_id: Caller's agency
        account_id: Target credit account
        amount: Positive magnitude; the sign comes from the document type
        currency: Entry currency, must equal the account's
        document_type: receipt / investment / adjust_up / adjust_down
        concept: Description stored on the entry
        source: Source document the entry belongs to
        created_by: ID of user posting
        reference: Free-form reference
        value_date: Value date of the movement
        require_enabled: Reject disabled accounts (new-document entry points)

    Returns:
        Created CreditEntry
    """
    magnitude = Money.parse(amount)
    if not magnitude.is_positive():
        raise LedgerValidationError(
            "Amount must be greater than zero",
            details={"amount": str(magnitude)}
        )
    currency = normalize_currency(currency)
    document_type = normalize_document_type(document_type)
    sign = resolve_sign(document_type)
    concept = (concept or "").strip()
    if not concept:
        raise LedgerValidationError("Concept is required")
    source = source or DocumentRef()

    account = await lock_account(db, agency_id, account_id)

    if account.currency != currency:
        raise CurrencyMismatchError(currency, account.currency)

    if require_enabled and not account.enabled and not settings.allow_posting_to_disabled_accounts:
        raise AccountDisabledError(account.id)

    entry_number = await next_agency_number(db, agency_id, "credit_entry")
    entry = CreditEntry(
        agency_id=agency_id,
        agency_entry_number=entry_number,
        account_id=account.id,
        amount=magnitude.amount,
        currency=currency,
        document_type=document_type,
        concept=concept,
        reference=reference,
        value_date=value_date,
        created_by=created_by,
        **source.as_dict()
    )
    db.add(entry)

    new_balance = apply_delta(account, magnitude * sign)
    await db.flush()

    logger.info(
        "Posted entry %s on account %s: %s %s %s -> balance %s",
        entry.id, account.id, document_type, magnitude, currency, new_balance,
        extra={"agency_id": agency_id, "source": source.as_dict()}
    )
    return entry


async def update_entry_metadata(
    db: AsyncSession,
    agency_id: int,
    entry_id: int,
    changes: Dict[str, Any],
) -> CreditEntry:
    """
    Update descriptive fields of an entry.

    Only concept, reference and value_date may change; amount, currency,
    document type and links are immutable once posted.
    """
    allowed = {"concept", "reference", "value_date"}
    blocked = set(changes) - allowed
    if blocked:
        raise LedgerValidationError(
            "Only concept, reference and value_date can be edited",
            details={"fields": sorted(blocked)}
        )
    if not changes:
        raise LedgerValidationError("No fields to update")

    result = await db.execute(
        select(CreditEntry).where(CreditEntry.id == entry_id, CreditEntry.agency_id == agency_id)
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        raise ResourceNotFoundError("Credit entry", entry_id)

    if "concept" in changes:
        concept = (changes["concept"] or "").strip()
        if not concept:
            raise LedgerValidationError("Concept cannot be empty")
        entry.concept = concept
    if "reference" in changes:
        entry.reference = (changes["reference"] or "").strip() or None
    if "value_date" in changes:
        entry.value_date = changes["value_date"]

    await db.flush()
    return entry
