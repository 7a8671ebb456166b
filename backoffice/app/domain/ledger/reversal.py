"""
Ledger Reversal Service.

Undoes the balance effect of every entry produced by one source document and
deletes those entries, inside the caller's transaction. Accounts are locked
in ascending id order so two reversals touching the same accounts cannot
deadlock each other.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from backoffice.app.core.exceptions import (
    LedgerConsistencyError,
    LinkedEntryError,
    ResourceNotFoundError,
)
from backoffice.app.domain.ledger.money import Money
from backoffice.app.domain.ledger.posting import DocumentRef, apply_delta
from backoffice.app.domain.ledger.signs import signed_amount
from backoffice.app.models.credit_account import CreditAccount
from backoffice.app.models.credit_entry import CreditEntry

logger = logging.getLogger(__name__)


@dataclass
class ReversalResult:
    """Outcome of a reversal: removed entry ids and balance change per account."""
    entry_ids: List[int] = field(default_factory=list)
    deltas: Dict[int, Money] = field(default_factory=dict)

    @property
    def entries_removed(self) -> int:
        return len(self.entry_ids)

    def as_dict(self) -> dict:
        return {
            "entries_removed": self.entries_removed,
            "entry_ids": list(self.entry_ids),
            "deltas": {account_id: delta.amount for account_id, delta in self.deltas.items()},
        }


async def _lock_entries(db: AsyncSession, agency_id: int, conditions) -> List[CreditEntry]:
    # A concurrent reversal that already removed a row leaves it out here, so
    # the same entry is never subtracted twice.
    result = await db.execute(
        select(CreditEntry)
        .where(CreditEntry.agency_id == agency_id, *conditions)
        .order_by(CreditEntry.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _reverse_entries(db: AsyncSession, agency_id: int, entries: List[CreditEntry]) -> ReversalResult:
    result = ReversalResult()
    if not entries:
        return result

    entries = await _lock_entries(db, agency_id, [CreditEntry.id.in_([e.id for e in entries])])
    if not entries:
        return result

    # Net effect to remove per account, summed with the lenient sign table so
    # rows written under an older table still revert.
    pending: Dict[int, Money] = {}
    for entry in entries:
        effect = signed_amount(Money(entry.amount), entry.document_type, strict=False)
        pending[entry.account_id] = pending.get(entry.account_id, Money.zero()) + effect

    account_ids = sorted(pending)
    rows = await db.execute(
        select(CreditAccount)
        .where(CreditAccount.id.in_(account_ids), CreditAccount.agency_id == agency_id)
        .order_by(CreditAccount.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    accounts = {account.id: account for account in rows.scalars().all()}

    missing = [account_id for account_id in account_ids if account_id not in accounts]
    if missing:
        raise LedgerConsistencyError(
            "Credit account referenced by an entry no longer exists",
            details={"account_ids": missing, "entry_ids": [e.id for e in entries]}
        )

    for account_id in account_ids:
        delta = -pending[account_id]
        apply_delta(accounts[account_id], delta)
        result.deltas[account_id] = delta

    for entry in entries:
        result.entry_ids.append(entry.id)
        await db.delete(entry)

    await db.flush()
    return result


async def reverse_for_document(db: AsyncSession, document_ref: DocumentRef, agency_id: int) -> ReversalResult:
    """
    Reverse every entry of ``document_ref`` owned by ``agency_id``.

    Entries of other agencies that share the same document id are never
    touched. A document with no entries is a no-op.

    Args:
        db: Database session (transaction managed by caller)
        document_ref: Source document (receipt, investment, operator due or booking)
        agency_id: Caller's agency

    Returns:
        ReversalResult with removed entries and per-account deltas

    Raises:
        LedgerConsistencyError: If an entry's account has vanished
    """
    entries = await _lock_entries(db, agency_id, document_ref.conditions())

    result = await _reverse_entries(db, agency_id, entries)
    if result.entries_removed:
        logger.info(
            "Reversed %s entries for document %s",
            result.entries_removed, document_ref.as_dict(),
            extra={"agency_id": agency_id}
        )
    return result


async def reverse_entry(
    db: AsyncSession,
    agency_id: int,
    entry_id: int,
    allow_linked: bool = False,
) -> ReversalResult:
    """
    Reverse and delete a single entry.

    Entries linked to a receipt or an operator due must be reversed through
    their document. Investment-linked entries can be removed here when
    ``allow_linked`` is set.

    Raises:
        ResourceNotFoundError: Entry does not exist in the agency
        LinkedEntryError: Entry is linked to a document
    """
    locked = await _lock_entries(db, agency_id, [CreditEntry.id == entry_id])
    entry = locked[0] if locked else None
    if entry is None:
        raise ResourceNotFoundError("Credit entry", entry_id)

    links = {
        key: value
        for key, value in (
            ("receipt_id", entry.receipt_id),
            ("operator_due_id", entry.operator_due_id),
            ("investment_id", entry.investment_id),
        )
        if value is not None
    }
    blocking = dict(links)
    if allow_linked:
        blocking.pop("investment_id", None)
    if blocking:
        raise LinkedEntryError(entry.id, links)

    reversal = await _reverse_entries(db, agency_id, [entry])
    logger.info("Deleted entry %s", entry_id, extra={"agency_id": agency_id, "links": links})
    return reversal
