"""
Credit account lifecycle.

Accounts are opened explicitly, one per (subject, currency) and agency.
Balances are never written directly: opening balances and manual
adjustments are posted as adjust entries so the balance always equals the
signed sum of the account's entries.
"""

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from backoffice.app.core.exceptions import (
    AccountHasEntriesError,
    LedgerValidationError,
    ResourceNotFoundError,
)
from backoffice.app.core.guards import tenant_guard
from backoffice.app.domain.ledger.money import Money
from backoffice.app.domain.ledger.posting import lock_account, normalize_currency, post_entry
from backoffice.app.domain.ledger.signs import DocumentType
from backoffice.app.models.credit_account import CreditAccount
from backoffice.app.models.credit_entry import CreditEntry
from backoffice.app.models.directory import Client, Operator
from backoffice.app.models.ledger_enums import SubjectType
from backoffice.app.services.counters import next_agency_number

logger = logging.getLogger(__name__)


async def get_account(db: AsyncSession, agency_id: int, account_id: int) -> CreditAccount:
    """Load an account of the agency without locking it."""
    result = await db.execute(
        select(CreditAccount).where(CreditAccount.id == account_id, CreditAccount.agency_id == agency_id)
    )
    account = result.scalar_one_or_none()
    if account is None:
        raise ResourceNotFoundError("Credit account", account_id)
    return account


async def _validate_subject(db: AsyncSession, agency_id: int, subject_type: str, subject_id: int) -> None:
    model, name = (Client, "Client") if subject_type == SubjectType.CLIENT.value else (Operator, "Operator")
    subject = await db.get(model, subject_id)
    if subject is None:
        raise ResourceNotFoundError(name, subject_id)
    tenant_guard.enforce(subject.agency_id, agency_id, name, subject_id)


async def open_account(
    db: AsyncSession,
    agency_id: int,
    subject_type: str,
    subject_id: int,
    currency: Any,
    credit_limit: Optional[Any] = None,
    initial_balance: Optional[Any] = None,
    created_by: Optional[int] = None,
) -> tuple[CreditAccount, bool]:
    """
    Open a credit account for a client or operator.

    Opening is idempotent per (subject, currency): an existing account is
    returned unchanged.

    Args:
        db: Database session (transaction managed by caller)
        agency_id: Caller's agency
        subject_type: "client" or "operator"
        subject_id: Client or operator id
        currency: ISO currency code
        credit_limit: Optional credit limit
        initial_balance: Optional opening balance, posted as an adjust entry
        created_by: ID of user opening the account

    Returns:
        Tuple of (account, created)
    """
    subject_type = (subject_type or "").strip().lower()
    if subject_type not in {s.value for s in SubjectType}:
        raise LedgerValidationError(
            "Subject type must be 'client' or 'operator'",
            details={"subject_type": subject_type}
        )
    currency = normalize_currency(currency)
    limit = Money.parse(credit_limit).amount if credit_limit is not None else None
    opening = Money.parse(initial_balance) if initial_balance is not None else Money.zero()

    await _validate_subject(db, agency_id, subject_type, subject_id)

    subject_column = CreditAccount.client_id if subject_type == SubjectType.CLIENT.value else CreditAccount.operator_id
    existing = await db.execute(
        select(CreditAccount).where(
            CreditAccount.agency_id == agency_id,
            CreditAccount.subject_type == subject_type,
            subject_column == subject_id,
            CreditAccount.currency == currency,
        )
    )
    account = existing.scalars().first()
    if account is not None:
        return account, False

    account = CreditAccount(
        agency_id=agency_id,
        agency_account_number=await next_agency_number(db, agency_id, "credit_account"),
        subject_type=subject_type,
        client_id=subject_id if subject_type == SubjectType.CLIENT.value else None,
        operator_id=subject_id if subject_type == SubjectType.OPERATOR.value else None,
        currency=currency,
        balance=Money.zero().amount,
        credit_limit=limit,
        enabled=True,
    )
    db.add(account)
    await db.flush()

    if not opening.is_zero():
        await post_entry(
            db,
            agency_id=agency_id,
            account_id=account.id,
            amount=abs(opening),
            currency=currency,
            document_type=(DocumentType.ADJUST_UP if opening.is_positive() else DocumentType.ADJUST_DOWN).value,
            concept="Opening balance",
            created_by=created_by,
        )

    logger.info(
        "Opened credit account %s for %s %s in %s",
        account.id, subject_type, subject_id, currency,
        extra={"agency_id": agency_id}
    )
    return account, True


async def adjust_to_target(
    db: AsyncSession,
    agency_id: int,
    account_id: int,
    target_balance: Any,
    reason: str,
    created_by: Optional[int] = None,
) -> Optional[CreditEntry]:
    """
    Bring an account to ``target_balance`` with a single adjust entry.

    Returns:
        The adjust entry, or None when the balance already equals the target
    """
    reason = (reason or "").strip()
    if not reason:
        raise LedgerValidationError("A reason is required for manual adjustments")
    target = Money.parse(target_balance)

    account = await lock_account(db, agency_id, account_id)
    difference = target - Money(account.balance)
    if difference.is_zero():
        return None

    return await post_entry(
        db,
        agency_id=agency_id,
        account_id=account.id,
        amount=abs(difference),
        currency=account.currency,
        document_type=(DocumentType.ADJUST_UP if difference.is_positive() else DocumentType.ADJUST_DOWN).value,
        concept=f"Manual adjustment: {reason}",
        created_by=created_by,
    )


async def update_account(
    db: AsyncSession,
    agency_id: int,
    account_id: int,
    enabled: Optional[bool] = None,
    credit_limit: Optional[Any] = None,
    clear_credit_limit: bool = False,
) -> CreditAccount:
    """Toggle an account or change its credit limit. The balance is never touched here."""
    account = await get_account(db, agency_id, account_id)
    if enabled is not None:
        account.enabled = enabled
    if clear_credit_limit:
        account.credit_limit = None
    elif credit_limit is not None:
        account.credit_limit = Money.parse(credit_limit).amount
    await db.flush()
    return account


async def set_account_enabled(db: AsyncSession, agency_id: int, account_id: int, enabled: bool) -> CreditAccount:
    return await update_account(db, agency_id, account_id, enabled=enabled)


async def count_entries(db: AsyncSession, account_id: int) -> int:
    result = await db.execute(
        select(func.count(CreditEntry.id)).where(CreditEntry.account_id == account_id)
    )
    return result.scalar_one()


async def delete_account(db: AsyncSession, agency_id: int, account_id: int) -> None:
    """
    Delete an account that has never been posted to.

    Raises:
        AccountHasEntriesError: The account has entries; disable it instead
    """
    account = await lock_account(db, agency_id, account_id)
    entries = await count_entries(db, account.id)
    if entries:
        raise AccountHasEntriesError(account.id, entries)
    await db.delete(account)
    await db.flush()
    logger.info("Deleted credit account %s", account_id, extra={"agency_id": agency_id})
