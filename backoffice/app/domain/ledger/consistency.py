"""
Ledger consistency audit.

Recomputes every account balance from its entries and reports accounts whose
stored balance drifted, plus entries posted in a currency other than their
account's. Read-only: nothing is repaired automatically.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, case, literal

from backoffice.app.domain.ledger.money import Money
from backoffice.app.domain.ledger.signs import DOCUMENT_SIGNS
from backoffice.app.models.credit_account import CreditAccount
from backoffice.app.models.credit_entry import CreditEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BalanceMismatch:
    account_id: int
    agency_id: int
    stored_balance: Money
    computed_balance: Money

    @property
    def difference(self) -> Money:
        return self.stored_balance - self.computed_balance


@dataclass(frozen=True)
class CurrencyMismatch:
    entry_id: int
    account_id: int
    entry_currency: str
    account_currency: str


@dataclass
class ConsistencyReport:
    accounts_checked: int
    balance_mismatches: List[BalanceMismatch]
    currency_mismatches: List[CurrencyMismatch]

    @property
    def ok(self) -> bool:
        return not self.balance_mismatches and not self.currency_mismatches


def _signed_amount_expr():
    # Unknown types count as +1, like lenient reversal
    sign = case(
        *[(func.lower(CreditEntry.document_type) == doc_type, literal(value)) for doc_type, value in DOCUMENT_SIGNS.items()],
        else_=literal(1),
    )
    return CreditEntry.amount * sign


async def find_balance_mismatches(
    db: AsyncSession,
    agency_id: Optional[int] = None,
    account_id: Optional[int] = None,
) -> ConsistencyReport:
    """
    Compare stored balances against the signed sum of entries.

    Args:
        db: Database session
        agency_id: Restrict to one agency (all agencies when None)
        account_id: Restrict to one account

    Returns:
        ConsistencyReport
    """
    sums = (
        select(
            CreditEntry.account_id.label("account_id"),
            func.sum(_signed_amount_expr()).label("total"),
        )
        .group_by(CreditEntry.account_id)
        .subquery()
    )
    query = select(CreditAccount, sums.c.total).outerjoin(sums, sums.c.account_id == CreditAccount.id)
    if agency_id is not None:
        query = query.where(CreditAccount.agency_id == agency_id)
    if account_id is not None:
        query = query.where(CreditAccount.id == account_id)

    rows = (await db.execute(query.order_by(CreditAccount.id))).all()

    balance_mismatches = []
    for account, total in rows:
        stored = Money(account.balance)
        computed = Money(Decimal(str(total)) if total is not None else Decimal(0))
        if stored != computed:
            balance_mismatches.append(BalanceMismatch(account.id, account.agency_id, stored, computed))

    currency_query = (
        select(CreditEntry.id, CreditEntry.account_id, CreditEntry.currency, CreditAccount.currency)
        .join(CreditAccount, CreditAccount.id == CreditEntry.account_id)
        .where(CreditEntry.currency != CreditAccount.currency)
    )
    if agency_id is not None:
        currency_query = currency_query.where(CreditAccount.agency_id == agency_id)
    if account_id is not None:
        currency_query = currency_query.where(CreditAccount.id == account_id)

    currency_mismatches = [
        CurrencyMismatch(entry_id, acc_id, entry_currency, account_currency)
        for entry_id, acc_id, entry_currency, account_currency in (await db.execute(currency_query)).all()
    ]

    report = ConsistencyReport(len(rows), balance_mismatches, currency_mismatches)
    if not report.ok:
        logger.warning(
            "Ledger inconsistencies found: %s balance, %s currency",
            len(balance_mismatches), len(currency_mismatches),
            extra={"agency_id": agency_id}
        )
    return report
