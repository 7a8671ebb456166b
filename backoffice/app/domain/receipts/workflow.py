"""
Receipt Reconciliation Workflow (Domain Logic).

Keeps receipts, their credit entries and the client payment schedule in
step. Every operation runs inside the caller's transaction and validates all
input before the first write, so a rejected request leaves nothing behind
and a failure halfway is rolled back by the caller.

Lifecycle: Draft -> Posted -> (Edited -> Posted)* -> Deleted
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from backoffice.app.core.config import settings
from backoffice.app.core.exceptions import (
    AccountDisabledError,
    CurrencyMismatchError,
    LedgerValidationError,
    ResourceNotFoundError,
)
from backoffice.app.core.guards import tenant_guard
from backoffice.app.domain.ledger.accounts import get_account
from backoffice.app.domain.ledger.money import Money
from backoffice.app.domain.ledger.posting import DocumentRef, lock_accounts, normalize_currency, post_entry
from backoffice.app.domain.ledger.reversal import ReversalResult, reverse_for_document
from backoffice.app.domain.ledger.signs import DocumentType
from backoffice.app.domain.receipts.schedule import reopen_payments_for_receipt
from backoffice.app.models.client_payment import ClientPayment
from backoffice.app.models.credit_entry import CreditEntry
from backoffice.app.models.directory import Booking, Client
from backoffice.app.models.payment_method import FinancePaymentMethod
from backoffice.app.models.receipt import Receipt
from backoffice.app.models.receipt_payment import ReceiptPayment
from backoffice.app.services.audit import AuditAction
from backoffice.app.services.counters import next_agency_number

logger = logging.getLogger(__name__)


@dataclass
class PaymentLineInput:
    amount: Any
    payment_method_id: int
    account_label: Optional[str] = None
    credit_account_id: Optional[int] = None


@dataclass
class ReceiptInput:
    """Fields a caller supplies to create or replace a receipt."""
    concept: str
    amount: Any
    amount_currency: str
    payments: List[PaymentLineInput]
    booking_id: Optional[int] = None
    amount_string: Optional[str] = None
    base_amount: Optional[Any] = None
    base_currency: Optional[str] = None
    counter_amount: Optional[Any] = None
    counter_currency: Optional[str] = None
    client_ids: List[int] = field(default_factory=list)
    issue_date: Optional[datetime] = None


@dataclass
class _ValidLine:
    amount: Money
    payment_method_id: int
    account_label: Optional[str]
    credit_account_id: Optional[int]


@dataclass
class _ValidReceipt:
    concept: str
    amount: Money
    currency: str
    lines: List[_ValidLine]
    booking_id: Optional[int]
    client_ids: List[int]
    source: ReceiptInput


@dataclass
class ReceiptOutcome:
    """What a workflow step did, for responses and logs."""
    receipt: Optional[Receipt]
    receipt_id: int
    posted_entries: List[CreditEntry] = field(default_factory=list)
    reversal: ReversalResult = field(default_factory=ReversalResult)
    reopened_payments: List[ClientPayment] = field(default_factory=list)


class ReceiptWorkflow:

    @staticmethod
    async def _validate(db: AsyncSession, agency_id: int, data: ReceiptInput) -> _ValidReceipt:
        concept = (data.concept or "").strip()
        if not concept:
            raise LedgerValidationError("Concept is required")
        currency = normalize_currency(data.amount_currency)
        amount = Money.parse(data.amount)
        if not amount.is_positive():
            raise LedgerValidationError("Receipt amount must be greater than zero")
        if not data.payments:
            raise LedgerValidationError("A receipt needs at least one payment line")

        if data.booking_id is not None:
            booking = await db.get(Booking, data.booking_id)
            if booking is None:
                raise ResourceNotFoundError("Booking", data.booking_id)
            tenant_guard.enforce(booking.agency_id, agency_id, "Booking", booking.id)

        client_ids = list(dict.fromkeys(data.client_ids or []))
        for client_id in client_ids:
            client = await db.get(Client, client_id)
            if client is None:
                raise ResourceNotFoundError("Client", client_id)
            tenant_guard.enforce(client.agency_id, agency_id, "Client", client_id)

        lines = []
        for index, line in enumerate(data.payments):
            line_amount = Money.parse(line.amount)
            if not line_amount.is_positive():
                raise LedgerValidationError(
                    "Payment line amount must be greater than zero",
                    details={"line": index}
                )

            method = await db.get(FinancePaymentMethod, line.payment_method_id)
            if method is None or method.agency_id != agency_id:
                raise ResourceNotFoundError("Payment method", line.payment_method_id)
            if not method.enabled:
                raise LedgerValidationError(
                    f"Payment method '{method.name}' is disabled",
                    details={"line": index, "payment_method_id": method.id}
                )

            label = (line.account_label or "").strip() or None
            if method.requires_account and not label:
                raise LedgerValidationError(
                    f"Payment method '{method.name}' requires an account",
                    details={"line": index, "payment_method_id": method.id}
                )

            if method.uses_credit_account and line.credit_account_id is None:
                raise LedgerValidationError(
                    f"Payment method '{method.name}' requires a credit account",
                    details={"line": index, "payment_method_id": method.id}
                )
            if line.credit_account_id is not None:
                if not method.uses_credit_account:
                    raise LedgerValidationError(
                        f"Payment method '{method.name}' does not settle against credit accounts",
                        details={"line": index, "payment_method_id": method.id}
                    )
                account = await get_account(db, agency_id, line.credit_account_id)
                if account.currency != currency:
                    raise CurrencyMismatchError(currency, account.currency)
                if not account.enabled and not settings.allow_posting_to_disabled_accounts:
                    raise AccountDisabledError(account.id)

            lines.append(_ValidLine(line_amount, method.id, label, line.credit_account_id))

        lines_total = sum((line.amount for line in lines), Money.zero())
        if lines_total != amount:
            raise LedgerValidationError(
                "Receipt amount must equal the sum of its payment lines",
                details={"amount": amount.amount, "lines_total": lines_total.amount}
            )

        return _ValidReceipt(concept, amount, currency, lines, data.booking_id, client_ids, data)

    @staticmethod
    async def _next_receipt_number(db: AsyncSession, agency_id: int, booking_id: Optional[int]) -> str:
        if booking_id is not None:
            n = await next_agency_number(db, agency_id, f"booking_receipt:{booking_id}")
            return f"{booking_id}-{n}"
        return str(await next_agency_number(db, agency_id, "receipt"))

    @staticmethod
    def _apply_fields(receipt: Receipt, valid: _ValidReceipt) -> None:
        data = valid.source
        receipt.booking_id = valid.booking_id
        receipt.concept = valid.concept
        receipt.amount = valid.amount.amount
        receipt.amount_currency = valid.currency
        receipt.amount_string = data.amount_string
        receipt.base_amount = Money.parse(data.base_amount).amount if data.base_amount is not None else None
        receipt.base_currency = normalize_currency(data.base_currency) if data.base_currency else None
        receipt.counter_amount = Money.parse(data.counter_amount).amount if data.counter_amount is not None else None
        receipt.counter_currency = normalize_currency(data.counter_currency) if data.counter_currency else None
        receipt.client_ids = valid.client_ids
        if data.issue_date is not None:
            receipt.issue_date = data.issue_date
        receipt.payments = [
            ReceiptPayment(
                amount=line.amount.amount,
                payment_method_id=line.payment_method_id,
                account_label=line.account_label,
                credit_account_id=line.credit_account_id,
            )
            for line in valid.lines
        ]

    @staticmethod
    async def _post_lines(
        db: AsyncSession,
        agency_id: int,
        receipt: Receipt,
        valid: _ValidReceipt,
        created_by: Optional[int],
    ) -> List[CreditEntry]:
        await lock_accounts(
            db, agency_id, [line.credit_account_id for line in valid.lines if line.credit_account_id is not None]
        )
        entries = []
        source = DocumentRef(receipt_id=receipt.id, booking_id=receipt.booking_id)
        for line in valid.lines:
            if line.credit_account_id is None:
                continue
            entry = await post_entry(
                db,
                agency_id=agency_id,
                account_id=line.credit_account_id,
                amount=line.amount,
                currency=valid.currency,
                document_type=DocumentType.RECEIPT.value,
                concept=f"Receipt {receipt.receipt_number}: {valid.concept}",
                source=source,
                created_by=created_by,
                value_date=valid.source.issue_date,
                require_enabled=True,
            )
            entries.append(entry)
        return entries

    @staticmethod
    async def _lock_receipt(db: AsyncSession, agency_id: int, receipt_id: int) -> Receipt:
        result = await db.execute(
            select(Receipt)
            .where(Receipt.id == receipt_id, Receipt.agency_id == agency_id)
            .with_for_update()
        )
        receipt = result.scalar_one_or_none()
        if receipt is None:
            raise ResourceNotFoundError("Receipt", receipt_id)
        return receipt

    @staticmethod
    async def create_receipt(
        db: AsyncSession,
        agency_id: int,
        data: ReceiptInput,
        created_by: Optional[int] = None,
    ) -> ReceiptOutcome:
        """
        Create and post a receipt.

        Flow:
        1. Validate header, booking/clients tenant and every payment line
        2. Allocate the receipt number
        3. Persist receipt and lines
        4. Post one receipt entry per credit-account line

        Args:
            db: Database session (transaction managed by caller)
            agency_id: Caller's agency
            data: Receipt fields and payment lines
            created_by: ID of user issuing the receipt

        Returns:
            ReceiptOutcome with the receipt and posted entries
        """
        valid = await ReceiptWorkflow._validate(db, agency_id, data)

        receipt = Receipt(
            agency_id=agency_id,
            receipt_number=await ReceiptWorkflow._next_receipt_number(db, agency_id, valid.booking_id),
            created_by=created_by,
        )
        ReceiptWorkflow._apply_fields(receipt, valid)
        db.add(receipt)
        await db.flush()

        entries = await ReceiptWorkflow._post_lines(db, agency_id, receipt, valid, created_by)

        logger.info(
            "Created receipt %s (%s %s) with %s credit entries",
            receipt.receipt_number, valid.amount, valid.currency, len(entries),
            extra={"agency_id": agency_id, "receipt_id": receipt.id}
        )
        return ReceiptOutcome(receipt=receipt, receipt_id=receipt.id, posted_entries=entries)

    @staticmethod
    async def update_receipt(
        db: AsyncSession,
        agency_id: int,
        receipt_id: int,
        data: ReceiptInput,
        changed_by: Optional[int] = None,
    ) -> ReceiptOutcome:
        """
        Replace a posted receipt.

        Flow:
        1. Validate the new content (no writes yet)
        2. Reverse every credit entry of the receipt
        3. Reopen schedule lines it had paid (RECEIPT_EDITED_REOPEN)
        4. Replace fields and lines
        5. Re-post entries for the new credit-account lines

        Returns:
            ReceiptOutcome with reversal, reopened lines and new entries
        """
        receipt = await ReceiptWorkflow._lock_receipt(db, agency_id, receipt_id)
        valid = await ReceiptWorkflow._validate(db, agency_id, data)

        # accounts losing the old entries and gaining the new ones, all locked up front
        posted_accounts = await db.execute(
            select(CreditEntry.account_id).where(
                CreditEntry.agency_id == agency_id, CreditEntry.receipt_id == receipt.id
            )
        )
        await lock_accounts(
            db,
            agency_id,
            list(posted_accounts.scalars().all())
            + [line.credit_account_id for line in valid.lines if line.credit_account_id is not None],
        )

        reversal = await reverse_for_document(db, DocumentRef(receipt_id=receipt.id), agency_id)
        reopened = await reopen_payments_for_receipt(
            db, agency_id, receipt.id, AuditAction.RECEIPT_EDITED_REOPEN, changed_by=changed_by
        )

        ReceiptWorkflow._apply_fields(receipt, valid)
        await db.flush()

        entries = await ReceiptWorkflow._post_lines(db, agency_id, receipt, valid, changed_by)

        logger.info(
            "Updated receipt %s: reversed %s entries, reopened %s lines, posted %s entries",
            receipt.receipt_number, reversal.entries_removed, len(reopened), len(entries),
            extra={"agency_id": agency_id, "receipt_id": receipt.id}
        )
        return ReceiptOutcome(
            receipt=receipt,
            receipt_id=receipt.id,
            posted_entries=entries,
            reversal=reversal,
            reopened_payments=reopened,
        )

    @staticmethod
    async def delete_receipt(
        db: AsyncSession,
        agency_id: int,
        receipt_id: int,
        changed_by: Optional[int] = None,
    ) -> ReceiptOutcome:
        """
        Delete a receipt after undoing its effects.

        Flow:
        1. Reverse every credit entry of the receipt
        2. Reopen schedule lines it had paid (RECEIPT_DELETED_REOPEN)
        3. Delete the receipt and its lines

        Returns:
            ReceiptOutcome with reversal and reopened lines
        """
        receipt = await ReceiptWorkflow._lock_receipt(db, agency_id, receipt_id)

        reversal = await reverse_for_document(db, DocumentRef(receipt_id=receipt.id), agency_id)
        reopened = await reopen_payments_for_receipt(
            db, agency_id, receipt.id, AuditAction.RECEIPT_DELETED_REOPEN, changed_by=changed_by
        )

        await db.delete(receipt)
        await db.flush()

        logger.info(
            "Deleted receipt %s: reversed %s entries, reopened %s lines",
            receipt.receipt_number, reversal.entries_removed, len(reopened),
            extra={"agency_id": agency_id, "receipt_id": receipt_id}
        )
        return ReceiptOutcome(receipt=None, receipt_id=receipt_id, reversal=reversal, reopened_payments=reopened)
