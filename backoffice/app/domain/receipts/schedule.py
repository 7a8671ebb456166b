"""
Client payment schedule transitions driven by receipts.

Schedule lines move PENDIENTE -> PAGADA when settled with a receipt and back
to PENDIENTE when that receipt is edited or deleted. Every transition is
audited in the same transaction.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from backoffice.app.core.exceptions import LedgerValidationError, ResourceNotFoundError
from backoffice.app.domain.ledger.money import Money
from backoffice.app.models.client_payment import ClientPayment
from backoffice.app.models.ledger_enums import ClientPaymentStatus, DerivedPaymentStatus
from backoffice.app.models.receipt import Receipt
from backoffice.app.services.audit import AuditAction, log_payment_event

logger = logging.getLogger(__name__)

SETTLE_TOLERANCE = Decimal("0.009")


def derive_status(payment: ClientPayment, now: Optional[datetime] = None) -> str:
    """Status shown to callers: pending lines past their due date are VENCIDA."""
    if payment.status != ClientPaymentStatus.PENDING.value:
        return payment.status
    now = now or datetime.now(timezone.utc)
    due = payment.due_date
    if due is not None and due.tzinfo is None:
        due = due.replace(tzinfo=timezone.utc)
    if due is not None and due < now:
        return DerivedPaymentStatus.OVERDUE.value
    return DerivedPaymentStatus.PENDING.value


async def reopen_payments_for_receipt(
    db: AsyncSession,
    agency_id: int,
    receipt_id: int,
    action: str,
    changed_by: Optional[int] = None,
) -> List[ClientPayment]:
    """
    Reopen the schedule lines paid with a receipt.

    Each PAGADA line linked to the receipt goes back to PENDIENTE, loses its
    receipt link and payment stamp, and gets an audit record carrying
    ``action``.

    Args:
        db: Database session (transaction managed by caller)
        agency_id: Caller's agency
        receipt_id: Receipt being edited or deleted
        action: AuditAction.RECEIPT_EDITED_REOPEN or RECEIPT_DELETED_REOPEN
        changed_by: ID of user performing the change

    Returns:
        Reopened schedule lines
    """
    result = await db.execute(
        select(ClientPayment)
        .where(
            ClientPayment.agency_id == agency_id,
            ClientPayment.receipt_id == receipt_id,
            ClientPayment.status == ClientPaymentStatus.PAID.value,
        )
        .order_by(ClientPayment.id)
        .with_for_update()
    )
    payments = list(result.scalars().all())

    for payment in payments:
        payment.status = ClientPaymentStatus.PENDING.value
        payment.receipt_id = None
        payment.paid_at = None
        payment.paid_by = None
        payment.status_reason = None
        await log_payment_event(
            db,
            client_payment_id=payment.id,
            agency_id=agency_id,
            action=action,
            from_status=ClientPaymentStatus.PAID.value,
            to_status=ClientPaymentStatus.PENDING.value,
            reason="Receipt edited" if action == AuditAction.RECEIPT_EDITED_REOPEN else "Receipt deleted",
            changed_by=changed_by,
            data={"receipt_id": receipt_id},
        )

    if payments:
        logger.info(
            "Reopened %s schedule lines of receipt %s", len(payments), receipt_id,
            extra={"agency_id": agency_id, "action": action}
        )
    return payments


async def settle_client_payments(
    db: AsyncSession,
    agency_id: int,
    receipt_id: int,
    payment_ids: Sequence[int],
    changed_by: Optional[int] = None,
) -> List[ClientPayment]:
    """
    Mark pending schedule lines as paid by a receipt.

    All lines must be PENDIENTE and share booking, client and currency; the
    currency must be the receipt's and the receipt amount must equal the sum
    of the lines.

    Returns:
        Settled schedule lines
    """
    ids = sorted(set(payment_ids))
    if not ids:
        raise LedgerValidationError("At least one schedule line is required")

    receipt = (await db.execute(
        select(Receipt).where(Receipt.id == receipt_id, Receipt.agency_id == agency_id)
    )).scalar_one_or_none()
    if receipt is None:
        raise ResourceNotFoundError("Receipt", receipt_id)

    result = await db.execute(
        select(ClientPayment)
        .where(ClientPayment.agency_id == agency_id, ClientPayment.id.in_(ids))
        .order_by(ClientPayment.id)
        .with_for_update()
    )
    payments = list(result.scalars().all())
    found = {p.id for p in payments}
    missing = [i for i in ids if i not in found]
    if missing:
        raise ResourceNotFoundError("Client payment", missing[0])

    not_pending = [p.id for p in payments if p.status != ClientPaymentStatus.PENDING.value]
    if not_pending:
        raise LedgerValidationError(
            "Only pending schedule lines can be settled",
            details={"client_payment_ids": not_pending}
        )
    if len({p.booking_id for p in payments}) > 1 or len({p.client_id for p in payments}) > 1:
        raise LedgerValidationError("Schedule lines must belong to the same booking and client")
    if receipt.booking_id is not None and payments[0].booking_id != receipt.booking_id:
        raise LedgerValidationError(
            "Schedule lines belong to a different booking than the receipt",
            details={"receipt_booking_id": receipt.booking_id, "booking_id": payments[0].booking_id}
        )
    currencies = {p.currency for p in payments}
    if currencies != {receipt.amount_currency}:
        raise LedgerValidationError(
            "Schedule lines must be in the receipt currency",
            details={"receipt_currency": receipt.amount_currency, "currencies": sorted(currencies)}
        )

    total = sum((Money(p.amount) for p in payments), Money.zero())
    if abs(Money(receipt.amount) - total).amount > SETTLE_TOLERANCE:
        raise LedgerValidationError(
            "Receipt amount does not match the schedule lines",
            details={"receipt_amount": receipt.amount, "lines_total": total.amount}
        )

    now = datetime.now(timezone.utc)
    for payment in payments:
        payment.status = ClientPaymentStatus.PAID.value
        payment.receipt_id = receipt.id
        payment.paid_at = now
        payment.paid_by = changed_by
        await log_payment_event(
            db,
            client_payment_id=payment.id,
            agency_id=agency_id,
            action=AuditAction.STATUS_CHANGE,
            from_status=ClientPaymentStatus.PENDING.value,
            to_status=ClientPaymentStatus.PAID.value,
            changed_by=changed_by,
            data={"receipt_id": receipt.id, "mode": "receipt"},
        )

    await db.flush()
    logger.info("Settled %s schedule lines with receipt %s", len(payments), receipt.id, extra={"agency_id": agency_id})
    return payments


async def list_client_payments(
    db: AsyncSession,
    agency_id: int,
    booking_id: Optional[int] = None,
    client_id: Optional[int] = None,
    status: Optional[str] = None,
    limit: int = 100,
) -> List[ClientPayment]:
    """
    List schedule lines of an agency.

    ``status`` filters on the derived status, so VENCIDA is accepted.
    """
    query = select(ClientPayment).where(ClientPayment.agency_id == agency_id)
    if booking_id is not None:
        query = query.where(ClientPayment.booking_id == booking_id)
    if client_id is not None:
        query = query.where(ClientPayment.client_id == client_id)

    wanted = status.strip().upper() if status else None
    if wanted in (ClientPaymentStatus.PAID.value, ClientPaymentStatus.CANCELLED.value):
        query = query.where(ClientPayment.status == wanted)
    elif wanted in (DerivedPaymentStatus.PENDING.value, DerivedPaymentStatus.OVERDUE.value):
        query = query.where(ClientPayment.status == ClientPaymentStatus.PENDING.value)

    result = await db.execute(query.order_by(ClientPayment.due_date, ClientPayment.id).limit(limit))
    payments = list(result.scalars().all())
    if wanted in (DerivedPaymentStatus.PENDING.value, DerivedPaymentStatus.OVERDUE.value):
        now = datetime.now(timezone.utc)
        payments = [p for p in payments if derive_status(p, now) == wanted]
    return payments
