"""
Receipt reconciliation: posting, edits, deletion and schedule reopening.
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from sqlalchemy import select, func

from backoffice.app.core.exceptions import (
    AccountDisabledError,
    CurrencyMismatchError,
    LedgerValidationError,
    ResourceNotFoundError,
    TenantAccessError,
)
from backoffice.app.domain.ledger.accounts import open_account, set_account_enabled
from backoffice.app.domain.ledger.consistency import find_balance_mismatches
from backoffice.app.domain.ledger.posting import lock_accounts as ledger_lock_accounts
from backoffice.app.domain.ledger.posting import post_entry as ledger_post_entry
from backoffice.app.domain.receipts.schedule import settle_client_payments
from backoffice.app.domain.receipts.workflow import PaymentLineInput, ReceiptInput, ReceiptWorkflow
from backoffice.app.models.client_payment import ClientPayment
from backoffice.app.models.client_payment_audit import ClientPaymentAudit
from backoffice.app.models.credit_account import CreditAccount
from backoffice.app.models.credit_entry import CreditEntry
from backoffice.app.models.receipt import Receipt
from backoffice.app.models.receipt_payment import ReceiptPayment

AGENCY = 1


@pytest.fixture
async def setup(db_session, directory):
    account, _ = await open_account(db_session, AGENCY, "client", directory["client"].id, "ARS")
    installment = ClientPayment(
        agency_id=AGENCY,
        booking_id=directory["booking"].id,
        client_id=directory["client"].id,
        amount=Decimal("150.00"),
        currency="ARS",
        due_date=datetime.now(timezone.utc) + timedelta(days=10),
        status="PENDIENTE",
    )
    db_session.add(installment)
    await db_session.commit()
    return {"account": account, "installment": installment, **directory}


def _receipt(setup, amount, lines=None, **overrides):
    data = dict(
        concept="Pago reserva",
        amount=amount,
        amount_currency="ARS",
        booking_id=setup["booking"].id,
        client_ids=[setup["client"].id],
        payments=lines if lines is not None else [
            PaymentLineInput(amount=amount, payment_method_id=setup["credit"].id, credit_account_id=setup["account"].id)
        ],
    )
    data.update(overrides)
    return ReceiptInput(**data)


async def _entries(db):
    return (await db.execute(select(CreditEntry).order_by(CreditEntry.id))).scalars().all()


async def _balance(db, account_id):
    result = await db.execute(
        select(CreditAccount).where(CreditAccount.id == account_id).execution_options(populate_existing=True)
    )
    return result.scalar_one().balance


@pytest.mark.asyncio
async def test_create_posts_one_entry_per_credit_line(db_session, setup):
    lines = [
        PaymentLineInput(amount="100", payment_method_id=setup["credit"].id, credit_account_id=setup["account"].id),
        PaymentLineInput(amount="30", payment_method_id=setup["cash"].id),
        PaymentLineInput(amount="20", payment_method_id=setup["transfer"].id, account_label="Banco 123"),
    ]
    outcome = await ReceiptWorkflow.create_receipt(db_session, AGENCY, _receipt(setup, "150", lines), created_by=10)
    await db_session.commit()

    receipt = outcome.receipt
    assert receipt.receipt_number == f"{setup['booking'].id}-1"
    assert len(receipt.payments) == 3
    [entry] = await _entries(db_session)
    assert entry.receipt_id == receipt.id
    assert entry.booking_id == setup["booking"].id
    assert entry.document_type == "receipt"
    assert entry.amount == Decimal("100.00")
    assert await _balance(db_session, setup["account"].id) == Decimal("100.00")

    second = await ReceiptWorkflow.create_receipt(db_session, AGENCY, _receipt(setup, "5"))
    standalone = await ReceiptWorkflow.create_receipt(db_session, AGENCY, _receipt(setup, "5", booking_id=None))
    assert second.receipt.receipt_number == f"{setup['booking'].id}-2"
    assert standalone.receipt.receipt_number == "1"


@pytest.mark.asyncio
async def test_edit_then_delete_keeps_balance_exact(db_session, setup):
    account_id = setup["account"].id
    installment_id = setup["installment"].id

    created = await ReceiptWorkflow.create_receipt(db_session, AGENCY, _receipt(setup, "150"))
    await db_session.commit()
    receipt_id = created.receipt_id
    await settle_client_payments(db_session, AGENCY, receipt_id, [installment_id], changed_by=10)
    await db_session.commit()
    assert await _balance(db_session, account_id) == Decimal("150.00")

    updated = await ReceiptWorkflow.update_receipt(db_session, AGENCY, receipt_id, _receipt(setup, "200"), changed_by=11)
    await db_session.commit()

    assert updated.reversal.entries_removed == 1
    assert [p.id for p in updated.reopened_payments] == [installment_id]
    [entry] = await _entries(db_session)
    assert entry.amount == Decimal("200.00")
    assert await _balance(db_session, account_id) == Decimal("200.00")

    installment = await db_session.get(ClientPayment, installment_id)
    assert installment.status == "PENDIENTE"
    assert installment.receipt_id is None
    assert installment.paid_at is None

    audits = (await db_session.execute(
        select(ClientPaymentAudit).order_by(ClientPaymentAudit.id)
    )).scalars().all()
    assert [a.action for a in audits] == ["STATUS_CHANGE", "RECEIPT_EDITED_REOPEN"]
    assert audits[0].data == {"receipt_id": receipt_id, "mode": "receipt"}
    assert audits[1].from_status == "PAGADA" and audits[1].to_status == "PENDIENTE"
    assert audits[1].changed_by == 11

    deleted = await ReceiptWorkflow.delete_receipt(db_session, AGENCY, receipt_id)
    await db_session.commit()

    assert deleted.reversal.entries_removed == 1
    assert deleted.reopened_payments == []
    assert await _entries(db_session) == []
    assert await _balance(db_session, account_id) == Decimal("0.00")
    assert (await db_session.execute(select(func.count(Receipt.id)))).scalar_one() == 0
    assert (await find_balance_mismatches(db_session, agency_id=AGENCY)).ok


@pytest.mark.asyncio
async def test_delete_reopens_paid_installments(db_session, setup):
    installment_id = setup["installment"].id
    created = await ReceiptWorkflow.create_receipt(db_session, AGENCY, _receipt(setup, "150"))
    await settle_client_payments(db_session, AGENCY, created.receipt_id, [installment_id])
    await db_session.commit()

    outcome = await ReceiptWorkflow.delete_receipt(db_session, AGENCY, created.receipt_id, changed_by=12)
    await db_session.commit()

    assert [p.id for p in outcome.reopened_payments] == [installment_id]
    audit = (await db_session.execute(
        select(ClientPaymentAudit).where(ClientPaymentAudit.action == "RECEIPT_DELETED_REOPEN")
    )).scalar_one()
    assert audit.client_payment_id == installment_id
    assert audit.data == {"receipt_id": created.receipt_id}
    installment = await db_session.get(ClientPayment, installment_id)
    assert installment.status == "PENDIENTE"


@pytest.mark.asyncio
async def test_failure_during_edit_rolls_everything_back(db_session, setup, mocker):
    installment_id = setup["installment"].id
    account_id = setup["account"].id
    created = await ReceiptWorkflow.create_receipt(db_session, AGENCY, _receipt(setup, "150"))
    await settle_client_payments(db_session, AGENCY, created.receipt_id, [installment_id])
    await db_session.commit()

    mocker.patch(
        "backoffice.app.domain.receipts.workflow.post_entry",
        side_effect=RuntimeError("database went away"),
    )
    with pytest.raises(RuntimeError):
        await ReceiptWorkflow.update_receipt(db_session, AGENCY, created.receipt_id, _receipt(setup, "200"))
    await db_session.rollback()

    [entry] = await _entries(db_session)
    assert entry.amount == Decimal("150.00")
    assert await _balance(db_session, account_id) == Decimal("150.00")
    installment = (await db_session.execute(
        select(ClientPayment).where(ClientPayment.id == installment_id).execution_options(populate_existing=True)
    )).scalar_one()
    assert installment.status == "PAGADA"
    assert installment.receipt_id == created.receipt_id
    receipt = (await db_session.execute(
        select(Receipt).where(Receipt.id == created.receipt_id).execution_options(populate_existing=True)
    )).scalar_one()
    assert receipt.amount == Decimal("150.00")


@pytest.mark.asyncio
async def test_failure_during_create_leaves_nothing_behind(db_session, setup, mocker):
    second, _ = await open_account(db_session, AGENCY, "operator", setup["operator"].id, "ARS")
    await db_session.commit()
    first_id, second_id = setup["account"].id, second.id
    calls = []

    async def post_then_fail(*args, **kwargs):
        calls.append(kwargs["account_id"])
        if len(calls) > 1:
            raise RuntimeError("database went away")
        return await ledger_post_entry(*args, **kwargs)

    mocker.patch("backoffice.app.domain.receipts.workflow.post_entry", side_effect=post_then_fail)
    lines = [
        PaymentLineInput(amount="60", payment_method_id=setup["credit"].id, credit_account_id=first_id),
        PaymentLineInput(amount="40", payment_method_id=setup["credit"].id, credit_account_id=second_id),
    ]
    with pytest.raises(RuntimeError):
        await ReceiptWorkflow.create_receipt(db_session, AGENCY, _receipt(setup, "100", lines))
    await db_session.rollback()

    assert len(calls) == 2
    assert await _entries(db_session) == []
    assert (await db_session.execute(select(func.count(Receipt.id)))).scalar_one() == 0
    assert (await db_session.execute(select(func.count(ReceiptPayment.id)))).scalar_one() == 0
    assert await _balance(db_session, first_id) == Decimal("0.00")
    assert await _balance(db_session, second_id) == Decimal("0.00")


@pytest.mark.asyncio
async def test_all_accounts_are_locked_before_posting(db_session, setup, mocker):
    second, _ = await open_account(db_session, AGENCY, "operator", setup["operator"].id, "ARS")
    await db_session.commit()
    first_id, second_id = setup["account"].id, second.id
    events = []

    async def record_lock(db, agency_id, account_ids):
        events.append(("lock", sorted(set(account_ids))))
        return await ledger_lock_accounts(db, agency_id, account_ids)

    async def record_post(*args, **kwargs):
        events.append(("post", kwargs["account_id"]))
        return await ledger_post_entry(*args, **kwargs)

    mocker.patch("backoffice.app.domain.receipts.workflow.lock_accounts", side_effect=record_lock)
    mocker.patch("backoffice.app.domain.receipts.workflow.post_entry", side_effect=record_post)

    # payload order is the reverse of id order
    lines = [
        PaymentLineInput(amount="40", payment_method_id=setup["credit"].id, credit_account_id=second_id),
        PaymentLineInput(amount="60", payment_method_id=setup["credit"].id, credit_account_id=first_id),
    ]
    created = await ReceiptWorkflow.create_receipt(db_session, AGENCY, _receipt(setup, "100", lines))
    await db_session.commit()
    assert events == [
        ("lock", sorted([first_id, second_id])),
        ("post", second_id),
        ("post", first_id),
    ]

    events.clear()
    await ReceiptWorkflow.update_receipt(db_session, AGENCY, created.receipt_id, _receipt(setup, "25"))
    await db_session.commit()
    assert events[0] == ("lock", sorted([first_id, second_id]))
    assert events[-1] == ("post", first_id)
    assert await _balance(db_session, first_id) == Decimal("25.00")
    assert await _balance(db_session, second_id) == Decimal("0.00")


@pytest.mark.asyncio
async def test_invalid_lines_are_rejected_before_any_write(db_session, setup):
    credit, cash, transfer = setup["credit"].id, setup["cash"].id, setup["transfer"].id
    account_id = setup["account"].id

    cases = [
        (LedgerValidationError, _receipt(setup, "100", [PaymentLineInput(amount="90", payment_method_id=cash)])),
        (LedgerValidationError, _receipt(setup, "100", [PaymentLineInput(amount="100", payment_method_id=transfer)])),
        (LedgerValidationError, _receipt(setup, "100", [PaymentLineInput(amount="100", payment_method_id=credit)])),
        (LedgerValidationError, _receipt(setup, "100", [
            PaymentLineInput(amount="100", payment_method_id=cash, credit_account_id=account_id)
        ])),
        (LedgerValidationError, _receipt(setup, "100", [])),
        (ResourceNotFoundError, _receipt(setup, "100", [PaymentLineInput(amount="100", payment_method_id=9999)])),
        (CurrencyMismatchError, _receipt(setup, "100", amount_currency="USD", payments=[
            PaymentLineInput(amount="100", payment_method_id=credit, credit_account_id=account_id)
        ])),
        (TenantAccessError, _receipt(setup, "100", booking_id=setup["other_booking"].id)),
        (TenantAccessError, _receipt(setup, "100", client_ids=[setup["other_client"].id])),
    ]
    for error, data in cases:
        with pytest.raises(error):
            await ReceiptWorkflow.create_receipt(db_session, AGENCY, data)

    assert (await db_session.execute(select(func.count(Receipt.id)))).scalar_one() == 0
    assert await _entries(db_session) == []


@pytest.mark.asyncio
async def test_disabled_credit_account_rejected_for_new_lines(db_session, setup):
    await set_account_enabled(db_session, AGENCY, setup["account"].id, False)
    await db_session.commit()

    with pytest.raises(AccountDisabledError):
        await ReceiptWorkflow.create_receipt(db_session, AGENCY, _receipt(setup, "50"))


@pytest.mark.asyncio
async def test_receipt_of_other_agency_is_not_found(db_session, setup):
    created = await ReceiptWorkflow.create_receipt(db_session, AGENCY, _receipt(setup, "10"))
    await db_session.commit()

    with pytest.raises(ResourceNotFoundError):
        await ReceiptWorkflow.delete_receipt(db_session, 2, created.receipt_id)
    with pytest.raises(ResourceNotFoundError):
        await ReceiptWorkflow.update_receipt(db_session, 2, created.receipt_id, _receipt(setup, "10"))
