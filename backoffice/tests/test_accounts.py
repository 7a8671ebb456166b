"""
Credit account lifecycle: opening, adjustments and deletion.
"""

import pytest
from decimal import Decimal
from sqlalchemy import select

from backoffice.app.core.exceptions import (
    AccountHasEntriesError,
    LedgerValidationError,
    ResourceNotFoundError,
    TenantAccessError,
)
from backoffice.app.domain.ledger.accounts import adjust_to_target, delete_account, open_account
from backoffice.app.models.credit_account import CreditAccount
from backoffice.app.models.credit_entry import CreditEntry


@pytest.mark.asyncio
async def test_open_account_is_idempotent_per_subject_and_currency(db_session, directory):
    client_id = directory["client"].id
    first, created = await open_account(db_session, 1, "client", client_id, "ars")
    await db_session.commit()
    again, created_again = await open_account(db_session, 1, "Client", client_id, "ARS")
    usd, created_usd = await open_account(db_session, 1, "client", client_id, "USD")
    await db_session.commit()

    assert created and not created_again and created_usd
    assert again.id == first.id
    assert usd.id != first.id
    assert first.currency == "ARS"
    assert first.client_id == client_id and first.operator_id is None
    assert [first.agency_account_number, usd.agency_account_number] == [1, 2]


@pytest.mark.asyncio
async def test_initial_balance_is_posted_as_adjustment(db_session, directory):
    account, _ = await open_account(
        db_session, 1, "operator", directory["operator"].id, "USD", initial_balance="-50"
    )
    await db_session.commit()

    entries = (await db_session.execute(select(CreditEntry))).scalars().all()
    assert account.balance == Decimal("-50.00")
    assert len(entries) == 1
    assert entries[0].document_type == "adjust_down"
    assert entries[0].amount == Decimal("50.00")


@pytest.mark.asyncio
async def test_subject_must_belong_to_agency(db_session, directory):
    with pytest.raises(TenantAccessError):
        await open_account(db_session, 1, "client", directory["other_client"].id, "ARS")
    with pytest.raises(ResourceNotFoundError):
        await open_account(db_session, 1, "operator", 9999, "ARS")
    with pytest.raises(LedgerValidationError):
        await open_account(db_session, 1, "supplier", directory["operator"].id, "ARS")
    assert (await db_session.execute(select(CreditAccount))).scalars().all() == []


@pytest.mark.asyncio
async def test_adjust_to_target(db_session, directory):
    account, _ = await open_account(
        db_session, 1, "client", directory["client"].id, "ARS", initial_balance="100"
    )
    await db_session.commit()

    entry = await adjust_to_target(db_session, 1, account.id, "40", reason="Agreed discount")
    await db_session.commit()
    assert entry.document_type == "adjust_down"
    assert entry.amount == Decimal("60.00")
    assert entry.concept == "Manual adjustment: Agreed discount"
    assert account.balance == Decimal("40.00")

    assert await adjust_to_target(db_session, 1, account.id, "40.00", reason="No change") is None

    with pytest.raises(LedgerValidationError):
        await adjust_to_target(db_session, 1, account.id, "10", reason="  ")


@pytest.mark.asyncio
async def test_delete_account_only_without_entries(db_session, directory):
    used, _ = await open_account(db_session, 1, "client", directory["client"].id, "ARS", initial_balance="1")
    empty, _ = await open_account(db_session, 1, "client", directory["client"].id, "EUR")
    await db_session.commit()

    with pytest.raises(AccountHasEntriesError):
        await delete_account(db_session, 1, used.id)

    await delete_account(db_session, 1, empty.id)
    await db_session.commit()
    ids = (await db_session.execute(select(CreditAccount.id))).scalars().all()
    assert ids == [used.id]
