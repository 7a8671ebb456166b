"""
Ledger posting: signs, guards and the balance invariant.
"""

import pytest
from decimal import Decimal
from sqlalchemy import select, func

from backoffice.app.core.exceptions import (
    AccountDisabledError,
    CurrencyMismatchError,
    LedgerValidationError,
    ResourceNotFoundError,
    UnknownDocumentTypeError,
)
from backoffice.app.domain.ledger.accounts import open_account, set_account_enabled
from backoffice.app.domain.ledger.consistency import find_balance_mismatches
from backoffice.app.domain.ledger.posting import DocumentRef, post_entry, update_entry_metadata
from backoffice.app.models.credit_entry import CreditEntry

AGENCY = 1


async def _client_account(db, directory, currency="ARS"):
    account, _ = await open_account(db, AGENCY, "client", directory["client"].id, currency)
    await db.commit()
    return account


async def _entry_count(db):
    return (await db.execute(select(func.count(CreditEntry.id)))).scalar_one()


@pytest.mark.asyncio
async def test_balance_follows_signed_entries(db_session, directory):
    account = await _client_account(db_session, directory)

    for document_type, amount in [
        ("receipt", "100"),
        ("investment", "30"),
        ("adjust_down", "5"),
        ("ADJUST_UP ", "10.005"),
    ]:
        await post_entry(
            db_session, AGENCY, account.id, amount, "ARS", document_type, concept=f"{document_type} entry"
        )
    await db_session.commit()

    assert account.balance == Decimal("75.01")
    entries = (await db_session.execute(select(CreditEntry).order_by(CreditEntry.id))).scalars().all()
    assert [e.document_type for e in entries] == ["receipt", "investment", "adjust_down", "adjust_up"]
    assert all(e.amount > 0 for e in entries)
    assert [e.agency_entry_number for e in entries] == [1, 2, 3, 4]

    report = await find_balance_mismatches(db_session, agency_id=AGENCY)
    assert report.ok


@pytest.mark.asyncio
async def test_currency_mismatch_writes_nothing(db_session, directory):
    account = await _client_account(db_session, directory)

    with pytest.raises(CurrencyMismatchError):
        await post_entry(db_session, AGENCY, account.id, "50", "usd", "receipt", concept="Wrong currency")

    assert account.balance == Decimal("0.00")
    assert await _entry_count(db_session) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0", "-10", "0.004"])
async def test_amount_must_be_positive(db_session, directory, amount):
    account = await _client_account(db_session, directory)

    with pytest.raises(LedgerValidationError):
        await post_entry(db_session, AGENCY, account.id, amount, "ARS", "receipt", concept="Bad amount")
    assert await _entry_count(db_session) == 0


@pytest.mark.asyncio
async def test_unknown_document_type_rejected(db_session, directory):
    account = await _client_account(db_session, directory)

    with pytest.raises(UnknownDocumentTypeError):
        await post_entry(db_session, AGENCY, account.id, "10", "ARS", "refund", concept="Refund")


@pytest.mark.asyncio
async def test_account_of_other_agency_is_not_found(db_session, directory):
    account = await _client_account(db_session, directory)

    with pytest.raises(ResourceNotFoundError):
        await post_entry(db_session, 2, account.id, "10", "ARS", "receipt", concept="Cross tenant")


@pytest.mark.asyncio
async def test_disabled_account_only_blocks_new_documents(db_session, directory):
    account = await _client_account(db_session, directory)
    await set_account_enabled(db_session, AGENCY, account.id, False)
    await db_session.commit()

    with pytest.raises(AccountDisabledError):
        await post_entry(
            db_session, AGENCY, account.id, "10", "ARS", "receipt", concept="Manual", require_enabled=True
        )

    await post_entry(db_session, AGENCY, account.id, "10", "ARS", "investment", concept="Ledger level")
    await db_session.commit()
    assert account.balance == Decimal("-10.00")


def test_document_ref_allows_single_link():
    with pytest.raises(LedgerValidationError):
        DocumentRef(investment_id=1, operator_due_id=2)
    assert DocumentRef(receipt_id=1, booking_id=2).as_dict()["booking_id"] == 2
    assert DocumentRef().is_empty


@pytest.mark.asyncio
async def test_entry_metadata_is_editable_but_amount_is_not(db_session, directory):
    account = await _client_account(db_session, directory)
    entry = await post_entry(
        db_session, AGENCY, account.id, "20", "ARS", "receipt", concept="Original", reference="A-1"
    )
    await db_session.commit()

    updated = await update_entry_metadata(db_session, AGENCY, entry.id, {"concept": "Renamed", "reference": ""})
    await db_session.commit()
    assert updated.concept == "Renamed"
    assert updated.reference is None

    with pytest.raises(LedgerValidationError):
        await update_entry_metadata(db_session, AGENCY, entry.id, {"amount": "99"})
    with pytest.raises(ResourceNotFoundError):
        await update_entry_metadata(db_session, 2, entry.id, {"concept": "Other agency"})
    assert account.balance == Decimal("20.00")
