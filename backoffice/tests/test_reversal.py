"""
Document reversal: exact undo, idempotency and tenant isolation.
"""

import pytest
from decimal import Decimal
from sqlalchemy import select

from backoffice.app.core.exceptions import LedgerConsistencyError, LinkedEntryError, ResourceNotFoundError
from backoffice.app.domain.ledger.accounts import open_account
from backoffice.app.domain.ledger.posting import DocumentRef, post_entry
from backoffice.app.domain.ledger.reversal import _reverse_entries, reverse_entry, reverse_for_document
from backoffice.app.models.credit_account import CreditAccount
from backoffice.app.models.credit_entry import CreditEntry


async def _accounts(db, directory):
    ours, _ = await open_account(db, 1, "operator", directory["operator"].id, "USD")
    theirs, _ = await open_account(db, 2, "operator", directory["other_operator"].id, "USD")
    await db.commit()
    return ours, theirs


@pytest.mark.asyncio
async def test_reversal_restores_balance_and_is_idempotent(db_session, directory):
    ours, _ = await _accounts(db_session, directory)
    await post_entry(db_session, 1, ours.id, "500", "USD", "receipt", concept="Credit")
    await post_entry(
        db_session, 1, ours.id, "120.50", "USD", "investment",
        concept="Payment to operator", source=DocumentRef(investment_id=77)
    )
    await post_entry(
        db_session, 1, ours.id, "79.50", "USD", "investment",
        concept="Payment to operator", source=DocumentRef(investment_id=77)
    )
    await db_session.commit()
    assert ours.balance == Decimal("300.00")

    result = await reverse_for_document(db_session, DocumentRef(investment_id=77), 1)
    await db_session.commit()

    assert result.entries_removed == 2
    assert result.deltas == {ours.id: Decimal("200.00")}
    assert ours.balance == Decimal("500.00")

    again = await reverse_for_document(db_session, DocumentRef(investment_id=77), 1)
    assert again.entries_removed == 0
    assert ours.balance == Decimal("500.00")


@pytest.mark.asyncio
async def test_reversal_never_touches_other_agency(db_session, directory):
    ours, theirs = await _accounts(db_session, directory)
    source = DocumentRef(investment_id=555)
    await post_entry(db_session, 1, ours.id, "40", "USD", "investment", concept="Ours", source=source)
    await post_entry(db_session, 2, theirs.id, "60", "USD", "investment", concept="Theirs", source=source)
    await db_session.commit()

    await reverse_for_document(db_session, source, 1)
    await db_session.commit()

    remaining = (await db_session.execute(select(CreditEntry))).scalars().all()
    assert [e.agency_id for e in remaining] == [2]
    assert ours.balance == Decimal("0.00")
    assert theirs.balance == Decimal("-60.00")


@pytest.mark.asyncio
async def test_legacy_document_type_reverts_as_positive(db_session, directory):
    ours, _ = await _accounts(db_session, directory)
    db_session.add(CreditEntry(
        agency_id=1, account_id=ours.id, amount=Decimal("15.00"), currency="USD",
        document_type="legacy_credit", concept="Imported", operator_due_id=9,
    ))
    ours.balance = Decimal("15.00")
    await db_session.commit()

    await reverse_for_document(db_session, DocumentRef(operator_due_id=9), 1)
    await db_session.commit()
    assert ours.balance == Decimal("0.00")


@pytest.mark.asyncio
async def test_invisible_account_aborts_reversal(db_session, directory):
    _, theirs = await _accounts(db_session, directory)
    # entry filed under agency 1 pointing at an agency 2 account
    db_session.add(CreditEntry(
        agency_id=1, account_id=theirs.id, amount=Decimal("5.00"), currency="USD",
        document_type="receipt", concept="Corrupt", investment_id=3,
    ))
    await db_session.commit()

    with pytest.raises(LedgerConsistencyError):
        await reverse_for_document(db_session, DocumentRef(investment_id=3), 1)
    await db_session.rollback()

    assert len((await db_session.execute(select(CreditEntry))).scalars().all()) == 1


@pytest.mark.asyncio
async def test_single_entry_delete_respects_links(db_session, directory):
    ours, _ = await _accounts(db_session, directory)
    manual = await post_entry(db_session, 1, ours.id, "10", "USD", "adjust_up", concept="Manual")
    due = await post_entry(
        db_session, 1, ours.id, "4", "USD", "receipt", concept="Due", source=DocumentRef(operator_due_id=8)
    )
    investment = await post_entry(
        db_session, 1, ours.id, "3", "USD", "investment", concept="Inv", source=DocumentRef(investment_id=5)
    )
    await db_session.commit()
    assert ours.balance == Decimal("11.00")

    with pytest.raises(LinkedEntryError):
        await reverse_entry(db_session, 1, due.id, allow_linked=True)
    with pytest.raises(LinkedEntryError):
        await reverse_entry(db_session, 1, investment.id)

    await reverse_entry(db_session, 1, investment.id, allow_linked=True)
    await reverse_entry(db_session, 1, manual.id)
    await db_session.commit()

    account = (await db_session.execute(select(CreditAccount).where(CreditAccount.id == ours.id))).scalar_one()
    assert account.balance == Decimal("4.00")


@pytest.mark.asyncio
async def test_late_reversal_with_stale_entries_changes_nothing(db_session, directory, session_factory):
    ours, _ = await _accounts(db_session, directory)
    await post_entry(db_session, 1, ours.id, "100", "USD", "adjust_up", concept="Opening")
    await post_entry(
        db_session, 1, ours.id, "40", "USD", "investment",
        concept="Payment to operator", source=DocumentRef(investment_id=7)
    )
    await db_session.commit()

    # a second request reads the document's entries before the first commits
    async with session_factory() as late:
        stale = (await late.execute(
            select(CreditEntry).where(CreditEntry.investment_id == 7)
        )).scalars().all()
        assert len(stale) == 1

    first = await reverse_for_document(db_session, DocumentRef(investment_id=7), 1)
    await db_session.commit()
    assert first.entries_removed == 1

    async with session_factory() as late:
        second = await _reverse_entries(late, 1, list(stale))
        await late.commit()
    assert second.entries_removed == 0
    assert second.deltas == {}

    account = (await db_session.execute(
        select(CreditAccount)
        .where(CreditAccount.id == ours.id)
        .execution_options(populate_existing=True)
    )).scalar_one()
    assert account.balance == Decimal("100.00")
    entries = (await db_session.execute(select(CreditEntry))).scalars().all()
    assert [(e.document_type, e.amount) for e in entries] == [("adjust_up", Decimal("100.00"))]


@pytest.mark.asyncio
async def test_single_entry_delete_twice_is_not_found(db_session, directory):
    ours, _ = await _accounts(db_session, directory)
    manual = await post_entry(db_session, 1, ours.id, "10", "USD", "adjust_up", concept="Manual")
    await db_session.commit()

    await reverse_entry(db_session, 1, manual.id)
    await db_session.commit()

    with pytest.raises(ResourceNotFoundError):
        await reverse_entry(db_session, 1, manual.id)
    assert ours.balance == Decimal("0.00")
