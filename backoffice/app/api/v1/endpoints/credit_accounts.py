"""
Credit Account API Endpoints.

Open, list, inspect, adjust and verify credit accounts. Every route is scoped
to the caller's agency; accounts of other agencies answer 404.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from backoffice.app.core.dependencies import Principal
from backoffice.app.core.guards import require_section
from backoffice.app.db.session import get_db
from backoffice.app.domain.ledger import accounts as account_service
from backoffice.app.domain.ledger.consistency import find_balance_mismatches
from backoffice.app.domain.ledger.money import Money
from backoffice.app.domain.ledger.queries import list_accounts, recent_entries
from backoffice.app.schemas.credit import (
    AccountAdjustResponse,
    AccountOpenResponse,
    AccountVerifyResponse,
    CreditAccountAdjust,
    CreditAccountCreate,
    CreditAccountDetailResponse,
    CreditAccountListResponse,
    CreditAccountResponse,
    CreditAccountUpdate,
    CreditEntryResponse,
)
from backoffice.app.services.access_policy import Section

router = APIRouter(prefix="/credit/accounts", tags=["Credit - Accounts"])


@router.get("", response_model=CreditAccountListResponse)
async def get_accounts(
    subject_type: Optional[str] = Query(None, description="client or operator"),
    subject_id: Optional[int] = Query(None),
    currency: Optional[str] = Query(None),
    enabled: Optional[bool] = Query(None),
    cursor: Optional[int] = Query(None, description="Last id of the previous page"),
    limit: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(require_section(Section.CREDITS)),
    db: AsyncSession = Depends(get_db)
):
    """List credit accounts of the caller's agency."""
    items, next_cursor = await list_accounts(
        db,
        principal.agency_id,
        subject_type=subject_type,
        subject_id=subject_id,
        currency=currency,
        enabled=enabled,
        cursor=cursor,
        limit=limit,
    )
    return CreditAccountListResponse(items=items, next_cursor=next_cursor)


@router.post("", response_model=AccountOpenResponse, status_code=status.HTTP_201_CREATED)
async def open_account(
    payload: CreditAccountCreate,
    principal: Principal = Depends(require_section(Section.CREDITS)),
    db: AsyncSession = Depends(get_db)
):
    """
    Open a credit account for a client or operator.

    Idempotent per (subject, currency): the existing account is returned
    with ``created=false``.
    """
    account, created = await account_service.open_account(
        db,
        agency_id=principal.agency_id,
        subject_type=payload.subject_type.value,
        subject_id=payload.subject_id,
        currency=payload.currency,
        credit_limit=payload.credit_limit,
        initial_balance=payload.initial_balance,
        created_by=principal.user_id,
    )
    await db.commit()
    await db.refresh(account)
    return AccountOpenResponse(account=account, created=created)


@router.get("/{account_id}", response_model=CreditAccountDetailResponse)
async def get_account_detail(
    account_id: int,
    entries_limit: int = Query(20, ge=1, le=200),
    principal: Principal = Depends(require_section(Section.CREDITS)),
    db: AsyncSession = Depends(get_db)
):
    """Account with its most recent entries and their signed amounts."""
    account = await account_service.get_account(db, principal.agency_id, account_id)
    entries = await recent_entries(db, principal.agency_id, account.id, limit=entries_limit)
    return CreditAccountDetailResponse(
        account=CreditAccountResponse.model_validate(account),
        recent_entries=[CreditEntryResponse.model_validate(e) for e in entries],
    )


@router.patch("/{account_id}", response_model=CreditAccountResponse)
async def update_account(
    account_id: int,
    payload: CreditAccountUpdate,
    principal: Principal = Depends(require_section(Section.CREDITS, finance_admin=True)),
    db: AsyncSession = Depends(get_db)
):
    """Enable/disable an account or change its credit limit."""
    account = await account_service.update_account(
        db,
        principal.agency_id,
        account_id,
        enabled=payload.enabled,
        credit_limit=payload.credit_limit,
        clear_credit_limit=payload.clear_credit_limit,
    )
    await db.commit()
    await db.refresh(account)
    return account


@router.delete("/{account_id}")
async def delete_account(
    account_id: int,
    principal: Principal = Depends(require_section(Section.CREDITS, finance_admin=True)),
    db: AsyncSession = Depends(get_db)
):
    """Delete an account without entries. Accounts with history must be disabled instead."""
    await account_service.delete_account(db, principal.agency_id, account_id)
    await db.commit()
    return {"success": True, "account_id": account_id}


@router.post("/{account_id}/adjust", response_model=AccountAdjustResponse)
async def adjust_account(
    account_id: int,
    payload: CreditAccountAdjust,
    principal: Principal = Depends(require_section(Section.CREDITS, finance_admin=True)),
    db: AsyncSession = Depends(get_db)
):
    """
    Adjust an account to a target balance.

    Posts a single adjust_up / adjust_down entry for the difference; nothing
    is posted when the balance already matches.
    """
    entry = await account_service.adjust_to_target(
        db,
        principal.agency_id,
        account_id,
        target_balance=payload.target_balance,
        reason=payload.reason,
        created_by=principal.user_id,
    )
    await db.commit()

    account = await account_service.get_account(db, principal.agency_id, account_id)
    await db.refresh(account)
    if entry is not None:
        await db.refresh(entry)
    return AccountAdjustResponse(
        account=CreditAccountResponse.model_validate(account),
        entry=CreditEntryResponse.model_validate(entry) if entry is not None else None,
        adjusted=entry is not None,
    )


@router.get("/{account_id}/verify", response_model=AccountVerifyResponse)
async def verify_account(
    account_id: int,
    principal: Principal = Depends(require_section(Section.CREDITS)),
    db: AsyncSession = Depends(get_db)
):
    """Recompute the balance from entries and compare it with the stored one."""
    account = await account_service.get_account(db, principal.agency_id, account_id)
    report = await find_balance_mismatches(db, agency_id=principal.agency_id, account_id=account.id)

    stored = Money(account.balance)
    computed = report.balance_mismatches[0].computed_balance if report.balance_mismatches else stored
    return AccountVerifyResponse(
        account_id=account.id,
        stored_balance=stored.amount,
        computed_balance=computed.amount,
        consistent=report.ok,
        currency_mismatch_entry_ids=[m.entry_id for m in report.currency_mismatches],
    )
