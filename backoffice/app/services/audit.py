"""
Client payment audit service.

Append-only trail for schedule line status changes. Records are written in
the caller's transaction (flush only) so an audit row never survives a
rolled-back change, and are never updated afterwards.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backoffice.app.models.client_payment_audit import ClientPaymentAudit


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    STATUS_CHANGE = "STATUS_CHANGE"
    RECEIPT_EDITED_REOPEN = "RECEIPT_EDITED_REOPEN"
    RECEIPT_DELETED_REOPEN = "RECEIPT_DELETED_REOPEN"


async def log_payment_event(
    db: AsyncSession,
    client_payment_id: int,
    agency_id: int,
    action: str,
    from_status: Optional[str] = None,
    to_status: Optional[str] = None,
    reason: Optional[str] = None,
    changed_by: Optional[int] = None,
    data: Optional[Dict[str, Any]] = None
) -> ClientPaymentAudit:
    """
    Append an audit record for a schedule line.

    Args:
        db: Database session
        client_payment_id: Schedule line being changed
        agency_id: Owning agency
        action: Action being performed (use AuditAction constants)
        from_status: Status before the change
        to_status: Status after the change
        reason: Human readable reason
        changed_by: ID of user performing the change
        data: Additional context as JSON

    Returns:
        Created ClientPaymentAudit instance
    """
    audit = ClientPaymentAudit(
        client_payment_id=client_payment_id,
        agency_id=agency_id,
        action=action,
        from_status=from_status,
        to_status=to_status,
        reason=reason,
        changed_by=changed_by,
        data=data
    )

    db.add(audit)
    await db.flush()

    return audit


async def get_payment_audit_trail(
    db: AsyncSession,
    agency_id: int,
    client_payment_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[ClientPaymentAudit]:
    """
    Retrieve the audit trail of an agency with optional filtering.

    Args:
        db: Database session
        agency_id: Agency scope (mandatory)
        client_payment_id: Filter by schedule line
        action: Filter by action type
        limit: Maximum number of records to return

    Returns:
        List of ClientPaymentAudit instances, most recent first
    """
    query = select(ClientPaymentAudit).where(
        ClientPaymentAudit.agency_id == agency_id
    ).order_by(desc(ClientPaymentAudit.changed_at), desc(ClientPaymentAudit.id))

    if client_payment_id:
        query = query.where(ClientPaymentAudit.client_payment_id == client_payment_id)

    if action:
        query = query.where(ClientPaymentAudit.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
