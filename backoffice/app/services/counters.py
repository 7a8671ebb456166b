"""
Per-agency numbering.

Human-facing numbers for accounts, entries and receipts are allocated from a
locked counter row so concurrent requests in one agency never share a number.
The row is created with an insert that ignores conflicts, so two first
allocations racing on a new key both end up waiting on the same row.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from backoffice.app.models.agency_counter import AgencyCounter

_UPSERT_INSERTS = {
    "postgresql": postgresql_insert,
    "sqlite": sqlite_insert,
}


async def _ensure_counter_row(db: AsyncSession, agency_id: int, key: str) -> None:
    dialect = db.get_bind().dialect.name
    insert = _UPSERT_INSERTS.get(dialect)
    if insert is None:
        raise NotImplementedError(f"Counter allocation is not supported on {dialect}")
    await db.execute(
        insert(AgencyCounter)
        .values(agency_id=agency_id, key=key, next_value=1)
        .on_conflict_do_nothing(index_elements=["agency_id", "key"])
    )


async def next_agency_number(db: AsyncSession, agency_id: int, key: str) -> int:
    """
    Allocate the next number for ``key`` inside the caller's transaction.

    Args:
        db: Database session
        agency_id: Owning agency
        key: Counter name (e.g. "credit_entry")

    Returns:
        The allocated number, starting at 1
    """
    await _ensure_counter_row(db, agency_id, key)
    result = await db.execute(
        select(AgencyCounter)
        .where(AgencyCounter.agency_id == agency_id, AgencyCounter.key == key)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    counter = result.scalar_one()

    value = counter.next_value
    counter.next_value = value + 1
    await db.flush()
    return value
