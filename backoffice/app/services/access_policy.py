"""
Finance section access policy.

Role defaults plus per-user grants. The resolved grant set of a user is
cached in Redis; the database stays the source of truth.
"""

import logging
from typing import Set

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from backoffice.app.core.config import settings
from backoffice.app.core.dependencies import Principal
from backoffice.app.core.redis_client import cache_get_json, cache_set_json
from backoffice.app.models.finance_grant import FinanceSectionGrant

logger = logging.getLogger(__name__)


class Section:
    """Named finance sections."""
    CREDITS = "credits"
    RECEIPTS = "receipts"
    RECEIPTS_FORM = "receipts_form"
    PAYMENT_PLANS = "payment_plans"


ALL_SECTIONS = frozenset({
    Section.CREDITS, Section.RECEIPTS, Section.RECEIPTS_FORM, Section.PAYMENT_PLANS,
})

FINANCE_ADMIN_ROLES = frozenset({"gerente", "administrativo", "desarrollador"})

ROLE_SECTIONS = {
    "gerente": ALL_SECTIONS,
    "administrativo": ALL_SECTIONS,
    "desarrollador": ALL_SECTIONS,
    "lider": frozenset({Section.RECEIPTS, Section.RECEIPTS_FORM, Section.PAYMENT_PLANS}),
    "vendedor": frozenset({Section.RECEIPTS, Section.RECEIPTS_FORM}),
}

GRANTS_CACHE_PREFIX = "finance:grants:"


def is_finance_admin(role: str) -> bool:
    return (role or "").lower() in FINANCE_ADMIN_ROLES


def _cache_key(agency_id: int, user_id: int) -> str:
    return f"{GRANTS_CACHE_PREFIX}{agency_id}:{user_id}"


async def load_section_grants(db: AsyncSession, redis, agency_id: int, user_id: int) -> Set[str]:
    """
    Explicit grants of a user, read through the Redis cache.

    A Redis failure is logged and the grants are read from the database.
    """
    key = _cache_key(agency_id, user_id)
    cached = await cache_get_json(redis, key)
    if isinstance(cached, list):
        return set(cached)

    result = await db.execute(
        select(FinanceSectionGrant.section).where(
            FinanceSectionGrant.agency_id == agency_id,
            FinanceSectionGrant.user_id == user_id,
        )
    )
    grants = {row for row in result.scalars().all()}
    logger.debug("Loaded %s section grants for user %s", len(grants), user_id, extra={"agency_id": agency_id})

    await cache_set_json(redis, key, sorted(grants), settings.access_cache_ttl_seconds)
    return grants


async def can_access_section(db: AsyncSession, redis, principal: Principal, section: str) -> bool:
    """Whether the principal may use ``section``."""
    if section in ROLE_SECTIONS.get(principal.role, frozenset()):
        return True
    grants = await load_section_grants(db, redis, principal.agency_id, principal.user_id)
    return section in grants
