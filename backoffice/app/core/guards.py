"""
Security guards for section-based and tenant-based access control.

Provides dependencies for protecting endpoints.
"""

from typing import Any
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from backoffice.app.core.dependencies import Principal, get_current_principal
from backoffice.app.core.exceptions import InsufficientPermissionsError, TenantAccessError
from backoffice.app.core.redis_client import get_redis
from backoffice.app.db.session import get_db
from backoffice.app.services.access_policy import can_access_section, is_finance_admin


def require_section(section: str, finance_admin: bool = False):
    """
    Dependency factory for section-based access control.

    Usage:
        @router.post("/credit/accounts/{account_id}/adjust")
        async def adjust(principal: Principal = Depends(require_section("credits", finance_admin=True))):
            ...

    Args:
        section: Finance section name ("credits", "receipts", ...)
        finance_admin: Also require a finance administrator role

    Returns:
        FastAPI dependency function returning the Principal

    Raises:
        InsufficientPermissionsError 403 if access is denied
    """
    async def section_checker(
        principal: Principal = Depends(get_current_principal),
        db: AsyncSession = Depends(get_db),
        redis=Depends(get_redis),
    ) -> Principal:
        if not await can_access_section(db, redis, principal, section):
            raise InsufficientPermissionsError(
                f"Access denied to section '{section}'",
                details={"section": section, "role": principal.role}
            )

        if finance_admin and not is_finance_admin(principal.role):
            raise InsufficientPermissionsError(
                "Finance administrator role required",
                details={"section": section, "role": principal.role}
            )

        return principal

    return section_checker


class TenantGuard:
    """
    Tenant ownership check for rows referenced by id.

    Usage:
        tenant_guard.enforce(booking.agency_id, principal.agency_id, "Booking", booking.id)
    """

    def enforce(self, resource_agency_id: int, agency_id: int, resource_name: str = "resource", resource_id: Any = None):
        """
        Raise TenantAccessError unless the resource belongs to ``agency_id``.
        """
        if resource_agency_id != agency_id:
            raise TenantAccessError(resource_name, resource_id)


tenant_guard = TenantGuard()
