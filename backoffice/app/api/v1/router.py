"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backoffice.app.api.v1.endpoints import (
    credit_accounts, credit_entries, receipts, client_payments
)

router = APIRouter()

# Credit ledger
router.include_router(credit_accounts.router)
router.include_router(credit_entries.router)

# Receipts and payment schedule
router.include_router(receipts.router)
router.include_router(client_payments.router)
