"""
Ledger Balance Reconciliation Script.

Recomputes every credit account balance from its entries and reports drift:
1. Accounts whose stored balance differs from the signed sum of entries
2. Entries posted in a currency other than their account's

Read-only. Exits with status 1 when anything is inconsistent so it can run
from cron or CI.

Usage:
    python scripts/reconcile_balances.py [--agency-id 7]
"""

import argparse
import asyncio
import sys

from backoffice.app.db.session import AsyncSessionLocal, engine
from backoffice.app.domain.ledger.consistency import find_balance_mismatches
from backoffice.app.core.observability import configure_logging


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Verify credit account balances against their entries")
    parser.add_argument("--agency-id", type=int, default=None, help="Only check one agency")
    return parser.parse_args(argv)


async def run(agency_id=None) -> int:
    async with AsyncSessionLocal() as session:
        report = await find_balance_mismatches(session, agency_id=agency_id)
    await engine.dispose()

    print(f"Checked {report.accounts_checked} accounts")
    for mismatch in report.balance_mismatches:
        print(
            f"❌ Account {mismatch.account_id} (agency {mismatch.agency_id}): "
            f"stored {mismatch.stored_balance}, entries {mismatch.computed_balance}, "
            f"difference {mismatch.difference}"
        )
    for mismatch in report.currency_mismatches:
        print(
            f"❌ Entry {mismatch.entry_id} on account {mismatch.account_id}: "
            f"{mismatch.entry_currency} vs account {mismatch.account_currency}"
        )

    if report.ok:
        print("✅ Ledger is consistent")
        return 0
    return 1


def main(argv=None):
    configure_logging()
    args = parse_args(argv)
    sys.exit(asyncio.run(run(args.agency_id)))


if __name__ == "__main__":
    main()
