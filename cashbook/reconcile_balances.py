"""
Balance reconciliation script.

Recomputes every cash account balance from its ledger history and reports
(or repairs) accounts whose stored balance has drifted.

Usage:
    python -m cashbook.reconcile_balances           # report and repair
    python -m cashbook.reconcile_balances --dry-run # report only
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from cashbook.app.core.config import settings
from cashbook.app.core.observability import setup_logging
from cashbook.app.db.session import engine
from cashbook.app.domain.ledger.ledger_service import LedgerService
from cashbook.app.domain.ledger.store import LedgerStore


async def reconcile(repair: bool = True) -> int:
    """
    Run one reconciliation pass.

    Returns:
        Number of cash accounts whose balance drifted
    """
    ledger = LedgerService(LedgerStore(engine, settings.lock_timeout_seconds))
    try:
        drifts = await ledger.reconcile_balances(repair=repair)
    finally:
        await engine.dispose()

    if not drifts:
        print("✅ All cash account balances match their ledger")
        return 0

    for drift in drifts:
        action = "repaired" if drift.repaired else "not repaired"
        print(
            f"⚠️  {drift.name} (#{drift.cash_id}): stored {drift.stored_balance}, "
            f"ledger {drift.derived_balance}, drift {drift.drift} ({action})"
        )
    return len(drifts)


if __name__ == "__main__":
    setup_logging(settings.log_level)
    dry_run = "--dry-run" in sys.argv[1:]
    drifted = asyncio.run(reconcile(repair=not dry_run))
    sys.exit(1 if drifted and dry_run else 0)
