#!/usr/bin/env python3
"""Leave balance reconciliation — re-derive cached totals from the ledger.

For every employee (or one, with --employee) the per-type pool balances,
``booked_leaves`` and ``available_leaves`` are recomputed from the leave
ledger entries and compared with what is stored.

Usage:
    python scripts/reconcile_leave_balances.py                  # report only
    python scripts/reconcile_leave_balances.py --repair         # rewrite drifted totals
    python scripts/reconcile_leave_balances.py --employee <uuid>

Exit codes:
    0 = every employee consistent (or repaired)
    1 = drift found and not repaired
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from pathlib import Path
from typing import Optional

# ── Path setup ────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from dotenv import load_dotenv

# Settings read .env relative to the working directory
load_dotenv(PROJECT_ROOT / ".env")

from sqlalchemy import select

from backend.core_hr.models import Employee
from backend.database import async_session_factory, engine
from backend.leave.ledger import LeaveBalanceLedger

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("reconcile_leave_balances")


async def reconcile(employee_id: Optional[uuid.UUID], repair: bool) -> int:
    """Return the number of employees still inconsistent afterwards."""
    drifted = 0
    async with async_session_factory() as session:
        if employee_id is not None:
            ids = [employee_id]
        else:
            ids = list((await session.execute(select(Employee.id))).scalars().all())

        for emp_id in ids:
            report = await LeaveBalanceLedger.verify(session, emp_id, repair=repair)
            if report.consistent:
                continue
            for problem in report.problems:
                logger.warning("%s: %s", emp_id, problem)
            if not report.repaired:
                drifted += 1

        if repair:
            await session.commit()
        logger.info(
            "Checked %d employee(s); %d inconsistent%s",
            len(ids), drifted, " after repair" if repair else "",
        )
    await engine.dispose()
    return drifted


def main():
    parser = argparse.ArgumentParser(
        description="Verify (and optionally repair) cached leave balances",
    )
    parser.add_argument("--employee", type=uuid.UUID, help="Only this employee id")
    parser.add_argument("--repair", action="store_true", help="Rewrite drifted totals")
    args = parser.parse_args()

    drifted = asyncio.run(reconcile(args.employee, args.repair))
    sys.exit(1 if drifted else 0)


if __name__ == "__main__":
    main()
