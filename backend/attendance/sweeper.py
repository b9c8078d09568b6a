"""AbandonedSessionSweeper — background close of sessions left open past 12h.

Business logic:
  - Every pass finds open sessions whose check-in is older than the
    12h ceiling and force-closes each one as ``absent``.
  - Each record is closed in its own transaction; a failure on one
    record is logged and the pass moves on.
  - Closing goes through ``AttendanceService.force_close``, whose
    conditional update makes passes idempotent and safe to race with a
    user's own check-out.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.attendance.models import AttendanceRecord
from backend.attendance.service import AttendanceService
from backend.common.clock import BusinessClock
from backend.common.constants import SESSION_CEILING_HOURS, CloseTrigger
from backend.config import settings
from backend.notifications.service import notify_session_auto_closed

logger = logging.getLogger(__name__)

SWEEPER_JOB_ID = "attendance-abandoned-session-sweeper"


class AbandonedSessionSweeper:
    """Periodic job that closes abandoned attendance sessions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        interval_minutes: Optional[int] = None,
    ) -> None:
        self.session_factory = session_factory
        self.interval_minutes = interval_minutes or settings.SWEEPER_INTERVAL_MINUTES

    async def _candidate_ids(self, cutoff: datetime) -> list[uuid.UUID]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(AttendanceRecord.id).where(
                    AttendanceRecord.check_in_time.is_not(None),
                    AttendanceRecord.check_out_time.is_(None),
                    AttendanceRecord.check_in_time < cutoff,
                )
            )
            return list(result.scalars().all())

    async def _close_one(self, record_id: uuid.UUID) -> bool:
        async with self.session_factory() as session:
            try:
                record = await session.get(AttendanceRecord, record_id)
                if record is None or not record.is_open:
                    return False
                closed = await AttendanceService.force_close(
                    session, record, CloseTrigger.sweeper,
                )
                await session.commit()
            except Exception:
                await session.rollback()
                raise

        if closed:
            notify_session_auto_closed(record)
        return closed

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """Run one pass; returns how many sessions this pass closed."""
        now = BusinessClock.to_utc(now or BusinessClock.now())
        cutoff = now - timedelta(hours=SESSION_CEILING_HOURS)

        candidates = await self._candidate_ids(cutoff)
        closed = failed = 0
        for record_id in candidates:
            try:
                if await self._close_one(record_id):
                    closed += 1
            except Exception:
                failed += 1
                logger.exception("Sweeper failed to close attendance record %s", record_id)

        logger.info(
            "Sweeper pass at %s: %d candidate(s), %d closed, %d failed",
            now.isoformat(), len(candidates), closed, failed,
        )
        return closed

    async def run(self) -> None:
        """Scheduler entry point; never lets an error kill the job."""
        try:
            await self.sweep()
        except Exception:
            logger.exception("Sweeper pass aborted")

    def start(self, scheduler: AsyncIOScheduler) -> None:
        """Register the interval job on *scheduler*."""
        scheduler.add_job(
            self.run,
            "interval",
            minutes=self.interval_minutes,
            id=SWEEPER_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Sweeper scheduled every %d minute(s)", self.interval_minutes)
