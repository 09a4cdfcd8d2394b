"""Delayed job queue for scheduled workflow runs.

Jobs live in the ``scheduled_jobs`` table. A job is keyed by
``(workflow_id, run_at)``; enqueueing the same key twice leaves a single
row. Workers claim due jobs with a conditional ``pending -> dispatched``
update, so two workers polling the same table never both run a job.

Important: ``run_at`` and every ``now`` passed in are NAIVE UTC.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import JobStatus
from core.utils import to_naive_utc, utcnow_naive
from db.models.scheduled_job import ScheduledJob
from services.base import BaseService

logger = logging.getLogger(__name__)


class JobQueue(BaseService[ScheduledJob]):
    """Queue operations over one session; callers commit."""

    def __init__(self, db: AsyncSession):
        super().__init__(ScheduledJob, db)

    async def get_job(self, workflow_id: str, run_at: datetime) -> Optional[ScheduledJob]:
        result = await self.db.execute(
            select(ScheduledJob).where(
                ScheduledJob.workflow_id == workflow_id,
                ScheduledJob.run_at == to_naive_utc(run_at),
            )
        )
        return result.scalar_one_or_none()

    async def enqueue(
        self,
        workflow_id: str,
        user_id: Optional[str],
        workflow_json: dict,
        run_at: datetime,
    ) -> ScheduledJob:
        """Add a pending job, or refresh the snapshot of the existing one."""
        run_at = to_naive_utc(run_at)
        existing = await self.get_job(workflow_id, run_at)
        if existing is not None:
            if existing.status == JobStatus.PENDING.value:
                existing.workflow_json = workflow_json
                existing.user_id = user_id
                await self.db.flush()
            return existing

        return await self.create({
            "workflow_id": workflow_id,
            "user_id": user_id,
            "workflow_json": workflow_json,
            "run_at": run_at,
            "status": JobStatus.PENDING.value,
        })

    async def remove_pending(
        self,
        workflow_id: str,
        keep_run_at: Optional[datetime] = None,
    ) -> int:
        """Delete a workflow's pending jobs (optionally sparing one run time)."""
        stmt = delete(ScheduledJob).where(
            ScheduledJob.workflow_id == workflow_id,
            ScheduledJob.status == JobStatus.PENDING.value,
        )
        if keep_run_at is not None:
            stmt = stmt.where(ScheduledJob.run_at != to_naive_utc(keep_run_at))
        result = await self.db.execute(stmt)
        return result.rowcount or 0

    async def remove_pending_except(self, workflow_ids: Iterable[str]) -> int:
        """Delete pending jobs of every workflow not in ``workflow_ids``."""
        keep = list(workflow_ids)
        stmt = delete(ScheduledJob).where(ScheduledJob.status == JobStatus.PENDING.value)
        if keep:
            stmt = stmt.where(ScheduledJob.workflow_id.not_in(keep))
        result = await self.db.execute(stmt)
        return result.rowcount or 0

    async def claim_due(self, now: Optional[datetime] = None, limit: int = 100) -> list[ScheduledJob]:
        """Atomically move due pending jobs to ``dispatched`` and return them."""
        now = to_naive_utc(now) if now is not None else utcnow_naive()
        result = await self.db.execute(
            select(ScheduledJob)
            .where(
                ScheduledJob.status == JobStatus.PENDING.value,
                ScheduledJob.run_at <= now,
            )
            .order_by(ScheduledJob.run_at)
            .limit(limit)
        )
        candidates = result.scalars().all()

        claimed: list[ScheduledJob] = []
        for job in candidates:
            updated = await self.db.execute(
                update(ScheduledJob)
                .where(
                    ScheduledJob.id == job.id,
                    ScheduledJob.status == JobStatus.PENDING.value,
                )
                .values(status=JobStatus.DISPATCHED.value, dispatched_at=now)
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount == 1:
                job.status = JobStatus.DISPATCHED.value
                job.dispatched_at = now
                claimed.append(job)
            else:
                logger.debug(f"Job {job.job_key} was claimed by another worker")
        return claimed

    async def requeue_stale(self, dispatched_before: datetime) -> int:
        """Put jobs dispatched before ``dispatched_before`` back to pending.

        A claimed job is deleted when its run finishes; one still dispatched
        after its lease belongs to a worker that died mid-run.
        """
        result = await self.db.execute(
            update(ScheduledJob)
            .where(
                ScheduledJob.status == JobStatus.DISPATCHED.value,
                ScheduledJob.dispatched_at < to_naive_utc(dispatched_before),
            )
            .values(status=JobStatus.PENDING.value, dispatched_at=None)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def complete(self, job_id: str) -> None:
        """Drop a job once its run has finished."""
        await self.db.execute(delete(ScheduledJob).where(ScheduledJob.id == job_id))

    async def pending_jobs(self, workflow_id: Optional[str] = None) -> Sequence[ScheduledJob]:
        query = select(ScheduledJob).where(ScheduledJob.status == JobStatus.PENDING.value)
        if workflow_id is not None:
            query = query.where(ScheduledJob.workflow_id == workflow_id)
        result = await self.db.execute(query.order_by(ScheduledJob.run_at))
        return result.scalars().all()
