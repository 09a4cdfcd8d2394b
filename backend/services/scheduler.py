"""Workflow scheduler: keeps the delayed job queue in line with the
stored schedule-triggered workflows and fires due jobs.

Lifecycle of a scheduled workflow:

    unscheduled -> pending -> dispatched -> unscheduled
                      |
                      +-> superseded (replaced by a newer pending job)

Two loops run while the scheduler is started:

- reconcile: at startup and every ``reconcile_interval`` seconds, re-derive
  one pending job per active schedule workflow from the stored definitions,
  put back jobs whose dispatch lease ran out (the worker died mid-run) and
  purge pending jobs of workflows that are no longer scheduled.
- dispatch: every ``poll_interval`` seconds, claim due jobs and launch their
  runs through the BackgroundRunner (bounded concurrency). After a run the
  job is dropped and the next occurrence is enqueued right away if the
  workflow is still active.

In ``celery`` mode the same ``reconcile`` / ``dispatch_due`` methods are
driven by Celery beat instead of these loops.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.constants import TriggerType
from core.exceptions import SchedulingError
from core.utils import utcnow_naive
from db.models.scheduled_job import ScheduledJob
from db.models.workflow import Workflow
from services.job_queue import JobQueue
from services.workflow_service import WorkflowService
from triggers.base import TriggerEvent
from triggers.cron import next_fire_time
from worker.run_workflow import BackgroundRunner, run_workflow_safely
from workflow.engine import WorkflowEngine
from workflow.models import WorkflowDefinition

logger = logging.getLogger(__name__)

DISPATCH_BATCH_SIZE = 100


class WorkflowScheduler:
    """Explicitly constructed scheduler service; owned by the app lifespan
    (or built per Celery task)."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: WorkflowEngine,
        runner: BackgroundRunner,
        reconcile_interval: float = 300,
        poll_interval: float = 5.0,
        dispatch_lease: float = 900,
    ):
        self._session_factory = session_factory
        self._engine = engine
        self._runner = runner
        self.reconcile_interval = reconcile_interval
        self.poll_interval = poll_interval
        self.dispatch_lease = dispatch_lease
        self._stop = asyncio.Event()
        self._loops: list[asyncio.Task] = []

    @classmethod
    def from_settings(
        cls,
        settings,
        session_factory: async_sessionmaker[AsyncSession],
        engine: WorkflowEngine,
        runner: BackgroundRunner,
    ) -> "WorkflowScheduler":
        return cls(
            session_factory,
            engine,
            runner,
            reconcile_interval=settings.SCHEDULER_RECONCILE_INTERVAL,
            poll_interval=settings.SCHEDULER_POLL_INTERVAL,
            dispatch_lease=settings.SCHEDULER_DISPATCH_LEASE,
        )

    @property
    def is_running(self) -> bool:
        return bool(self._loops)

    # ─── Reconciliation ───────────────────────────────────

    async def reconcile(self, now: Optional[datetime] = None) -> dict:
        """One reconciliation pass.

        Listing the workflows is the only failure that propagates; a
        workflow that cannot be scheduled is logged and skipped.

        Returns:
            Counts: scheduled, failed, requeued, removed
        """
        now = now or utcnow_naive()
        scheduled = failed = 0

        async with self._session_factory() as session:
            workflows = await WorkflowService(session).list_by_trigger(TriggerType.SCHEDULE)
            # Plain values: a rollback below expires the ORM instances.
            targets = [(wf.id, wf.user_id, wf.definition) for wf in workflows]
            active_ids = [workflow_id for workflow_id, _, _ in targets]

            for workflow_id, user_id, definition in targets:
                try:
                    await self._schedule_in_session(session, workflow_id, user_id, definition, now)
                    await session.commit()
                    scheduled += 1
                except SchedulingError as e:
                    await session.rollback()
                    failed += 1
                    logger.warning(f"[scheduler] Skipping workflow {workflow_id}: {e.message}")
                except Exception as e:
                    await session.rollback()
                    failed += 1
                    logger.error(
                        f"[scheduler] Failed to schedule workflow {workflow_id}: {e}",
                        exc_info=True,
                    )

            # After scheduling, so superseding does not drop a recovered run;
            # before purging, so inactive workflows lose theirs.
            queue = JobQueue(session)
            requeued = await queue.requeue_stale(now - timedelta(seconds=self.dispatch_lease))
            removed = await queue.remove_pending_except(active_ids)
            await session.commit()

        if requeued:
            logger.warning(f"[scheduler] Requeued {requeued} job(s) whose dispatch lease expired")
        logger.info(
            f"[scheduler] Reconciled {len(active_ids)} schedule workflow(s): "
            f"{scheduled} scheduled, {failed} failed, {removed} orphan job(s) removed"
        )
        return {"scheduled": scheduled, "failed": failed, "requeued": requeued, "removed": removed}

    async def schedule_workflow(self, workflow: Workflow, now: Optional[datetime] = None) -> datetime:
        """Enqueue the next occurrence of one workflow.

        Raises:
            SchedulingError: If the workflow has no usable cron trigger
        """
        async with self._session_factory() as session:
            run_at = await self._schedule_in_session(
                session, workflow.id, workflow.user_id, workflow.definition, now or utcnow_naive()
            )
            await session.commit()
        return run_at

    async def unschedule_workflow(self, workflow_id: str) -> int:
        """Drop a workflow's pending jobs. Runs already dispatched are unaffected."""
        async with self._session_factory() as session:
            removed = await JobQueue(session).remove_pending(workflow_id)
            await session.commit()
        if removed:
            logger.info(f"[scheduler] Unscheduled workflow {workflow_id} ({removed} pending job(s))")
        return removed

    async def _schedule_in_session(
        self,
        session: AsyncSession,
        workflow_id: str,
        user_id: Optional[str],
        stored_definition: dict,
        now: datetime,
    ) -> datetime:
        queue = JobQueue(session)
        definition = WorkflowDefinition.from_json(stored_definition, id=workflow_id)
        try:
            if definition.cron is None:
                raise SchedulingError("Workflow does not have a schedule trigger", workflow_id)
            run_at = next_fire_time(
                definition.cron,
                now,
                tz=definition.trigger.timezone,
                workflow_id=workflow_id,
            )
        except SchedulingError:
            # Jobs queued from an earlier definition must not fire.
            await queue.remove_pending(workflow_id)
            await session.commit()
            raise

        await queue.remove_pending(workflow_id, keep_run_at=run_at)
        job = await queue.enqueue(workflow_id, user_id, definition.to_json(), run_at)
        logger.debug(f"[scheduler] Workflow {workflow_id} next run at {run_at} ({job.job_key})")
        return run_at

    # ─── Dispatch ─────────────────────────────────────────

    async def dispatch_due(self, now: Optional[datetime] = None) -> int:
        """Claim due jobs and launch their runs. Returns how many were launched."""
        async with self._session_factory() as session:
            jobs = await JobQueue(session).claim_due(now, limit=DISPATCH_BATCH_SIZE)
            await session.commit()

        for job in jobs:
            self._runner.launch(self._fire(job), name=f"schedule-{job.job_key}")

        if jobs:
            logger.info(f"[scheduler] Dispatched {len(jobs)} due job(s)")
        return len(jobs)

    async def _fire(self, job: ScheduledJob) -> None:
        event = TriggerEvent(
            trigger_type=TriggerType.SCHEDULE,
            workflow_id=job.workflow_id,
            user_id=job.user_id,
            metadata={"job_key": job.job_key, "run_at": job.run_at.isoformat()},
        )
        try:
            await run_workflow_safely(self._engine, job.workflow_json, event)
        finally:
            await self._after_fire(job)

    async def _after_fire(self, job: ScheduledJob) -> None:
        try:
            async with self._session_factory() as session:
                await JobQueue(session).complete(job.id)
                workflow = await WorkflowService(session).get_by_id(job.workflow_id)
                await session.commit()

                if (
                    workflow is not None
                    and workflow.is_active
                    and workflow.trigger_type == TriggerType.SCHEDULE.value
                ):
                    await self._schedule_in_session(
                        session, workflow.id, workflow.user_id, workflow.definition, utcnow_naive()
                    )
                    await session.commit()
        except SchedulingError as e:
            logger.warning(f"[scheduler] Could not reschedule {job.workflow_id}: {e.message}")
        except Exception as e:
            logger.error(
                f"[scheduler] Post-run bookkeeping failed for {job.job_key}: {e}",
                exc_info=True,
            )

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for launched runs to finish."""
        await self._runner.drain(timeout)

    # ─── Lifecycle ────────────────────────────────────────

    async def start(self) -> None:
        """Reconcile once, then start the background loops.

        A failure of the first reconciliation (store unreachable) propagates.
        """
        if self.is_running:
            return
        self._stop.clear()
        await self.reconcile()
        self._loops = [
            asyncio.create_task(
                self._every(self.reconcile_interval, self.reconcile), name="scheduler-reconcile"
            ),
            asyncio.create_task(
                self._every(self.poll_interval, self.dispatch_due), name="scheduler-dispatch"
            ),
        ]
        logger.info(
            f"[scheduler] Started (reconcile every {self.reconcile_interval}s, "
            f"poll every {self.poll_interval}s)"
        )

    async def stop(self, drain_timeout: Optional[float] = 30.0) -> None:
        """Stop the loops and wait for in-flight runs."""
        self._stop.set()
        loops, self._loops = self._loops, []
        for task in loops:
            task.cancel()
        await asyncio.gather(*loops, return_exceptions=True)
        await self.drain(drain_timeout)
        logger.info("[scheduler] Stopped")

    async def _every(self, interval: float, action) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=interval)
                return
            except asyncio.TimeoutError:
                pass
            try:
                await action()
            except Exception as e:
                logger.error(f"[scheduler] {action.__name__} failed: {e}", exc_info=True)
