"""Celery tasks that drive the workflow scheduler from beat.

Each invocation runs on a new event loop with a fresh database engine
(see db.worker_session), builds the runtime, does one pass and waits for
the runs it launched before returning.
"""

import asyncio
import logging

from worker.celery_app import celery_app

logger = logging.getLogger(__name__)


def _run(coro):
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _reconcile() -> dict:
    from app.config import get_settings
    from db.worker_session import worker_session_factory
    from services.runtime import build_runtime

    async with worker_session_factory() as session_factory:
        runtime = build_runtime(get_settings(), session_factory)
        return await runtime.scheduler.reconcile()


async def _dispatch() -> dict:
    from app.config import get_settings
    from db.worker_session import worker_session_factory
    from services.runtime import build_runtime

    async with worker_session_factory() as session_factory:
        runtime = build_runtime(get_settings(), session_factory)
        launched = await runtime.scheduler.dispatch_due()
        await runtime.scheduler.drain()
        return {"dispatched": launched}


@celery_app.task(
    name="worker.tasks.scheduling.reconcile_schedules",
    bind=True,
    max_retries=2,
    default_retry_delay=15,
    queue="scheduling",
)
def reconcile_schedules(self):
    """Re-derive pending jobs from the stored schedule workflows."""
    logger.info("[scheduling] Reconciling schedules...")
    try:
        result = _run(_reconcile())
        logger.info(f"[scheduling] Reconcile done: {result}")
        return result
    except Exception as exc:
        logger.error(f"[scheduling] Reconcile failed: {exc}", exc_info=True)
        raise self.retry(exc=exc)


@celery_app.task(
    name="worker.tasks.scheduling.dispatch_due_jobs",
    bind=True,
    max_retries=2,
    default_retry_delay=15,
    queue="scheduling",
)
def dispatch_due_jobs(self):
    """Claim due jobs and run their workflows."""
    try:
        result = _run(_dispatch())
        if result["dispatched"]:
            logger.info(f"[scheduling] Dispatch done: {result}")
        return result
    except Exception as exc:
        logger.error(f"[scheduling] Dispatch failed: {exc}", exc_info=True)
        raise self.retry(exc=exc)
