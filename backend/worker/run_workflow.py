"""Shared helpers to run a workflow in the background.

Webhook, schedule and manual triggers all end up here:

- ``run_workflow_safely`` runs the engine for one trigger event and never
  raises; failures are logged (the engine already recorded them on the
  execution record when it got that far).
- ``BackgroundRunner`` launches such runs as tracked asyncio tasks with
  bounded concurrency, so they are not garbage collected mid-flight and
  can be drained on shutdown.

Usage from an async context::

    runner = BackgroundRunner(max_concurrency=4)
    runner.launch(run_workflow_safely(engine, definition, event), name="wf-123")
    ...
    await runner.drain()
"""

import asyncio
import logging
from typing import Any, Coroutine, Optional

from triggers.base import TriggerEvent
from workflow.engine import WorkflowEngine
from workflow.models import ExecutionRecord

logger = logging.getLogger(__name__)


async def run_workflow_safely(
    engine: WorkflowEngine,
    definition: dict,
    event: TriggerEvent,
) -> Optional[ExecutionRecord]:
    """Run one workflow for one trigger event; returns None if the run crashed."""
    try:
        record = await engine.execute(definition, event.user_id, event.payload)
    except Exception as e:
        logger.error(
            f"[run-workflow] {event.trigger_type.value} run of workflow "
            f"{event.workflow_id} failed: {e}",
            exc_info=True,
        )
        return None

    if record.error_message:
        logger.info(
            f"[run-workflow] Execution {record.id} of {event.workflow_id} "
            f"failed: {record.error_message}"
        )
    return record


class BackgroundRunner:
    """Tracks fire-and-forget coroutines on the running event loop."""

    def __init__(self, max_concurrency: int = 4):
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))
        self._tasks: set[asyncio.Task] = set()

    @property
    def active(self) -> int:
        return len(self._tasks)

    def launch(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
        """Schedule ``coro``; at most ``max_concurrency`` run at once."""
        task = asyncio.get_running_loop().create_task(self._guarded(coro), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guarded(self, coro: Coroutine[Any, Any, Any]) -> Any:
        async with self._semaphore:
            try:
                return await coro
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[run-workflow] Background task failed: {e}", exc_info=True)
                return None

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight tasks; cancel whatever is left after ``timeout``."""
        if not self._tasks:
            return
        pending = list(self._tasks)
        done, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning(f"[run-workflow] Cancelled {len(still_running)} unfinished runs")
            await asyncio.gather(*still_running, return_exceptions=True)
