"""Workflow Execution Engine: sequential, fail-fast step runner.

Takes a workflow definition (a trigger plus an ordered list of steps) and
runs the steps one after another against a fresh execution context:

- Each step's config is resolved against the context ({{...}} placeholders)
- The step type selects an executor from the StepRegistry
- A step's result is stored under its id for the steps that follow
- The first failing step aborts the run; later steps never execute

Every run is persisted as an ExecutionRecord: created in ``running`` before
the first step, and finished exactly once with ``completed`` or ``failed``,
the completion time and the full step log.
"""

import logging
from typing import Any, Optional, Protocol, Union

from core.constants import ExecutionStatus
from core.exceptions import StepExecutionError
from core.logging_config import execution_context
from core.utils import safe_serialize, utcnow_naive
from steps.registry import StepRegistry
from workflow.models import (
    ExecutionContext,
    ExecutionRecord,
    StepLogEntry,
    WorkflowDefinition,
    WorkflowStep,
)
from workflow.templating import TemplateResolver

logger = logging.getLogger(__name__)


# ─── Persistence seam ─────────────────────────────────────────

class ExecutionStore(Protocol):
    """What the engine needs from persistence."""

    async def create_execution(
        self,
        workflow_id: str,
        user_id: Optional[str],
        trigger_data: Any = None,
    ) -> ExecutionRecord:
        ...

    async def finish_execution(self, record: ExecutionRecord) -> ExecutionRecord:
        ...


# ─── Engine ───────────────────────────────────────────────────

class WorkflowEngine:
    """Runs workflows; one instance is shared by all triggers.

    The engine holds no per-run state, so concurrent ``execute`` calls
    are independent of each other.
    """

    def __init__(
        self,
        step_registry: StepRegistry,
        store: ExecutionStore,
        resolver: type[TemplateResolver] = TemplateResolver,
    ):
        self._steps = step_registry
        self._store = store
        self._resolver = resolver

    async def execute(
        self,
        workflow: Union[WorkflowDefinition, dict],
        user_id: Optional[str],
        trigger_data: Any = None,
    ) -> ExecutionRecord:
        """Execute a workflow and return its terminal record.

        Args:
            workflow: Definition, or its stored JSON form
            user_id: User the run executes on behalf of
            trigger_data: Webhook payload / manual test data, if any

        Returns:
            ExecutionRecord in ``completed`` or ``failed`` status
        """
        if not isinstance(workflow, WorkflowDefinition):
            workflow = WorkflowDefinition.from_json(workflow)

        record = await self._store.create_execution(
            workflow_id=workflow.id,
            user_id=user_id,
            trigger_data=trigger_data,
        )
        context = ExecutionContext(
            workflow_id=workflow.id,
            execution_id=record.id,
            user_id=user_id,
            trigger_data=trigger_data,
        )

        logger.info(
            f"Execution {record.id} started for workflow {workflow.id} "
            f"({len(workflow.steps)} steps)"
        )

        error_message: Optional[str] = None
        with execution_context(workflow.id, record.id):
            for step in workflow.steps:
                entry = StepLogEntry(step_id=step.id, step_type=step.type)
                record.execution_log.append(entry)
                try:
                    result = await self._run_step(step, context)
                except StepExecutionError as e:
                    error_message = e.message
                except Exception as e:
                    logger.exception(f"Step {step.id} crashed in execution {record.id}")
                    error_message = str(e) or e.__class__.__name__
                else:
                    entry.complete(result)
                    context.step_results[step.id] = result
                    continue

                entry.fail(error_message)
                logger.warning(
                    f"Execution {record.id} aborted at step {step.id} ({step.type}): {error_message}"
                )
                break

        record.completed_at = utcnow_naive()
        if error_message is None:
            record.status = ExecutionStatus.COMPLETED
        else:
            record.status = ExecutionStatus.FAILED
            record.error_message = error_message

        record = await self._store.finish_execution(record)
        logger.info(f"Execution {record.id} finished: {record.status.value}")
        return record

    async def _run_step(self, step: WorkflowStep, context: ExecutionContext) -> Any:
        """Resolve, dispatch and unwrap one step.

        Raises:
            StepExecutionError: On an unknown type or a failed step
        """
        executor = self._steps.get(step.type)
        config = self._resolver.resolve(step.config, context)
        result = await executor.run(config, context)
        if not result.success:
            raise StepExecutionError(result.error or "Step failed", step.type)
        return safe_serialize(result.output)
