"""Workflow service: CRUD, lifecycle and execution history."""

import logging
from datetime import datetime
from typing import Any, Optional, Sequence
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import ExecutionStatus, TriggerType, WorkflowStatus
from core.exceptions import ValidationError
from core.utils import generate_webhook_id, utcnow_naive
from db.models.execution import Execution
from db.models.workflow import Workflow
from services.base import BaseService
from workflow.models import WebhookTrigger, WorkflowDefinition

logger = logging.getLogger(__name__)

MAX_HISTORY_LIMIT = 100


def normalize_definition(definition: Optional[dict], workflow_id: str, name: str) -> WorkflowDefinition:
    """Validate a stored definition and pin its id/name to the row.

    A webhook trigger without an id gets a fresh one, so every webhook
    workflow is reachable.

    Raises:
        ValidationError: If the definition does not parse
    """
    try:
        parsed = WorkflowDefinition.from_json(definition or {}, id=workflow_id, name=name)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid workflow definition: {e.errors()[0]['msg']}")

    if isinstance(parsed.trigger, WebhookTrigger) and not parsed.trigger.webhook_id:
        parsed.trigger.webhook_id = generate_webhook_id()
    return parsed


class WorkflowService(BaseService[Workflow]):
    """Service for workflow management."""

    def __init__(self, db: AsyncSession):
        super().__init__(Workflow, db)

    async def create_workflow(
        self,
        name: str,
        description: str = "",
        definition: dict = None,
        user_id: str = None,
    ) -> Workflow:
        """Create a new workflow in draft status."""
        workflow_id = str(uuid4())
        data: dict[str, Any] = {
            "id": workflow_id,
            "user_id": user_id,
            "name": name,
            "description": description or "",
            "status": WorkflowStatus.DRAFT.value,
        }
        data.update(self._definition_columns(definition, workflow_id, name))
        return await self.create(data)

    async def update_workflow(
        self,
        workflow_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        definition: Optional[dict] = None,
    ) -> Optional[Workflow]:
        """Update name/description/definition; trigger columns follow the definition."""
        wf = await self.get_by_id(workflow_id)
        if not wf:
            return None

        data: dict[str, Any] = {"name": name, "description": description}
        if definition is not None or name is not None:
            data.update(
                self._definition_columns(
                    definition if definition is not None else wf.definition,
                    wf.id,
                    name or wf.name,
                )
            )
        return await self.update(workflow_id, data)

    async def deploy(self, workflow_id: str) -> Optional[Workflow]:
        """Activate a workflow."""
        return await self.update(
            workflow_id,
            {"status": WorkflowStatus.ACTIVE.value, "deployed_at": utcnow_naive()},
        )

    async def pause(self, workflow_id: str) -> Optional[Workflow]:
        """Pause an active workflow."""
        return await self.update(workflow_id, {"status": WorkflowStatus.PAUSED.value})

    async def list_by_trigger(
        self,
        trigger_type: TriggerType,
        active_only: bool = True,
    ) -> Sequence[Workflow]:
        """All (active) workflows of one trigger type."""
        query = select(Workflow).where(
            Workflow.trigger_type == TriggerType(trigger_type).value,
            Workflow.is_deleted == False,  # noqa: E712
        )
        if active_only:
            query = query.where(Workflow.status == WorkflowStatus.ACTIVE.value)
        result = await self.db.execute(query.order_by(Workflow.created_at))
        return result.scalars().all()

    async def find_active_by_webhook(self, webhook_id: str) -> Sequence[Workflow]:
        """Active webhook-triggered workflows bound to ``webhook_id``."""
        result = await self.db.execute(
            select(Workflow).where(
                Workflow.webhook_id == webhook_id,
                Workflow.trigger_type == TriggerType.WEBHOOK.value,
                Workflow.status == WorkflowStatus.ACTIVE.value,
                Workflow.is_deleted == False,  # noqa: E712
            )
        )
        return result.scalars().all()

    @staticmethod
    def _definition_columns(definition: Optional[dict], workflow_id: str, name: str) -> dict:
        parsed = normalize_definition(definition, workflow_id, name)
        return {
            "definition": parsed.to_json(),
            "trigger_type": parsed.trigger.type,
            "webhook_id": parsed.webhook_id,
        }


class ExecutionService(BaseService[Execution]):
    """Service for execution records."""

    def __init__(self, db: AsyncSession):
        super().__init__(Execution, db)

    async def create_execution(
        self,
        workflow_id: str,
        user_id: Optional[str],
        trigger_data: Any = None,
        started_at: Optional[datetime] = None,
    ) -> Execution:
        """Create a record in ``running`` with a snapshot of the trigger data."""
        return await self.create({
            "workflow_id": workflow_id,
            "user_id": user_id,
            "status": ExecutionStatus.RUNNING.value,
            "started_at": started_at or utcnow_naive(),
            "execution_log": [],
            "trigger_data": trigger_data,
        })

    async def finish_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        execution_log: list[dict],
        error_message: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> Optional[Execution]:
        """Write the terminal status, log and completion time together."""
        execution = await self.get_by_id(execution_id)
        if not execution:
            return None
        execution.status = ExecutionStatus(status).value
        execution.execution_log = execution_log
        execution.error_message = error_message if status == ExecutionStatus.FAILED else None
        execution.completed_at = completed_at or utcnow_naive()
        await self.db.flush()
        await self.db.refresh(execution)
        return execution

    async def list_for_workflow(
        self,
        workflow_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[Sequence[Execution], int]:
        """Executions for one workflow, most recent first."""
        return await self.list(
            offset=offset,
            limit=max(1, min(limit, MAX_HISTORY_LIMIT)),
            order_by="started_at",
            filters={"workflow_id": workflow_id},
        )
