"""Workflow endpoints: CRUD, deploy/pause, manual execute, execution history."""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.common import MessageResponse, PaginationParams
from api.schemas.execution import ExecutionListResponse, ExecutionResponse
from api.schemas.workflow import (
    ExecuteRequest,
    WorkflowActionResponse,
    WorkflowCreate,
    WorkflowListResponse,
    WorkflowResponse,
    WorkflowUpdate,
)
from app.config import Settings
from app.dependencies import get_app_settings, get_db, get_runtime
from core.constants import TriggerType
from core.exceptions import NotFoundError
from db.models.workflow import Workflow
from services.runtime import Runtime
from services.workflow_service import ExecutionService, WorkflowService
from triggers.cron import next_fire_time
from workflow.models import ExecutionRecord, WorkflowDefinition

logger = logging.getLogger(__name__)

router = APIRouter(tags=["workflows"])


async def _get_or_404(svc: WorkflowService, workflow_id: str) -> Workflow:
    wf = await svc.get_by_id(workflow_id)
    if not wf:
        raise NotFoundError("Workflow not found")
    return wf


def _is_scheduled(wf: Workflow) -> bool:
    return wf.trigger_type == TriggerType.SCHEDULE.value


def _check_cron(wf: Workflow) -> None:
    """Raise SchedulingError (422) if the workflow's cron cannot be scheduled."""
    definition = WorkflowDefinition.from_json(wf.definition, id=wf.id)
    next_fire_time(definition.cron or "", tz=definition.trigger.timezone, workflow_id=wf.id)


@router.get("/", response_model=WorkflowListResponse)
async def list_workflows(
    pagination: PaginationParams = Depends(),
    user_id: Optional[str] = Query(default=None, description="Only this owner's workflows"),
    db: AsyncSession = Depends(get_db),
) -> WorkflowListResponse:
    """
    List workflows, most recently created first (paginated).
    """
    workflows, total = await WorkflowService(db).list(
        offset=pagination.offset,
        limit=pagination.per_page,
        filters={"user_id": user_id} if user_id else None,
    )
    return WorkflowListResponse(
        workflows=[WorkflowResponse.model_validate(wf) for wf in workflows],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.post("/", response_model=WorkflowResponse, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    request: WorkflowCreate,
    db: AsyncSession = Depends(get_db),
) -> WorkflowResponse:
    """
    Create a new workflow in draft status.
    """
    wf = await WorkflowService(db).create_workflow(
        name=request.name,
        description=request.description or "",
        definition=request.definition,
        user_id=request.user_id,
    )
    return WorkflowResponse.model_validate(wf)


@router.get("/{workflow_id}", response_model=WorkflowResponse)
async def get_workflow(
    workflow_id: str,
    db: AsyncSession = Depends(get_db),
) -> WorkflowResponse:
    """
    Get workflow details by ID.
    """
    wf = await _get_or_404(WorkflowService(db), workflow_id)
    return WorkflowResponse.model_validate(wf)


@router.put("/{workflow_id}", response_model=WorkflowResponse)
async def update_workflow(
    workflow_id: str,
    request: WorkflowUpdate,
    db: AsyncSession = Depends(get_db),
    runtime: Runtime = Depends(get_runtime),
) -> WorkflowResponse:
    """
    Update workflow fields. An active workflow is rescheduled from the new
    definition (or unscheduled if it is no longer cron-triggered).
    """
    svc = WorkflowService(db)
    await _get_or_404(svc, workflow_id)

    wf = await svc.update_workflow(
        workflow_id,
        name=request.name,
        description=request.description,
        definition=request.definition,
    )
    if wf.is_active and _is_scheduled(wf):
        _check_cron(wf)
    await db.commit()

    if wf.is_active and _is_scheduled(wf):
        await runtime.scheduler.schedule_workflow(wf)
    else:
        await runtime.scheduler.unschedule_workflow(wf.id)

    return WorkflowResponse.model_validate(wf)


@router.delete("/{workflow_id}", response_model=MessageResponse)
async def delete_workflow(
    workflow_id: str,
    db: AsyncSession = Depends(get_db),
    runtime: Runtime = Depends(get_runtime),
) -> MessageResponse:
    """
    Soft-delete a workflow and drop its pending scheduled runs.
    Execution history is kept.
    """
    svc = WorkflowService(db)
    if not await svc.soft_delete(workflow_id):
        raise NotFoundError("Workflow not found")
    await db.commit()

    await runtime.scheduler.unschedule_workflow(workflow_id)
    return MessageResponse(message="Workflow deleted")


@router.post("/{workflow_id}/deploy", response_model=WorkflowActionResponse)
async def deploy_workflow(
    workflow_id: str,
    db: AsyncSession = Depends(get_db),
    runtime: Runtime = Depends(get_runtime),
) -> WorkflowActionResponse:
    """
    Activate a workflow. Cron-triggered workflows are scheduled right away;
    an unusable cron expression rejects the deploy.
    """
    svc = WorkflowService(db)
    wf = await _get_or_404(svc, workflow_id)

    if _is_scheduled(wf):
        _check_cron(wf)

    wf = await svc.deploy(workflow_id)
    await db.commit()

    next_run_at = None
    if _is_scheduled(wf):
        next_run_at = await runtime.scheduler.schedule_workflow(wf)

    logger.info(f"Workflow {workflow_id} deployed ({wf.trigger_type})")
    return WorkflowActionResponse(
        message="Workflow deployed successfully",
        workflow=WorkflowResponse.model_validate(wf),
        next_run_at=next_run_at,
    )


@router.post("/{workflow_id}/pause", response_model=WorkflowActionResponse)
async def pause_workflow(
    workflow_id: str,
    db: AsyncSession = Depends(get_db),
    runtime: Runtime = Depends(get_runtime),
) -> WorkflowActionResponse:
    """
    Pause a workflow. Pending scheduled runs are dropped; a run that has
    already started finishes normally.
    """
    svc = WorkflowService(db)
    await _get_or_404(svc, workflow_id)

    wf = await svc.pause(workflow_id)
    await db.commit()

    await runtime.scheduler.unschedule_workflow(workflow_id)
    return WorkflowActionResponse(
        message="Workflow paused",
        workflow=WorkflowResponse.model_validate(wf),
    )


@router.post("/{workflow_id}/execute", response_model=ExecutionResponse)
async def execute_workflow(
    workflow_id: str,
    request: Optional[ExecuteRequest] = Body(default=None),
    db: AsyncSession = Depends(get_db),
    runtime: Runtime = Depends(get_runtime),
) -> ExecutionResponse:
    """
    Run a workflow now and return its execution record.

    ``test_data`` becomes the run's trigger data. Works for any status,
    including drafts.
    """
    wf = await _get_or_404(WorkflowService(db), workflow_id)
    definition, user_id = wf.definition, wf.user_id
    await db.commit()

    record: ExecutionRecord = await runtime.engine.execute(
        WorkflowDefinition.from_json(definition, id=workflow_id),
        user_id,
        request.test_data if request else None,
    )
    return ExecutionResponse.from_record(record)


@router.get("/{workflow_id}/executions", response_model=ExecutionListResponse)
async def list_executions(
    workflow_id: str,
    limit: Optional[int] = Query(default=None, ge=1, le=100, description="Max records (default from settings)"),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> ExecutionListResponse:
    """
    Execution history of one workflow, most recent first.
    """
    await _get_or_404(WorkflowService(db), workflow_id)

    limit = limit or settings.EXECUTION_HISTORY_LIMIT
    executions, total = await ExecutionService(db).list_for_workflow(workflow_id, limit=limit)
    return ExecutionListResponse(
        executions=[
            ExecutionResponse.from_record(ExecutionRecord.from_model(e)) for e in executions
        ],
        total=total,
        limit=limit,
    )
