"""Webhook receiver endpoints.

Webhooks are unauthenticated: the webhook id in the URL is the secret.
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.dependencies import get_app_settings, get_db, get_runtime
from core.constants import TriggerType
from core.exceptions import NotFoundError
from services.runtime import Runtime
from services.workflow_service import WorkflowService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


async def _payload(request: Request) -> Any:
    """Request body as JSON; non-JSON bodies are passed through as text."""
    body = await request.body()
    if not body:
        return None
    try:
        return json.loads(body)
    except ValueError:
        return body.decode("utf-8", errors="replace")


@router.post("/{webhook_id}", status_code=status.HTTP_200_OK)
async def receive_webhook(
    webhook_id: str,
    request: Request,
    runtime: Runtime = Depends(get_runtime),
) -> dict:
    """
    Trigger the workflow bound to ``webhook_id`` with the request body as
    trigger data. Responds before the workflow runs.
    """
    result = await runtime.webhooks.dispatch(webhook_id, await _payload(request))
    return result.to_dict()


@router.get("/url/{workflow_id}")
async def get_webhook_url(
    workflow_id: str,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    """
    Public URL that triggers a webhook workflow.
    """
    wf = await WorkflowService(db).get_by_id(workflow_id)
    if not wf:
        raise NotFoundError("Workflow not found")
    if wf.trigger_type != TriggerType.WEBHOOK.value or not wf.webhook_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Workflow does not have webhook trigger",
        )

    base = settings.BACKEND_URL.rstrip("/")
    return {"webhookUrl": f"{base}{settings.API_V1_PREFIX}/webhooks/{wf.webhook_id}"}
