"""Webhook trigger dispatch.

Resolves a webhook id to exactly one active workflow and starts a run in
the background with the request payload as trigger data. The caller gets
an acknowledgment immediately, before any step runs.
"""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.constants import TriggerType
from core.exceptions import ConflictError, NotFoundError
from services.workflow_service import WorkflowService
from triggers.base import TriggerEvent, TriggerResult
from worker.run_workflow import BackgroundRunner, run_workflow_safely
from workflow.engine import WorkflowEngine

logger = logging.getLogger(__name__)


class WebhookDispatcher:
    """Routes incoming webhook payloads to their workflow."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        runner: BackgroundRunner,
        engine: WorkflowEngine,
    ):
        self._session_factory = session_factory
        self._runner = runner
        self._engine = engine

    async def dispatch(self, webhook_id: str, payload: Any) -> TriggerResult:
        """Launch the workflow bound to ``webhook_id``.

        Raises:
            NotFoundError: No active workflow uses this webhook id
            ConflictError: More than one active workflow uses it
        """
        async with self._session_factory() as session:
            matches = await WorkflowService(session).find_active_by_webhook(webhook_id)

        if not matches:
            raise NotFoundError("Webhook not found or workflow not active")
        if len(matches) > 1:
            logger.error(
                f"Webhook {webhook_id} matches {len(matches)} active workflows: "
                + ", ".join(w.id for w in matches)
            )
            raise ConflictError("Webhook is bound to more than one active workflow")

        workflow = matches[0]
        event = TriggerEvent(
            trigger_type=TriggerType.WEBHOOK,
            workflow_id=workflow.id,
            user_id=workflow.user_id,
            payload=payload,
            metadata={"webhook_id": webhook_id},
        )
        self._runner.launch(
            run_workflow_safely(self._engine, workflow.definition, event),
            name=f"webhook-{workflow.id}",
        )
        logger.info(f"Webhook {webhook_id} triggered workflow {workflow.id}")

        return TriggerResult(
            success=True,
            message="Webhook received, workflow triggered",
            workflow_id=workflow.id,
        )
