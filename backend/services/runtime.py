"""Wiring of the execution runtime (engine, runner, scheduler, webhooks).

Used by the API lifespan and by the Celery scheduling tasks so both build
the same object graph from settings.
"""

from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.execution_store import SqlExecutionStore
from services.scheduler import WorkflowScheduler
from steps.implementations.send_email import SmtpRelay
from steps.registry import StepRegistry, default_step_registry
from triggers.webhook import WebhookDispatcher
from worker.run_workflow import BackgroundRunner
from workflow.engine import WorkflowEngine


@dataclass
class Runtime:
    steps: StepRegistry
    engine: WorkflowEngine
    runner: BackgroundRunner
    scheduler: WorkflowScheduler
    webhooks: WebhookDispatcher


def build_runtime(
    settings,
    session_factory: async_sessionmaker[AsyncSession],
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
    mail_relay: Optional[SmtpRelay] = None,
) -> Runtime:
    """Build the runtime services from settings.

    ``http_transport`` and ``mail_relay`` replace the outgoing network
    handles of the step executors (tests use mock transports).
    """
    registry = default_step_registry(settings, http_transport=http_transport, mail_relay=mail_relay)
    engine = WorkflowEngine(registry, SqlExecutionStore(session_factory))
    runner = BackgroundRunner(max_concurrency=settings.SCHEDULER_MAX_CONCURRENCY)
    return Runtime(
        steps=registry,
        engine=engine,
        runner=runner,
        scheduler=WorkflowScheduler.from_settings(settings, session_factory, engine, runner),
        webhooks=WebhookDispatcher(session_factory, runner, engine),
    )
