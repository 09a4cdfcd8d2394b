"""Session-per-operation execution store used by the engine.

Runs are often launched in the background, long after the request that
started them has closed its session, so every write opens and commits its
own session from the factory.
"""

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.exceptions import NotFoundError
from services.workflow_service import ExecutionService
from workflow.models import ExecutionRecord

logger = logging.getLogger(__name__)


class SqlExecutionStore:
    """ExecutionStore backed by the ``workflow_executions`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create_execution(
        self,
        workflow_id: str,
        user_id: Optional[str],
        trigger_data: Any = None,
    ) -> ExecutionRecord:
        async with self._session_factory() as session:
            execution = await ExecutionService(session).create_execution(
                workflow_id=workflow_id,
                user_id=user_id,
                trigger_data=trigger_data,
            )
            await session.commit()
            return ExecutionRecord.from_model(execution)

    async def finish_execution(self, record: ExecutionRecord) -> ExecutionRecord:
        async with self._session_factory() as session:
            execution = await ExecutionService(session).finish_execution(
                record.id,
                status=record.status,
                execution_log=record.log_dicts(),
                error_message=record.error_message,
                completed_at=record.completed_at,
            )
            if execution is None:
                raise NotFoundError(f"Execution {record.id} not found")
            await session.commit()
            return ExecutionRecord.from_model(execution)
