"""Execution record schemas."""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List, Optional

from workflow.models import ExecutionRecord


class ExecutionResponse(BaseModel):
    """Execution record response."""

    id: str = Field(description="Execution ID")
    workflow_id: str = Field(description="Workflow ID")
    status: str = Field(description="Execution status (running, completed, failed)")
    started_at: Optional[datetime] = Field(default=None, description="Execution start timestamp")
    completed_at: Optional[datetime] = Field(default=None, description="Execution completion timestamp")
    error_message: Optional[str] = Field(default=None, description="Originating step error if the run failed")
    execution_log: List[Dict[str, Any]] = Field(default_factory=list, description="Step log entries in attempt order")
    trigger_data: Optional[Any] = Field(default=None, description="Payload that started the run")

    @classmethod
    def from_record(cls, record: ExecutionRecord) -> "ExecutionResponse":
        return cls(
            id=record.id,
            workflow_id=record.workflow_id,
            status=record.status.value,
            started_at=record.started_at,
            completed_at=record.completed_at,
            error_message=record.error_message,
            execution_log=record.log_dicts(),
            trigger_data=record.trigger_data,
        )


class ExecutionListResponse(BaseModel):
    """Recent executions of one workflow, most recent first."""

    executions: List[ExecutionResponse] = Field(description="List of executions")
    total: int = Field(description="Total number of executions")
    limit: int = Field(description="Maximum number of items returned")
